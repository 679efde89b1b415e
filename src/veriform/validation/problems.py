"""Problem-details responses for validation failures.

A rejected submission is answered with 400 and a body of the form

    {
        "type": "https://tools.ietf.org/html/rfc7231#section-6.5.1",
        "title": "One or more validation errors occurred",
        "status": 400,
        "errors": {"Email": ["Email is already registered"]}
    }

The client reads only the `errors` member.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any

from veriform.validation.types import StructuredErrorReport

logger = logging.getLogger(__name__)

PROBLEM_TYPE = "https://tools.ietf.org/html/rfc7231#section-6.5.1"
PROBLEM_TITLE = "One or more validation errors occurred"
PROBLEM_MEDIA_TYPE = "application/problem+json"


# =============================================================================
# Response Helpers
# =============================================================================


@dataclass
class SubmitResponse:
    """Response from a form submission with validation."""

    valid: bool
    status_code: int
    data: dict[str, Any] | None = None
    errors: dict[str, list[str]] | None = None

    @property
    def media_type(self) -> str:
        return "application/json" if self.valid else PROBLEM_MEDIA_TYPE

    def to_dict(self) -> dict[str, Any]:
        if not self.valid:
            return {
                "type": PROBLEM_TYPE,
                "title": PROBLEM_TITLE,
                "status": self.status_code,
                "errors": self.errors or {},
            }

        result: dict[str, Any] = {"valid": True}
        if self.data is not None:
            result["data"] = self.data
        return result


def create_problem_response(report: StructuredErrorReport) -> SubmitResponse:
    """Create a 400 problem-details response for validation failures."""
    return SubmitResponse(valid=False, status_code=400, errors=report.to_dict())


def create_success_response(data: dict[str, Any]) -> SubmitResponse:
    """Create a 200 response echoing the accepted data."""
    return SubmitResponse(valid=True, status_code=200, data=data)


# =============================================================================
# Parsing
# =============================================================================


def parse_problem_details(body: Any) -> dict[str, Any] | None:
    """Extract the `errors` map from a problem-details body.

    Args:
        body: Decoded JSON (dict), or raw JSON text/bytes

    Returns:
        The errors map as sent (values may be lists or strings), or None when
        the body isn't JSON or has no errors object
    """
    if isinstance(body, (bytes, bytearray)):
        body = body.decode("utf-8", errors="replace")
    if isinstance(body, str):
        try:
            body = json.loads(body)
        except ValueError:
            logger.debug("Response body is not JSON; nothing to reconcile")
            return None

    if not isinstance(body, dict):
        return None
    errors = body.get("errors")
    if not isinstance(errors, dict):
        return None
    return errors
