"""Client round trip: local gate, request, reconciliation."""

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from veriform.client.dom import Form
from veriform.client.evaluator import ClientEvaluator
from veriform.client.reconcile import apply_problem_response

logger = logging.getLogger(__name__)


@dataclass
class SubmissionResult:
    """Outcome of a submission attempt.

    Attributes:
        submitted: False when the local sweep blocked the request
        status_code: Server status, when a request was made
        payload: Decoded JSON body, when there was one
        reconciled: True when server errors were displayed on the form
        errors: Local errors that blocked the request
    """

    submitted: bool
    status_code: int | None = None
    payload: Any = None
    reconciled: bool = False
    errors: dict[str, list[str]] = field(default_factory=dict)

    @property
    def accepted(self) -> bool:
        return self.submitted and self.status_code is not None and 200 <= self.status_code < 300


async def submit_form(
    form: Form,
    evaluator: ClientEvaluator,
    http: httpx.AsyncClient,
    url: str | None = None,
    method: str | None = None,
) -> SubmissionResult:
    """Validate locally, submit, and reconcile server errors.

    Args:
        form: Form to submit
        evaluator: Client evaluator used for the local sweep
        http: Client used for the request
        url: Target URL (defaults to the form's action)
        method: HTTP method (defaults to the form's method, then POST)
    """
    errors = evaluator.validate_form(form)
    if errors:
        return SubmissionResult(submitted=False, errors=errors)

    response = await http.request(
        (method or form.method or "post").upper(),
        url or form.action,
        data=form.form_data(),
        headers={"Accept": "application/json"},
    )

    try:
        payload = response.json()
    except ValueError:
        payload = None

    reconciled = apply_problem_response(form, response.status_code, payload)
    if reconciled:
        logger.debug("Server rejected %s; errors reconciled", form.id or "<anonymous>")

    return SubmissionResult(
        submitted=True,
        status_code=response.status_code,
        payload=payload,
        reconciled=reconciled,
    )
