"""Remote checks: asking the server whether a field value is acceptable.

The server answers with JSON. Accepted shapes:
- a boolean
- a string: "true" or "" means valid, anything else is an error message
- an object with ``valid: true``

A non-2xx status is an explicit failure. Transport errors, timeouts and
unparseable bodies fail open: the server re-checks on submission anyway.
"""

import logging
from typing import Any, Mapping

import httpx

from veriform.config import DEFAULT_REMOTE_TIMEOUT

logger = logging.getLogger(__name__)


def interpret_remote_response(payload: Any) -> bool:
    """Decide validity from a decoded remote-check payload."""
    if isinstance(payload, bool):
        return payload
    if isinstance(payload, str):
        return payload == "true" or payload == ""
    if isinstance(payload, dict):
        return payload.get("valid") is True
    return False


def parse_additional_fields(spec: str | None) -> list[str]:
    """Split an additionalfields parameter, stripping the ``*.`` prefix."""
    if not spec:
        return []
    names = [part.strip().removeprefix("*.") for part in spec.split(",")]
    return [name for name in names if name]


class RemoteValidator:
    """Issues remote-check requests over HTTP.

    Args:
        client: Shared AsyncClient (e.g. one with a base_url or a mock
            transport). When omitted a short-lived client is opened per request.
        timeout: Request timeout in seconds
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_REMOTE_TIMEOUT,
    ):
        self._client = client
        self._timeout = timeout

    @property
    def timeout(self) -> float:
        return self._timeout

    async def check(
        self,
        url: str,
        field_name: str,
        value: str,
        additional: Mapping[str, str] | None = None,
        method: str = "POST",
    ) -> bool:
        """Ask the server whether ``value`` is acceptable for ``field_name``.

        Returns:
            True when the server accepts the value or can't be reached
        """
        data = {field_name: value, **(additional or {})}
        method = (method or "POST").upper()

        try:
            if self._client is not None:
                response = await self._send(self._client, method, url, data)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await self._send(client, method, url, data)
        except httpx.TimeoutException as e:
            logger.warning("Remote check for %s timed out (%s); treating as valid", field_name, e)
            return True
        except httpx.HTTPError as e:
            logger.warning("Remote check for %s failed (%s); treating as valid", field_name, e)
            return True

        if not response.is_success:
            logger.debug("Remote check for %s rejected with status %d", field_name, response.status_code)
            return False

        try:
            payload = response.json()
        except ValueError:
            logger.warning("Remote check for %s returned a non-JSON body; treating as valid", field_name)
            return True

        return interpret_remote_response(payload)

    async def _send(
        self,
        client: httpx.AsyncClient,
        method: str,
        url: str,
        data: dict[str, str],
    ) -> httpx.Response:
        if method == "GET":
            return await client.get(url, params=data)
        return await client.request(method, url, data=data)
