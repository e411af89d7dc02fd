"""HTTP transport with auth header injection and failure classification."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any, Protocol

import aiohttp

from pyiotux._constants import AUTH_HEADER, AUTH_REJECTED_STATUS, USER_AGENT
from pyiotux._redact import redact_for_log
from pyiotux.config import IotuxConfig
from pyiotux.exceptions import (
    IotuxAuthenticationError,
    IotuxConnectivityError,
    IotuxTransportError,
)

_logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Structural transport interface used by endpoint modules.

    Tests pass simple doubles; production uses :class:`HttpTransport`.
    """

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Mapping[str, Any] | None = None,
        token: str | None = None,
    ) -> Any:
        ...


class HttpTransport:
    """JSON-over-HTTP transport for the IoTux API."""

    def __init__(self, config: IotuxConfig, http_session: aiohttp.ClientSession) -> None:
        self._config = config
        self._http = http_session
        self._timeout = aiohttp.ClientTimeout(total=config.request_timeout)

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Mapping[str, Any] | None = None,
        token: str | None = None,
    ) -> Any:
        """Send one request and return the decoded JSON body.

        Raises
        ------
        IotuxAuthenticationError
            The server answered 401.
        IotuxConnectivityError
            The request never got an answer (DNS, refused, timeout).
        IotuxTransportError
            Any other non-2xx answer, or a body that is not JSON.
        """
        headers: dict[str, str] = {
            "accept": "application/json",
            "user-agent": USER_AGENT,
        }
        if token:
            headers[AUTH_HEADER] = token

        url = f"{self._config.base_url}{path}"
        _logger.debug("%s %s body=%s auth=%s", method, url, redact_for_log(json), bool(token))

        try:
            async with self._http.request(
                method,
                url,
                json=dict(json) if json is not None else None,
                headers=headers,
                timeout=self._timeout,
            ) as resp:
                text = await resp.text()
                status = resp.status
        except (aiohttp.ClientConnectionError, TimeoutError) as exc:
            raise IotuxConnectivityError(
                f"Request to {path} failed: {exc or type(exc).__name__}",
                endpoint=path,
            ) from exc
        except aiohttp.ClientError as exc:
            raise IotuxTransportError(
                f"Request to {path} failed: {exc}",
                endpoint=path,
            ) from exc

        if status == AUTH_REJECTED_STATUS:
            raise IotuxAuthenticationError(
                f"Authentication rejected by {path}",
                status_code=status,
                endpoint=path,
            )
        if not 200 <= status < 300:
            raise IotuxTransportError(
                f"HTTP {status} from {path}: {text[:200]}",
                status_code=status,
                endpoint=path,
            )

        if not text.strip():
            return None
        return _decode_body(text, path, status)


def _decode_body(text: str, path: str, status: int) -> Any:
    try:
        body = json.loads(text)
    except json.JSONDecodeError as exc:
        raise IotuxTransportError(
            f"Invalid JSON from {path}: {text[:200]}",
            status_code=status,
            endpoint=path,
        ) from exc
    _logger.debug("Response %s status=%d body=%s", path, status, redact_for_log(body, max_string=128))
    return body
