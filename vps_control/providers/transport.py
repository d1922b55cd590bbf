"""
VPS Control HTTP Transport
==========================

Thin httpx wrapper every adapter sends its requests through, plus the
request-logging middleware composed around it.

The transport never raises for HTTP status codes; it returns the status
and body and leaves classification to the caller. Network failures raise
TransportError.
"""

import functools
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional

import httpx

from .errors import RESPONSE_BODY_LIMIT, TransportError, condense, redact


DEFAULT_CONNECT_TIMEOUT = 10.0
DEFAULT_TIMEOUT = 60.0


@dataclass(frozen=True)
class TransportResponse:
    """HTTP status and body of a completed request."""
    status: int
    text: str = ""
    data: Any = None
    url: str = ""
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


SendFn = Callable[..., TransportResponse]


class HttpTransport:
    """
    HTTP client collaborator used by backend adapters.

    Redirects are never followed: a control-plane redirect is unexpected and
    surfaces as a non-2xx response instead.
    """

    def __init__(
        self,
        base_url: str,
        headers: Optional[Dict[str, str]] = None,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        timeout: float = DEFAULT_TIMEOUT,
        verify: bool = True,
        client: Optional[httpx.Client] = None,
    ):
        """
        Args:
            base_url: Vendor API root
            headers: Default headers for every request
            connect_timeout: Seconds allowed to establish a connection
            timeout: Total seconds allowed per request
            verify: Verify TLS certificates
            client: Pre-configured httpx.Client (tests inject one backed by
                httpx.MockTransport)
        """
        self.base_url = base_url
        self.client = client or httpx.Client(
            base_url=base_url,
            headers=headers or {},
            timeout=httpx.Timeout(timeout, connect=connect_timeout),
            verify=verify,
            follow_redirects=False,
        )
        if client is not None and headers:
            self.client.headers.update(headers)

    def send(
        self,
        method: str,
        url: str,
        query: Optional[Mapping[str, Any]] = None,
        body: Any = None,
        form: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> TransportResponse:
        """
        Send one request.

        Args:
            method: HTTP method
            url: Path relative to the base URL (or absolute)
            query: Query string parameters
            body: JSON body
            form: Form-encoded body (mutually exclusive with ``body``)
            headers: Extra headers for this request

        Raises:
            TransportError: The request did not produce a response
        """
        try:
            response = self.client.request(
                method=method.upper(),
                url=url,
                params=_clean(query),
                json=body,
                data=_clean(form),
                headers=headers,
            )
        except httpx.TimeoutException as e:
            raise TransportError(str(e) or "Request timed out", url=url, timeout=True) from e
        except httpx.TransportError as e:
            raise TransportError(str(e) or type(e).__name__, url=url) from e

        text = response.text
        data = None
        if text:
            try:
                data = response.json()
            except ValueError:
                data = None

        return TransportResponse(
            status=response.status_code,
            text=text,
            data=data,
            url=str(response.request.url).split("?", 1)[0],
            headers=dict(response.headers),
        )

    def close(self) -> None:
        self.client.close()


def _clean(params: Optional[Mapping[str, Any]]) -> Optional[Dict[str, Any]]:
    """Drop None values; httpx would send them as empty strings."""
    if params is None:
        return None
    return {k: v for k, v in params.items() if v is not None}


# =========================================
# LOGGING MIDDLEWARE
# =========================================

def log_requests(send: SendFn, log: Optional[logging.Logger], label: str) -> SendFn:
    """
    Wrap a ``send`` callable so each call is logged at DEBUG level.

    Params and results are condensed and redacted before logging. With no
    logger the original callable is returned untouched.
    """
    if log is None:
        return send

    @functools.wraps(send)
    def logged_send(method: str, url: str, query=None, body=None, form=None, headers=None):
        status = "ERROR"
        result: Any = None
        try:
            response = send(method, url, query=query, body=body, form=form, headers=headers)
            status = "OK" if response.ok else "ERROR"
            result = response.data if response.data is not None else response.text[:RESPONSE_BODY_LIMIT]
            return response
        except TransportError as e:
            result = {"exception": type(e).__name__, "response": str(e)}
            raise
        finally:
            params = {}
            for part in (query, form, body):
                if isinstance(part, Mapping):
                    params.update(part)
            log.debug(
                "%s API Call [%s]: %s %s",
                label,
                status,
                method.upper(),
                url,
                extra={
                    "provider": label,
                    "params": redact(params),
                    "result": redact(condense(result)),
                },
            )

    return logged_send
