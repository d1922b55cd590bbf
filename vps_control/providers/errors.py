"""
VPS Control Error Classification
================================

Turns failed backend calls into a small, vendor-neutral error taxonomy.

Classification happens once, as close to the failure as possible. Outer
layers may enrich an existing error with more context, but never
reclassify it.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional


class ErrorKind(Enum):
    """Domain error kinds shared by all backends."""
    UNAUTHORIZED = "Unauthorized"
    NOT_FOUND = "NotFound"
    CONFLICT = "Conflict"
    TIMEOUT = "Timeout"
    UNSUPPORTED = "Unsupported"
    VALIDATION_FAILED = "ValidationFailed"
    UPSTREAM_ERROR = "UpstreamError"
    UNKNOWN = "Unknown"


REDACTED = "[Redacted]"

# Values longer than this are masked in logged/attached context
REDACT_LENGTH = 500

# Raw bodies attached to errors are truncated to this many characters
RESPONSE_BODY_LIMIT = REDACT_LENGTH

# Collections longer than this are condensed regardless of their key
CONDENSE_LENGTH = 25

# Catalog-like collections in vendor payloads
CONDENSE_KEYS = frozenset({
    "vs",
    "vpses",
    "ostemplates",
    "scripts",
    "plans",
    "servers",
    "servs",
    "users",
    "ips",
    "instances",
    "regions",
    "os",
    "public_isos",
})

SECRET_KEYS = frozenset({
    "password",
    "pass",
    "rootpass",
    "user_pass",
    "newpass",
    "conf",
    "adminapikey",
    "adminapipass",
    "apikey",
    "api_key",
    "token",
    "authorization",
    "superpassword",
    # 20i reseller branding payloads
    "customheader",
    "passwordresetemail",
    "bannerurl",
    "billingdue",
    "passwordreset",
})

SECRET_SUFFIXES = ("password", "html", "emailcontent", "css")

TIMEOUT_PATTERN = re.compile(r"time[d]?[\s_-]?out", re.IGNORECASE)

VENDOR_ERROR_FIELDS = ("error", "fatal_error_text", "fatal_error_heading", "error_heading")


@dataclass(frozen=True)
class ClassifiedError:
    """A classified backend failure.

    ``data`` is safe to show to end users and to log. ``debug`` may hold raw
    vendor payloads and should only reach operators.
    """
    kind: ErrorKind
    message: str
    data: Dict[str, Any] = field(default_factory=dict)
    debug: Dict[str, Any] = field(default_factory=dict)
    retryable: bool = False

    def merged(
        self,
        data: Optional[Mapping[str, Any]] = None,
        debug: Optional[Mapping[str, Any]] = None,
    ) -> "ClassifiedError":
        """Return a copy whose context is the union of ours and the given maps.

        Keys already present are kept.
        """
        new_data = dict(data or {})
        new_data.update(self.data)
        new_debug = dict(debug or {})
        new_debug.update(self.debug)
        return ClassifiedError(
            kind=self.kind,
            message=self.message,
            data=new_data,
            debug=new_debug,
            retryable=self.retryable,
        )

    def to_dict(self, include_debug: bool = False) -> Dict[str, Any]:
        result = {
            "kind": self.kind.value,
            "message": self.message,
            "data": self.data,
            "retryable": self.retryable,
        }
        if include_debug:
            result["debug"] = self.debug
        return result

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


class ProviderError(Exception):
    """Exception carrying a ClassifiedError through the call chain."""

    def __init__(self, error: ClassifiedError, provider: str = ""):
        self.error = error
        self.provider = provider
        prefix = f"[{provider}] " if provider else ""
        super().__init__(f"{prefix}{error.message}")

    @property
    def kind(self) -> ErrorKind:
        return self.error.kind


class TransportError(Exception):
    """Network-level failure: the request never produced an HTTP response."""

    def __init__(self, message: str, url: str = "", timeout: bool = False):
        self.url = url
        self.timeout = timeout
        super().__init__(message)


# =========================================
# FACTORIES
# =========================================

def not_found(message: str, data: Optional[Mapping[str, Any]] = None) -> ProviderError:
    return ProviderError(ClassifiedError(ErrorKind.NOT_FOUND, message, redact(dict(data or {}))))


def unsupported(operation: str, provider: str = "") -> ProviderError:
    return ProviderError(
        ClassifiedError(ErrorKind.UNSUPPORTED, "Operation not supported", {"operation": operation}),
        provider,
    )


def validation_failed(message: str, data: Optional[Mapping[str, Any]] = None) -> ProviderError:
    return ProviderError(ClassifiedError(ErrorKind.VALIDATION_FAILED, message, redact(dict(data or {}))))


def upstream_error(
    message: str,
    data: Optional[Mapping[str, Any]] = None,
    debug: Optional[Mapping[str, Any]] = None,
) -> ProviderError:
    return ProviderError(ClassifiedError(
        ErrorKind.UPSTREAM_ERROR,
        message,
        redact(dict(data or {})),
        redact(dict(debug or {})),
    ))


# =========================================
# CONTEXT CONDENSING / REDACTION
# =========================================

def condense(response_data: Any) -> Any:
    """Replace catalog-sized collections with a one line summary.

    Vendor payloads routinely embed every plan, template or host server the
    panel knows about; attaching those verbatim to errors and logs is noise.
    """
    if not isinstance(response_data, Mapping):
        return response_data

    condensed = {}
    for key, value in response_data.items():
        if isinstance(value, (list, dict, tuple)):
            count = len(value)
            if (key in CONDENSE_KEYS and count > 1) or count > CONDENSE_LENGTH:
                condensed[key] = f"[redacted {count} items]"
                continue
        condensed[key] = value
    return condensed


def should_redact(value: Any, key: Any) -> bool:
    if not isinstance(value, str) or key == "error":
        return False
    lowered = str(key).lower() if key is not None else ""
    return (
        lowered in SECRET_KEYS
        or lowered.endswith(SECRET_SUFFIXES)
        or len(value) > REDACT_LENGTH
    )


def redact(value: Any, key: Any = None) -> Any:
    """Recursively mask secrets and oversized strings."""
    if isinstance(value, Mapping):
        return {k: redact(v, k) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [redact(v, key if isinstance(key, str) else i) for i, v in enumerate(value)]
    if should_redact(value, key):
        return REDACTED
    return value


# =========================================
# CLASSIFICATION
# =========================================

def is_timeout_message(message: str) -> bool:
    return bool(TIMEOUT_PATTERN.search(message or ""))


def classify_transport_failure(exc: TransportError) -> ClassifiedError:
    data = {"request_url": exc.url} if exc.url else {}
    debug = {"exception": str(exc)}
    if exc.timeout or is_timeout_message(str(exc)):
        return ClassifiedError(ErrorKind.TIMEOUT, "Provider API request timeout", data, debug, retryable=True)
    return ClassifiedError(ErrorKind.UPSTREAM_ERROR, "Provider API connection failed", data, debug, retryable=True)


def _flatten_errors(value: Any) -> List[str]:
    if value is None or value == "" or value is False:
        return []
    if isinstance(value, Mapping):
        if "message" in value:
            return _flatten_errors(value["message"])
        errors: List[str] = []
        for item in value.values():
            errors.extend(_flatten_errors(item))
        return errors
    if isinstance(value, (list, tuple)):
        errors = []
        for item in value:
            errors.extend(_flatten_errors(item))
        return errors
    return [str(value)]


def vendor_error_message(body: Any) -> Optional[str]:
    """Compose a message from a vendor error payload, or None if it has none."""
    if not isinstance(body, Mapping):
        return None
    if not any(body.get(name) for name in VENDOR_ERROR_FIELDS):
        return None

    message = "API Error"
    if body.get("title"):
        message += f" [{body['title']}]"
    for heading in ("fatal_error_heading", "error_heading"):
        if body.get(heading):
            message += f": {body[heading]}"
    if body.get("fatal_error_text"):
        message += f": {body['fatal_error_text']}"
    errors = _flatten_errors(body.get("error"))
    if errors:
        message += ": " + ", ".join(errors)
    return message


def response_context(response: Any) -> Dict[str, Any]:
    """Condensed, redacted context describing an HTTP response."""
    context: Dict[str, Any] = {"http_code": response.status}
    if getattr(response, "url", ""):
        context["request_url"] = response.url
    if response.data:
        context["response_data"] = redact(condense(response.data))
    else:
        context["response_body"] = redact((response.text or "")[:RESPONSE_BODY_LIMIT], "response_body")
    return context


def classify_response(response: Any) -> Optional[ClassifiedError]:
    """Classify an HTTP response; None means the response is a success."""
    status = response.status
    body = response.data
    vendor_message = vendor_error_message(body)
    context = response_context(response)

    status_kinds = {
        401: (ErrorKind.UNAUTHORIZED, "API authentication error"),
        404: (ErrorKind.NOT_FOUND, "Resource not found"),
        409: (ErrorKind.CONFLICT, "Resource conflict"),
    }
    if status in status_kinds:
        kind, message = status_kinds[status]
        if vendor_message:
            message = f"{message}: {vendor_message}"
        return ClassifiedError(kind, message, context)

    if vendor_message:
        return ClassifiedError(ErrorKind.UPSTREAM_ERROR, vendor_message, context)

    if not 200 <= status < 300:
        return ClassifiedError(ErrorKind.UPSTREAM_ERROR, f"API {status} Error", context)

    return None


def classify(failure: Any) -> ClassifiedError:
    """Classify any failure into a ClassifiedError.

    Accepts a TransportError, a non-2xx TransportResponse, an existing
    ProviderError (returned unchanged) or any other exception.
    """
    if isinstance(failure, ClassifiedError):
        return failure
    if isinstance(failure, ProviderError):
        return failure.error
    if isinstance(failure, TransportError):
        return classify_transport_failure(failure)
    if hasattr(failure, "status") and hasattr(failure, "data"):
        classified = classify_response(failure)
        if classified is None:
            return ClassifiedError(
                ErrorKind.UNKNOWN,
                "Unexpected provider API response",
                response_context(failure),
            )
        return classified
    return ClassifiedError(
        ErrorKind.UNKNOWN,
        "Unexpected provider error",
        debug={"exception": type(failure).__name__, "detail": redact(str(failure), "detail")},
    )


def wrap(
    exc: BaseException,
    data: Optional[Mapping[str, Any]] = None,
    debug: Optional[Mapping[str, Any]] = None,
    provider: str = "",
) -> ProviderError:
    """Build the ProviderError to raise at an outer boundary.

    Already classified errors keep their kind and message; only their
    context grows.
    """
    if isinstance(exc, ProviderError):
        return ProviderError(exc.error.merged(redact(dict(data or {})), redact(dict(debug or {}))),
                             exc.provider or provider)
    error = classify(exc).merged(redact(dict(data or {})), redact(dict(debug or {})))
    return ProviderError(error, provider)
