"""
Tests for VPS Control Error Classification
==========================================

Tests the error taxonomy, classification of transport and HTTP failures,
and context condensing/redaction.
"""

import pytest

from vps_control.providers.errors import (
    REDACTED,
    ClassifiedError,
    ErrorKind,
    ProviderError,
    TransportError,
    classify,
    classify_response,
    condense,
    redact,
    unsupported,
    vendor_error_message,
    wrap,
)
from vps_control.providers.transport import TransportResponse


class TestTransportClassification:
    """Network failures."""

    def test_timed_out_message_is_timeout(self):
        """'timed out' in the message classifies as a retryable Timeout."""
        error = classify(TransportError("Connection timed out after 10001 ms", url="https://x/"))
        assert error.kind == ErrorKind.TIMEOUT
        assert error.retryable is True
        assert error.message == "Provider API request timeout"

    def test_timeout_flag_is_timeout(self):
        error = classify(TransportError("read operation failed", timeout=True))
        assert error.kind == ErrorKind.TIMEOUT

    def test_connection_failure(self):
        """Other network failures are retryable upstream errors."""
        error = classify(TransportError("Name or service not known", url="https://x/"))
        assert error.kind == ErrorKind.UPSTREAM_ERROR
        assert error.retryable is True
        assert error.message == "Provider API connection failed"
        assert error.data["request_url"] == "https://x/"


class TestResponseClassification:
    """HTTP responses."""

    def test_404_is_not_found(self):
        response = TransportResponse(404, data={"error": "Invalid instance-id."}, url="https://api/instances/x")
        error = classify_response(response)
        assert error.kind == ErrorKind.NOT_FOUND
        assert error.retryable is False
        assert error.message == "Resource not found: API Error: Invalid instance-id."
        assert error.data["http_code"] == 404
        assert error.data["request_url"] == "https://api/instances/x"

    def test_401_is_unauthorized(self):
        error = classify_response(TransportResponse(401, text="Unauthorized"))
        assert error.kind == ErrorKind.UNAUTHORIZED
        assert error.message == "API authentication error"
        assert error.data["response_body"] == "Unauthorized"

    def test_409_is_conflict(self):
        assert classify_response(TransportResponse(409, data={})).kind == ErrorKind.CONFLICT

    def test_vendor_error_in_200(self):
        """Vendor error payloads count as failures even with HTTP 200."""
        response = TransportResponse(200, data={"error": ["Invalid plan", "Invalid OS"]})
        error = classify_response(response)
        assert error.kind == ErrorKind.UPSTREAM_ERROR
        assert error.message == "API Error: Invalid plan, Invalid OS"

    def test_non_2xx_without_body(self):
        error = classify_response(TransportResponse(502, text=""))
        assert error.kind == ErrorKind.UPSTREAM_ERROR
        assert error.message == "API 502 Error"

    def test_success(self):
        assert classify_response(TransportResponse(200, data={"done": 1})) is None

    def test_long_body_truncated(self):
        error = classify_response(TransportResponse(500, text="x" * 2000))
        assert len(error.data["response_body"]) <= 500

    def test_vendor_message_parts(self):
        body = {
            "title": "Add VPS",
            "fatal_error_heading": "Fatal",
            "fatal_error_text": "License expired",
        }
        assert vendor_error_message(body) == "API Error [Add VPS]: Fatal: License expired"

    def test_vendor_nested_message(self):
        assert vendor_error_message({"error": {"message": "Bad token"}}) == "API Error: Bad token"

    def test_no_vendor_error(self):
        assert vendor_error_message({"done": True}) is None
        assert vendor_error_message("plain text") is None


class TestClassify:
    """Classification of arbitrary failures."""

    def test_provider_error_kept(self):
        original = unsupported("resize", "twentyi")
        assert classify(original) is original.error

    def test_unexpected_exception(self):
        error = classify(KeyError("vps"))
        assert error.kind == ErrorKind.UNKNOWN
        assert error.debug["exception"] == "KeyError"

    def test_wrap_never_reclassifies(self):
        """Outer layers only enrich context."""
        inner = ProviderError(ClassifiedError(ErrorKind.NOT_FOUND, "Plan not found", {"name": "vps-z"}))
        outer = wrap(inner, {"name": "other", "operation": "create"})
        assert outer.kind == ErrorKind.NOT_FOUND
        assert outer.error.message == "Plan not found"
        assert outer.error.data == {"name": "vps-z", "operation": "create"}

    def test_merged_keeps_existing_keys(self):
        error = ClassifiedError(ErrorKind.CONFLICT, "busy", {"a": 1}, {"d": 1})
        merged = error.merged({"a": 2, "b": 3}, {"d": 2, "e": 3})
        assert merged.data == {"a": 1, "b": 3}
        assert merged.debug == {"d": 1, "e": 3}

    def test_to_dict_hides_debug(self):
        error = ClassifiedError(ErrorKind.TIMEOUT, "slow", debug={"raw": "x"}, retryable=True)
        assert "debug" not in error.to_dict()
        assert error.to_dict(include_debug=True)["debug"] == {"raw": "x"}
        assert str(error) == "Timeout: slow"


class TestRedaction:
    """Secrets and oversized values are masked."""

    def test_password_keys(self):
        result = redact({"rootpass": "hunter2", "user_pass": "x", "hostname": "web1"})
        assert result == {"rootpass": REDACTED, "user_pass": REDACTED, "hostname": "web1"}

    def test_suffixes(self):
        result = redact({"SuperPassword": "s", "welcomeEmailHtml": "<p>"})
        assert result == {"SuperPassword": REDACTED, "welcomeEmailHtml": REDACTED}

    def test_long_values(self):
        assert redact({"notes": "y" * 501})["notes"] == REDACTED
        assert redact({"notes": "y" * 500})["notes"] == "y" * 500

    def test_error_key_never_redacted(self):
        message = "e" * 800
        assert redact({"error": message})["error"] == message

    def test_nested(self):
        result = redact({"done": {"newpass": "p", "vpsid": 1}, "list": [{"password": "p"}]})
        assert result["done"] == {"newpass": REDACTED, "vpsid": 1}
        assert result["list"] == [{"password": REDACTED}]

    def test_non_strings_untouched(self):
        assert redact({"password": 1234}) == {"password": 1234}


class TestCondense:
    """Catalog-sized collections are summarised."""

    def test_catalog_keys(self):
        data = {"plans": [{"plid": 1}, {"plid": 2}], "vpsid": 5}
        assert condense(data) == {"plans": "[redacted 2 items]", "vpsid": 5}

    def test_single_catalog_entry_kept(self):
        data = {"plans": [{"plid": 1}]}
        assert condense(data) == data

    def test_any_large_collection(self):
        data = {"whatever": list(range(26))}
        assert condense(data) == {"whatever": "[redacted 26 items]"}

    @pytest.mark.parametrize("value", [None, "text", 5, [1, 2]])
    def test_non_mappings_passthrough(self, value):
        assert condense(value) == value
