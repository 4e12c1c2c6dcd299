from __future__ import annotations

from accessgate.api.errors import ApiErrorCode, AuthError, ValidationError, to_error_payload


def test_to_error_payload_preserves_structured_detail() -> None:
    payload = to_error_payload(
        {"error_code": "AUTH_TOKEN_INVALID", "message": "Invalid"},
        401,
    )

    assert payload == {"error_code": "AUTH_TOKEN_INVALID", "message": "Invalid"}


def test_to_error_payload_normalizes_plain_string() -> None:
    payload = to_error_payload("boom", 500)

    assert payload == {"error_code": "HTTP_500", "message": "boom"}


def test_api_error_subclasses_carry_status_and_code() -> None:
    rejected = AuthError("Invalid refresh token", status_code=403)
    invalid = ValidationError("bad", error_code=ApiErrorCode.VERIFICATION_INVALID_TOKEN)

    assert rejected.status_code == 403
    assert rejected.detail["error_code"] == "AUTH_INVALID_CREDENTIALS"
    assert invalid.status_code == 400
    assert to_error_payload(invalid.detail, 400) == {
        "error_code": "VERIFICATION_INVALID_TOKEN",
        "message": "bad",
    }
