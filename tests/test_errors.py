from ibkr.errors import (
    ApiError,
    AuthenticationError,
    ConfigurationError,
    ErrorKind,
    IBKRError,
    default_message_for_status,
    extract_error_details,
)

from conftest import DummyResponse


def test_extract_error_details_from_json_body():
    response = DummyResponse(400, payload={"errorMessage": "bad conid", "errorCode": 17},
                             headers={"X-Request-ID": "r-9"})

    details = extract_error_details(response)

    assert details["message"] == "bad conid"
    assert details["code"] == 17
    assert details["request_id"] == "r-9"


def test_extract_error_details_from_text_body():
    response = DummyResponse(502, text="  Bad Gateway " + "x" * 300)

    details = extract_error_details(response)

    assert details["message"].startswith("Bad Gateway")
    assert len(details["message"]) == 200


def test_extract_error_details_from_empty_body():
    assert extract_error_details(DummyResponse(500, text="")) == {}


def test_default_messages_by_status():
    assert default_message_for_status(404) == "Resource not found"
    assert default_message_for_status(599) == "Server error occurred"
    assert default_message_for_status(302) == "HTTP request failed with status 302"


def test_api_error_falls_back_to_status_message():
    error = ApiError.from_response(DummyResponse(404, text=""))

    assert error.message == "Resource not found"
    assert error.kind is ErrorKind.NOT_FOUND
    assert error.code == 404
    assert error.context["response_status"] == 404


def test_authentication_error_defaults_for_401_without_body():
    error = AuthenticationError.from_response(DummyResponse(401, text=""))

    assert error.kind is ErrorKind.INVALID_CREDENTIALS
    assert error.message == "Invalid credentials provided"
    assert error.suggestions


def test_authentication_error_kind_override():
    error = AuthenticationError.from_response(
        DummyResponse(400, payload={"error": "x"}), kind=ErrorKind.SESSION_INIT_FAILED)

    assert error.kind is ErrorKind.SESSION_INIT_FAILED
    assert error.message == "x"


def test_errors_share_base_class_and_serialize():
    error = ConfigurationError("bad key", kind=ErrorKind.INVALID_KEY, context={"operation": "load"})

    assert isinstance(error, IBKRError)
    assert str(error) == "bad key"
    assert error.to_dict() == {
        "error": "ConfigurationError",
        "kind": "invalid_key",
        "message": "bad key",
        "context": {"operation": "load"},
    }


def test_default_kinds_and_messages():
    assert AuthenticationError().kind is ErrorKind.AUTHENTICATION_FAILED
    assert str(ApiError()) == "API request failed"
    assert ConfigurationError().kind is ErrorKind.CONFIGURATION
