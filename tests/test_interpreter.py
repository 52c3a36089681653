"""Unit tests for error interpretation of provider responses."""

import httpx
import pytest
from pydantic import BaseModel

from connectors_sdk.errors import (
    AccessTokenError,
    BadRequestError,
    CallerError,
    ConnectorError,
    ForbiddenError,
    LimitExceededError,
    NotFoundError,
    RetryableError,
    ServerError,
)
from connectors_sdk.interpreter import (
    ErrorHandler,
    FormatSwitch,
    FormatTemplate,
    HTMLErrorHandler,
    MissingContentTypeError,
    combine_messages,
    html_error_message,
    interpret_error,
    status_error,
)


def response(status, content=b"", content_type=None):
    headers = {"Content-Type": content_type} if content_type else {}
    return httpx.Response(status, content=content, headers=headers)


class ApiError(BaseModel):
    message: str

    def combine_err(self, base):
        return combine_messages(base, self.message)


class ApiErrors(BaseModel):
    errors: list[dict]

    def combine_err(self, base):
        return combine_messages(base, *(e.get("detail", "") for e in self.errors))


@pytest.mark.parametrize(
    "status,expected",
    [
        (401, AccessTokenError),
        (403, ForbiddenError),
        (404, NotFoundError),
        (429, LimitExceededError),
        (422, BadRequestError),
        (503, ServerError),
    ],
)
def test_status_mapping(status, expected):
    err = status_error(response(status, b"boom"), b"boom")
    assert type(err) is expected
    assert err.status == status
    assert err.http_error.text == "boom"


def test_categories():
    assert issubclass(NotFoundError, RetryableError)
    assert issubclass(LimitExceededError, RetryableError)
    assert issubclass(BadRequestError, CallerError)


def test_interpret_error_raises():
    with pytest.raises(ForbiddenError, match="forbidden: nope"):
        interpret_error(response(403, b"nope"), b"nope")


class TestFormatSwitch:
    switch = FormatSwitch(
        FormatTemplate(["errors"], ApiErrors),
        FormatTemplate(["message"], ApiError),
    )

    def test_first_matching_template(self):
        body = b'{"message": "record missing"}'
        with pytest.raises(NotFoundError, match="not found: record missing") as exc_info:
            self.switch.handle_error_response(response(404, body, "application/json"), body)
        assert exc_info.value.status == 404

    def test_list_shape(self):
        body = b'{"errors": [{"detail": "bad email"}, {"detail": "bad phone"}]}'
        with pytest.raises(BadRequestError, match="bad email; bad phone"):
            self.switch.handle_error_response(response(400, body, "application/json"), body)

    def test_unrecognised_shape_keeps_status_error(self):
        body = b'{"oops": true}'
        with pytest.raises(ServerError):
            self.switch.handle_error_response(response(500, body, "application/json"), body)

    def test_callable_template(self):
        class Descriptor:
            def __init__(self, payload):
                self.code = payload["code"]

            def combine_err(self, base):
                return combine_messages(base, f"code {self.code}")

        switch = FormatSwitch(FormatTemplate(["code"], Descriptor))
        body = b'{"code": 17}'
        with pytest.raises(BadRequestError, match="code 17"):
            switch.handle_error_response(response(400, body, "application/json"), body)


class TestErrorHandler:
    def test_json_dispatch(self):
        handler = ErrorHandler(json=FormatSwitch(FormatTemplate(["message"], ApiError)))
        body = b'{"message": "slow down"}'
        with pytest.raises(LimitExceededError, match="slow down"):
            handler(response(429, body, "application/json; charset=utf-8"), body)

    def test_html_title(self):
        body = b"<html><head><title>Bad Gateway</title></head><body><p>x</p></body></html>"
        with pytest.raises(ServerError, match="Bad Gateway"):
            ErrorHandler()(response(502, body, "text/html"), body)

    def test_missing_content_type(self):
        with pytest.raises(MissingContentTypeError):
            ErrorHandler()(response(500, b"oops"), b"oops")

    def test_empty_body_without_content_type(self):
        with pytest.raises(NotFoundError):
            ErrorHandler()(response(404), b"")

    def test_unknown_media_type_falls_back(self):
        with pytest.raises(ForbiddenError):
            ErrorHandler()(response(403, b"no", "text/plain"), b"no")

    def test_custom_responder(self):
        class Teapot(ConnectorError):
            """Teapot."""

        class Responder:
            def handle_error_response(self, rsp, body):
                raise Teapot()

        handler = ErrorHandler(custom={"application/vnd.tea": Responder()})
        with pytest.raises(Teapot):
            handler(response(418, b"x", "application/vnd.tea"), b"x")


def test_html_error_message_second_paragraph():
    body = b"<html><body><p>Error</p><p>Service unavailable</p></body></html>"
    assert html_error_message(body) == "Service unavailable"


def test_html_handler_without_message():
    with pytest.raises(ServerError):
        HTMLErrorHandler().handle_error_response(response(500, b"<html></html>", "text/html"), b"<html></html>")
