"""Tests for lmss_hosting.errors - the shared classification table."""

import httpx
import pytest
from pydantic import BaseModel

from lmss_hosting.errors import (
    ErrorKind,
    InvalidRequestError,
    LMStudioError,
    ModelNotFoundError,
    NoModelAvailableError,
    NoModelsLoadedError,
    ServerUnavailableError,
    classify_exception,
    error_for_status,
    is_retryable_error,
    user_message_for,
)


class TestErrorKind:
    """Every kind carries fixed, displayable text."""

    @pytest.mark.parametrize("kind", list(ErrorKind))
    def test_every_kind_has_user_message(self, kind):
        assert kind.user_message
        assert kind.status_description

    def test_messages_are_distinct(self):
        messages = {kind.user_message for kind in ErrorKind}
        assert len(messages) == len(ErrorKind)


class TestClassifyOwnExceptions:
    """Our exception hierarchy classifies by its declared kind."""

    @pytest.mark.parametrize("exc, kind", [
        (ServerUnavailableError("down"), ErrorKind.SERVER_UNAVAILABLE),
        (NoModelsLoadedError("empty"), ErrorKind.NO_MODELS_LOADED),
        (ModelNotFoundError("missing"), ErrorKind.MODEL_NOT_FOUND),
        (InvalidRequestError("bad"), ErrorKind.INVALID_REQUEST),
        (NoModelAvailableError(), ErrorKind.MODEL_NOT_FOUND),
    ])
    def test_declared_kind(self, exc, kind):
        assert classify_exception(exc) is kind

    def test_base_error_falls_back_to_status(self):
        assert classify_exception(LMStudioError("boom", status_code=404)) is ErrorKind.MODEL_NOT_FOUND

    def test_base_error_without_hints_is_unknown(self):
        assert classify_exception(LMStudioError("boom")) is ErrorKind.UNKNOWN


class TestClassifyForeignExceptions:
    """httpx, builtin and pydantic exceptions."""

    def test_connect_error_is_server_unavailable(self):
        exc = httpx.ConnectError("Connection refused")
        assert classify_exception(exc) is ErrorKind.SERVER_UNAVAILABLE

    def test_timeout_is_server_unavailable(self):
        assert classify_exception(httpx.ReadTimeout("slow")) is ErrorKind.SERVER_UNAVAILABLE
        assert classify_exception(TimeoutError()) is ErrorKind.SERVER_UNAVAILABLE

    @pytest.mark.parametrize("status, kind", [
        (400, ErrorKind.INVALID_REQUEST),
        (404, ErrorKind.MODEL_NOT_FOUND),
        (422, ErrorKind.INVALID_REQUEST),
        (503, ErrorKind.SERVER_UNAVAILABLE),
    ])
    def test_http_status_error(self, status, kind):
        request = httpx.Request("POST", "http://localhost:1234/v1/chat/completions")
        response = httpx.Response(status, request=request)
        exc = httpx.HTTPStatusError("error", request=request, response=response)
        assert classify_exception(exc) is kind

    def test_validation_error_is_invalid_request(self):
        class Point(BaseModel):
            x: int

        with pytest.raises(Exception) as info:
            Point.model_validate({"x": "not a number"})
        assert classify_exception(info.value) is ErrorKind.INVALID_REQUEST

    def test_message_heuristic(self):
        assert classify_exception(RuntimeError("Model not found: foo")) is ErrorKind.MODEL_NOT_FOUND
        assert classify_exception(RuntimeError("No models loaded")) is ErrorKind.NO_MODELS_LOADED

    def test_unrecognised_is_unknown(self):
        assert classify_exception(RuntimeError("something odd")) is ErrorKind.UNKNOWN

    def test_user_message_for(self):
        assert user_message_for(httpx.ConnectError("x")) == ErrorKind.SERVER_UNAVAILABLE.user_message


class TestIsRetryableError:

    def test_connect_error_is_retryable(self):
        assert is_retryable_error(httpx.ConnectError("refused"))

    def test_503_is_retryable(self):
        assert is_retryable_error(ServerUnavailableError("busy", status_code=503))

    def test_model_loading_is_retryable(self):
        assert is_retryable_error(LMStudioError("Failed to load model 'x'"))

    def test_invalid_request_is_not_retryable(self):
        assert not is_retryable_error(InvalidRequestError("bad", status_code=400))


class TestErrorForStatus:
    """HTTP statuses map to the exception type of their classified kind."""

    @pytest.mark.parametrize("status, error_type", [
        (400, InvalidRequestError),
        (404, ModelNotFoundError),
        (422, InvalidRequestError),
        (502, ServerUnavailableError),
        (503, ServerUnavailableError),
        (504, ServerUnavailableError),
    ])
    def test_mapped_status(self, status, error_type):
        exc = error_for_status(status, "LM Studio error: nope")
        assert type(exc) is error_type
        assert exc.status_code == status
        assert classify_exception(exc) is exc.kind

    def test_unmapped_status_is_base_error(self):
        exc = error_for_status(500, "boom")
        assert type(exc) is LMStudioError
        assert classify_exception(exc) is ErrorKind.UNKNOWN
