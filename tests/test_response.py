"""
ApiCommons — Response Envelope Unit Tests
==========================================

What we test:
    ✅ default success / failure conversions (200 "OK", 400 message)
    ✅ explicit status and message override defaults
    ✅ wire shape uses statusCode and mirrors it on the HTTP status line
    ✅ failure envelopes are byte-identical across builds
    ✅ collection, empty-collection and paged payloads
"""

import json

import pytest
from pydantic import ValidationError as PydanticValidationError

from apicommons.exceptions import NotFoundError
from apicommons.result import Result
from apicommons.schemas.pagination import PagedRequest, PagedResult
from apicommons.schemas.response import ApiResponse, envelope_response, respond


class TestDefaultConversion:
    """Tests for Result → envelope defaults."""

    def test_success_value_round_trip(self):
        envelope = ApiResponse.from_result(Result.success({"id": 7}))
        assert envelope.status_code == 200
        assert envelope.error is False
        assert envelope.data == {"id": 7}
        assert envelope.message == ["OK"]

    def test_empty_string_success_is_not_failure(self):
        envelope = ApiResponse.from_result(Result.from_value(""))
        assert envelope.error is False
        assert envelope.data == ""

    def test_failure_uses_exception_message(self):
        envelope = ApiResponse.from_result(Result.failure(ValueError("can not be zero")))
        assert envelope.status_code == 400
        assert envelope.error is True
        assert envelope.data is None
        assert envelope.message == ["can not be zero"]

    def test_failure_prefers_project_message_attribute(self):
        envelope = ApiResponse.from_exception(NotFoundError("category", "3"))
        assert envelope.message == ["category with ID '3' was not found"]

    def test_failure_without_text_uses_class_name(self):
        envelope = ApiResponse.from_exception(KeyboardInterrupt())
        assert envelope.message == ["KeyboardInterrupt"]


class TestExplicitFactories:
    """Tests for success()/fail() overrides."""

    def test_explicit_success(self):
        envelope = ApiResponse.success(201, {"id": 1}, "Created")
        assert envelope.status_code == 201
        assert envelope.message == ["Created"]
        assert envelope.error is False

    def test_status_only_success_has_no_message(self):
        envelope = ApiResponse.success(204)
        assert envelope.message == []
        assert envelope.data is None

    def test_fail_without_data(self):
        assert ApiResponse.fail(500, "boom").to_wire() == {
            "data": None,
            "message": ["boom"],
            "error": True,
            "statusCode": 500,
        }

    def test_fail_with_data(self):
        envelope = ApiResponse.fail(409, "conflict", {"path": "/x"})
        assert envelope.data == {"path": "/x"}
        assert envelope.error is True

    def test_status_code_is_required(self):
        with pytest.raises(PydanticValidationError):
            ApiResponse(data=1, message=["OK"])

    def test_status_code_range_enforced(self):
        with pytest.raises(PydanticValidationError):
            ApiResponse.fail(0, "no status")

    def test_messages_keep_insertion_order(self):
        envelope = ApiResponse.fail(422, "first").add_message("second").add_message("third")
        assert envelope.message == ["first", "second", "third"]


class TestWireRendering:
    """Tests for envelope_response() / respond()."""

    def test_status_line_mirrors_status_code(self):
        response = envelope_response(ApiResponse.fail(503, "down"))
        assert response.status_code == 503
        body = json.loads(response.body)
        assert body["statusCode"] == 503
        assert body["error"] is True

    def test_respond_success(self):
        response = respond(Result.success([1, 2, 3]))
        assert response.status_code == 200
        assert json.loads(response.body) == {
            "data": [1, 2, 3],
            "message": ["OK"],
            "error": False,
            "statusCode": 200,
        }

    def test_failure_envelopes_are_byte_identical(self):
        error = ValueError("same input")
        first = ApiResponse.from_result(Result.failure(error)).model_dump_json(by_alias=True)
        second = ApiResponse.from_result(Result.failure(error)).model_dump_json(by_alias=True)
        assert first == second


class TestCollectionPayloads:
    """The envelope contract holds for any payload type."""

    @pytest.mark.parametrize("payload", [[], [{"a": 1}, {"a": 2}], {}, ()])
    def test_collections(self, payload):
        envelope = ApiResponse.from_value(payload)
        assert envelope.error is False
        assert envelope.status_code == 200
        assert envelope.data == payload

    def test_paged_result_payload(self):
        page = PagedResult.from_items(["a", "b"], total_count=5, request=PagedRequest(current_page=1, page_size=2))
        wire = ApiResponse.from_value(page).to_wire()
        assert wire["data"] == {
            "items": ["a", "b"],
            "total_count": 5,
            "current_page": 1,
            "page_size": 2,
            "total_pages": 3,
        }

    def test_empty_paged_result_payload(self):
        wire = ApiResponse.from_value(PagedResult.empty(PagedRequest())).to_wire()
        assert wire["data"]["items"] == []
        assert wire["data"]["total_pages"] == 0
        assert wire["message"] == ["OK"]
