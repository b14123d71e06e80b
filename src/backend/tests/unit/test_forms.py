"""
Unit tests for form parsing and validation errors.
"""

from typing import Annotated, List, Optional

import pytest
from fastapi import HTTPException
from pydantic import BeforeValidator, Field
from starlette.datastructures import FormData, UploadFile

from core.forms import (
    FilePayload,
    FormValidationError,
    as_list,
    check_honeypot,
    format_field_path,
    parse_form,
    validate_model,
)
from core.schema_base import HTTPSchemaModel
from services.attachments import AttachmentFieldSet


class Editor(HTTPSchemaModel):
    title: str = Field(..., min_length=1)
    tag_ids: Annotated[List[str], BeforeValidator(as_list)] = Field(default_factory=list)
    attachments: Annotated[List[AttachmentFieldSet], BeforeValidator(as_list)] = Field(
        default_factory=list
    )
    note: Optional[str] = None


class TestParseForm:
    @pytest.mark.asyncio
    async def test_nested_keys_become_lists_and_dicts(self):
        form = FormData(
            [
                ("title", "Gate"),
                ("attachments[1].altText", "second"),
                ("attachments[0].id", "a1"),
                ("attachments[0].altText", "first"),
            ]
        )

        data = await parse_form(form)

        assert data == {
            "title": "Gate",
            "attachments": [
                {"id": "a1", "altText": "first"},
                {"altText": "second"},
            ],
        }

    @pytest.mark.asyncio
    async def test_repeated_keys_collect_values(self):
        data = await parse_form(FormData([("tagIds", "a"), ("tagIds", "b"), ("tagIds", "")]))

        assert data == {"tagIds": ["a", "b"]}

    @pytest.mark.asyncio
    async def test_empty_strings_become_none(self):
        data = await parse_form(FormData([("note", "")]))

        assert data == {"note": None}

    @pytest.mark.asyncio
    async def test_uploads_become_payloads(self):
        import io

        upload = UploadFile(file=io.BytesIO(b"%PDF"), filename="scan.pdf")
        empty = UploadFile(file=io.BytesIO(b""), filename="")

        data = await parse_form(
            FormData([("attachments[0].file", upload), ("attachments[1].file", empty)])
        )

        first = data["attachments"][0]["file"]
        assert isinstance(first, FilePayload)
        assert first.data == b"%PDF"
        assert first.extension == "pdf"
        assert data["attachments"][1] == {"file": None}


class TestValidation:
    def test_error_paths_use_form_names(self):
        with pytest.raises(FormValidationError) as exc_info:
            validate_model(
                Editor,
                {"title": "", "attachments": [{"id": "a"}, {"file": "not-a-file"}]},
            )

        errors = exc_info.value.errors
        assert "title" in errors
        assert "attachments[1].file" in errors

    def test_value_error_prefix_is_stripped(self):
        big = FilePayload(filename="big.bin", data=b"x" * (10 * 1024 * 1024))

        with pytest.raises(FormValidationError) as exc_info:
            validate_model(Editor, {"title": "x", "attachments": [{"file": big}]})

        assert exc_info.value.errors == {
            "attachments[0].file": ["File size must be less than 3MB"]
        }

    def test_single_value_becomes_list(self):
        editor = validate_model(Editor, {"title": "x", "tagIds": "only"})

        assert editor.tag_ids == ["only"]

    def test_payload_shape(self):
        error = FormValidationError.single("", "Invalid username or password")

        assert error.to_payload() == {
            "result": {"status": "error", "error": {"": ["Invalid username or password"]}}
        }

    @pytest.mark.parametrize(
        "loc,expected",
        [
            (("attachments", 1, "file"), "attachments[1].file"),
            (("email",), "email"),
            (("visitors", 0), "visitors[0]"),
        ],
    )
    def test_format_field_path(self, loc, expected):
        assert format_field_path(loc) == expected


class TestHoneypot:
    def test_filled_honeypot_rejected(self):
        with pytest.raises(HTTPException) as exc_info:
            check_honeypot({"name__confirm": "bot"})

        assert exc_info.value.status_code == 400

    def test_empty_honeypot_passes(self):
        check_honeypot({"name__confirm": None})
