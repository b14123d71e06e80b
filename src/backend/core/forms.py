"""
Form submission handling.

Editor routes receive urlencoded or multipart bodies whose field names follow
the nested convention used by the UI:

    intent=edit
    attachments[0].id=6f1c...
    attachments[0].altText=Front bumper
    attachments[1].file=<upload>
    permissionIds=a&permissionIds=b

`parse_form` turns such a body into nested dicts and lists, uploads into
`FilePayload` objects, and empty strings or empty uploads into None.
`read_form` adds the CSRF and honeypot checks that run before anything else.

Validation failures are raised as `FormValidationError` and rendered by the
application's exception handler as:

    400 {"result": {"status": "error", "error": {"attachments[1].file": ["..."]}}}
"""

import logging
import re
from typing import Any, Dict, Iterable, List, Optional, Union

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError
from starlette.datastructures import FormData, UploadFile

from core.config import settings
from core.sessions import get_csrf_token

logger = logging.getLogger(__name__)

_KEY_TOKEN = re.compile(r"\[(\d+)\]|([^.\[\]]+)")
_VALUE_ERROR_PREFIX = "Value error, "


class FilePayload(BaseModel):
    """An uploaded file read into memory."""

    filename: str
    content_type: str = "application/octet-stream"
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def extension(self) -> str:
        """Lower-case extension without the dot, '' when the name has none."""
        if "." not in self.filename:
            return ""
        return self.filename.rsplit(".", 1)[-1].lower()


def check_file_size(file: Optional[FilePayload]) -> Optional[FilePayload]:
    """Field validator body shared by every schema that accepts a file."""
    if file is not None and file.size > settings.file_upload.max_upload_size:
        raise ValueError("File size must be less than 3MB")
    return file


class FormValidationError(Exception):
    """Field-level errors for a submitted form, keyed by form field name."""

    def __init__(self, errors: Dict[str, List[str]]):
        super().__init__(errors)
        self.errors = errors

    @classmethod
    def single(cls, field: str, message: str) -> "FormValidationError":
        return cls({field: [message]})

    @classmethod
    def from_validation_error(cls, exc: ValidationError) -> "FormValidationError":
        errors: Dict[str, List[str]] = {}
        for error in exc.errors():
            field = format_field_path(error["loc"])
            message = error["msg"]
            if message.startswith(_VALUE_ERROR_PREFIX):
                message = message[len(_VALUE_ERROR_PREFIX):]
            errors.setdefault(field, []).append(message)
        return cls(errors)

    def to_payload(self) -> Dict[str, Any]:
        return {"result": {"status": "error", "error": self.errors}}


def format_field_path(loc: Iterable[Union[str, int]]) -> str:
    """
    Render a validation location the way form fields are named.

    Example:
        >>> format_field_path(("attachments", 1, "file"))
        'attachments[1].file'
    """
    path = ""
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
        elif path:
            path += f".{part}"
        else:
            path = str(part)
    return path


async def form_validation_exception_handler(
    request: Request, exc: FormValidationError
) -> JSONResponse:
    logger.info(f"Form validation failed | Path: {request.url.path} | Fields: {list(exc.errors)}")
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=exc.to_payload())


def _split_key(key: str) -> List[Union[str, int]]:
    parts: List[Union[str, int]] = []
    for index, name in _KEY_TOKEN.findall(key):
        parts.append(int(index) if index else name)
    return parts


def _assign(node: Dict[Any, Any], path: List[Union[str, int]], value: Any) -> None:
    head, *rest = path
    if not rest:
        node[head] = value
        return
    child = node.get(head)
    if not isinstance(child, dict):
        child = {}
        node[head] = child
    _assign(child, rest, value)


def _listify(node: Any) -> Any:
    """Turn dicts keyed only by indices into lists ordered by index."""
    if not isinstance(node, dict):
        return node
    converted = {key: _listify(value) for key, value in node.items()}
    if converted and all(isinstance(key, int) for key in converted):
        return [converted[key] for key in sorted(converted)]
    return converted


async def _convert(value: Union[str, UploadFile]) -> Any:
    if isinstance(value, UploadFile):
        data = await value.read()
        if not value.filename or not data:
            return None
        return FilePayload(
            filename=value.filename,
            content_type=value.content_type or "application/octet-stream",
            data=data,
        )
    if value == "":
        return None
    return value


async def parse_form(form: FormData) -> Dict[str, Any]:
    """Build a nested dict from a submitted form."""
    grouped: Dict[str, List[Any]] = {}
    for key, value in form.multi_items():
        grouped.setdefault(key, []).append(await _convert(value))

    root: Dict[Any, Any] = {}
    for key, values in grouped.items():
        path = _split_key(key)
        if not path:
            continue
        present = [v for v in values if v is not None]
        if len(values) == 1:
            value = values[0]
        else:
            value = present
        _assign(root, path, value)
    return _listify(root)


def check_honeypot(data: Dict[str, Any]) -> None:
    """Reject a public form whose hidden honeypot field was filled in."""
    if data.get(settings.security.honeypot_field):
        logger.warning("Honeypot field filled | Form rejected")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Form not submitted properly")


def validate_csrf(request: Request, data: Dict[str, Any]) -> None:
    """The submitted token must equal the one in the signed csrf cookie."""
    submitted = data.get(settings.security.csrf_field)
    expected = get_csrf_token(request)
    if not submitted or not expected or submitted != expected:
        logger.warning(f"CSRF validation failed | Path: {request.url.path}")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid CSRF token")


async def read_form(request: Request, *, honeypot: bool = False) -> Dict[str, Any]:
    """
    Parse the request body and run the pre-processing guards.

    Args:
        request: Incoming request
        honeypot: Also check the bot trap (public forms)

    Returns:
        Nested form data without the CSRF and honeypot fields
    """
    data = await parse_form(await request.form())
    validate_csrf(request, data)
    if honeypot:
        check_honeypot(data)
    data.pop(settings.security.csrf_field, None)
    data.pop(settings.security.honeypot_field, None)
    return data


def validate_model(schema: type, data: Dict[str, Any]) -> Any:
    """Validate `data` with a pydantic model, raising FormValidationError."""
    try:
        return schema.model_validate(data)
    except ValidationError as exc:
        raise FormValidationError.from_validation_error(exc) from exc


def as_list(value: Any) -> List[Any]:
    """Before-validator for repeated fields: one submitted value arrives as a scalar."""
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]
