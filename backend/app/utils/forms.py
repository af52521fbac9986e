"""
Helpers for reading multipart task forms.

Values arrive as strings ("true"/"false" flags, JSON-encoded sub-documents,
ISO timestamps) next to uploaded files, sometimes under numbered keys
(``newAttachments_0``) and sometimes repeated under one key.
"""
from datetime import datetime, timezone
from typing import Any, List, Optional
import json

from starlette.datastructures import FormData, UploadFile

from app.services.attachment_store import IncomingFile
from app.utils.errors import ValidationError


def form_str(form: FormData, key: str) -> Optional[str]:
    value = form.get(key)
    if value is None or isinstance(value, UploadFile):
        return None
    return str(value)


def form_bool(form: FormData, key: str) -> bool:
    return form_str(form, key) == "true"


def form_int(form: FormData, key: str, default: int = 0) -> int:
    try:
        return int(form_str(form, key) or default)
    except ValueError:
        return default


def parse_json_field(raw: Optional[str], field_name: str) -> Any:
    if raw is None or raw == "":
        return None
    try:
        return json.loads(raw)
    except ValueError:
        raise ValidationError(f"Invalid {field_name} format: must be valid JSON")


def parse_datetime(raw: Optional[str], field_name: str = "date") -> Optional[datetime]:
    """Parse an ISO-8601 timestamp into naive UTC."""
    if not raw:
        return None
    text = raw.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        value = datetime.fromisoformat(text)
    except ValueError:
        raise ValidationError(f"Invalid {field_name}: expected an ISO-8601 date")
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def string_values(form: FormData, key: str) -> List[str]:
    return [str(value) for value in form.getlist(key) if not isinstance(value, UploadFile)]


def prefixed_string_values(form: FormData, prefix: str) -> List[str]:
    """String values of every key starting with ``prefix`` (existingX, existingX[0], ...)."""
    return [
        str(value)
        for key, value in form.multi_items()
        if key.startswith(prefix) and not isinstance(value, UploadFile)
    ]


def upload_values(form: FormData, key: str) -> List[UploadFile]:
    return [value for value in form.getlist(key) if isinstance(value, UploadFile)]


def numbered_uploads(form: FormData, prefix: str, count: int) -> List[UploadFile]:
    """Files sent as ``{prefix}0 .. {prefix}{count-1}``."""
    files = []
    for index in range(count):
        value = form.get(f"{prefix}{index}")
        if isinstance(value, UploadFile):
            files.append(value)
    return files


async def read_upload(upload: UploadFile) -> IncomingFile:
    data = await upload.read()
    return IncomingFile(
        filename=upload.filename or "",
        content_type=upload.content_type,
        data=data,
    )


async def read_uploads(uploads: List[UploadFile]) -> List[IncomingFile]:
    """Read uploads into memory, dropping empty parts."""
    files = []
    for upload in uploads:
        incoming = await read_upload(upload)
        if incoming.size > 0:
            files.append(incoming)
    return files
