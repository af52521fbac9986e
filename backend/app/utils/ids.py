"""
Document identifiers.

Tasks, companies and stored blobs use 24-hex-character ids so that a blob
reference can be told apart from a filesystem path by shape alone.
"""
import re
import secrets

OBJECT_ID_PATTERN = re.compile(r"^[0-9a-fA-F]{24}$")


def new_object_id() -> str:
    return secrets.token_hex(12)


def is_object_id(value) -> bool:
    return isinstance(value, str) and bool(OBJECT_ID_PATTERN.match(value))
