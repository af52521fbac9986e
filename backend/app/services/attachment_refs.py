"""
Attachment references.

A task stores its attachments as plain strings: either a root-relative path
under the public upload tree (``/uploads/task_.../file.pdf``) or the 24-hex id
of a stored blob. Form submissions deliver them as a single string, a list,
or a JSON-encoded string of either. Everything is parsed here once, at the
request boundary.
"""
import json
from dataclasses import dataclass
from typing import Iterable, List, Sequence, Union

from app.utils.ids import is_object_id


@dataclass(frozen=True)
class FilesystemRef:
    path: str

    def __str__(self) -> str:
        return self.path


@dataclass(frozen=True)
class BlobRef:
    blob_id: str

    def __str__(self) -> str:
        return self.blob_id


AttachmentRef = Union[FilesystemRef, BlobRef]


def _flatten(value) -> List[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        items: List[str] = []
        for item in value:
            items.extend(_flatten(item))
        return items
    if isinstance(value, str):
        text = value.strip()
        if text.startswith("[") or text.startswith('"'):
            try:
                decoded = json.loads(text)
            except ValueError:
                return [text]
            if isinstance(decoded, (list, str)):
                return _flatten(decoded)
        return [text]
    return [str(value).strip()]


def normalize_attachment_list(value) -> List[str]:
    """
    Coerce a string, a list of strings, or a JSON-encoded string of either into
    a list of non-blank strings. Order is kept and the result is idempotent.
    """
    return [item for item in _flatten(value) if item]


def parse_ref(value: str) -> AttachmentRef:
    if is_object_id(value):
        return BlobRef(value)
    return FilesystemRef(value)


def parse_refs(value) -> List[AttachmentRef]:
    return [parse_ref(item) for item in normalize_attachment_list(value)]


def filesystem_paths(refs: Iterable[AttachmentRef]) -> List[str]:
    return [ref.path for ref in refs if isinstance(ref, FilesystemRef)]


def merge_attachment_lists(*lists: Sequence[str]) -> List[str]:
    """Concatenate lists, dropping duplicates while keeping first occurrence."""
    merged: List[str] = []
    for values in lists:
        for value in normalize_attachment_list(values):
            if value not in merged:
                merged.append(value)
    return merged


def orphaned_refs(current, updated) -> List[AttachmentRef]:
    """References in ``current`` that no longer appear in ``updated``."""
    keep = set(normalize_attachment_list(updated))
    return [ref for ref in parse_refs(current) if str(ref) not in keep]
