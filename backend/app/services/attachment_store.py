"""
Attachment storage over two backends: a public filesystem tree (path-addressed)
and the stored-blob table (id-addressed).
"""
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, FrozenSet, Iterable, Optional
import logging
import random
import re
import shutil
import string
import time
import uuid

from fastapi import Depends
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from app.config import settings
from app.database import get_session_factory
from app.models.blob import StoredBlob
from app.services.attachment_refs import AttachmentRef, BlobRef, FilesystemRef, parse_ref
from app.utils.errors import NotFoundError, StorageError, ValidationError
from app.utils.ids import is_object_id

logger = logging.getLogger(__name__)

UPLOADS_PREFIX = "/uploads"
SHARED_TASKS_FOLDER = f"{UPLOADS_PREFIX}/tasks"

DOCUMENT_MIME_TYPES = frozenset({
    "application/pdf",
    "image/jpeg",
    "image/png",
    "image/gif",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.ms-excel",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "text/plain",
})

DOCUMENT_EXTENSIONS = frozenset({
    ".pdf", ".jpg", ".jpeg", ".png", ".gif", ".xlsx", ".xls", ".doc", ".docx", ".txt",
})

EXTENDED_MIME_TYPES = DOCUMENT_MIME_TYPES | frozenset({
    "image/bmp",
    "text/csv",
    "application/rtf",
    "application/vnd.oasis.opendocument.text",
    "application/vnd.oasis.opendocument.spreadsheet",
    "application/vnd.oasis.opendocument.presentation",
})

EXTENDED_EXTENSIONS = DOCUMENT_EXTENSIONS | frozenset({
    ".bmp", ".csv", ".rtf", ".odt", ".ods", ".odp",
})


@dataclass(frozen=True)
class UploadPolicy:
    """Allow-lists and size ceiling applied before any write."""
    mime_types: FrozenSet[str]
    extensions: FrozenSet[str]
    max_bytes: int

    def describe_allowed(self) -> str:
        return ", ".join(sorted(self.extensions)) or ", ".join(sorted(self.mime_types))


DEFAULT_POLICY = UploadPolicy(DOCUMENT_MIME_TYPES, DOCUMENT_EXTENSIONS, settings.MAX_UPLOAD_BYTES)
EXTENDED_POLICY = UploadPolicy(EXTENDED_MIME_TYPES, EXTENDED_EXTENSIONS, settings.MAX_UPLOAD_BYTES)
# Assignment files are documents and images only, no plain text
ASSIGNMENT_POLICY = UploadPolicy(
    DOCUMENT_MIME_TYPES - {"text/plain"}, DOCUMENT_EXTENSIONS - {".txt"}, settings.MAX_UPLOAD_BYTES,
)
# Developer uploads are checked by MIME type only
DEVELOPER_POLICY = UploadPolicy(DOCUMENT_MIME_TYPES, frozenset(), settings.DEVELOPER_MAX_UPLOAD_BYTES)


@dataclass
class IncomingFile:
    """An uploaded file read fully into memory."""
    filename: str
    content_type: Optional[str]
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def extension(self) -> str:
        return Path(self.filename or "").suffix.lower()


@dataclass
class BlobFile:
    data: bytes
    filename: str
    content_type: str


@dataclass
class AttachmentInfo:
    """Attachment metadata resolved without downloading content."""
    ref: AttachmentRef
    filename: Optional[str]
    content_type: Optional[str]
    size: int
    extra: Dict[str, Any] = field(default_factory=dict)


def sanitize_filename(name: str) -> str:
    return re.sub(r"[^a-zA-Z0-9.-]", "_", name or "file")


def _random_suffix(length: int = 7) -> str:
    return "".join(random.choices(string.ascii_lowercase + string.digits, k=length))


def mint_task_folder() -> str:
    return f"{UPLOADS_PREFIX}/task_{int(time.time() * 1000)}_{_random_suffix()}"


def task_folder_hint(existing: Iterable[str]) -> str:
    """Parent folder of the first filesystem attachment, or a fresh task folder."""
    for value in existing:
        ref = parse_ref(value)
        if isinstance(ref, FilesystemRef) and ref.path.startswith(UPLOADS_PREFIX + "/"):
            parent = ref.path.rsplit("/", 1)[0]
            if parent and parent != UPLOADS_PREFIX:
                return parent
    return mint_task_folder()


def validate_upload(upload: IncomingFile, policy: UploadPolicy = DEFAULT_POLICY, field_name: str = "attachment") -> None:
    """
    Reject a file only when neither its MIME type nor its extension is allowed,
    or when it is larger than the policy ceiling.
    """
    type_allowed = (upload.content_type or "") in policy.mime_types
    extension_allowed = upload.extension in policy.extensions
    if not type_allowed and not extension_allowed:
        raise ValidationError(
            f"File type not allowed for {field_name}. Allowed types: {policy.describe_allowed()}"
        )
    if upload.size > policy.max_bytes:
        raise ValidationError(
            f"File size exceeds {policy.max_bytes // (1024 * 1024)}MB limit for {field_name}"
        )


class AttachmentStore:
    """Uniform write/read/delete over the filesystem tree and the blob table."""

    def __init__(self, session_factory: sessionmaker, public_dir: Optional[Path] = None):
        self.session_factory = session_factory
        self.public_dir = Path(public_dir or settings.PUBLIC_DIR)
        self.uploads_root = self.public_dir / UPLOADS_PREFIX.lstrip("/")

    # ------------------------------------------------------------------
    # Filesystem backend
    # ------------------------------------------------------------------

    def resolve_path(self, path: str) -> Path:
        """Map a root-relative upload path to disk; refuse anything outside uploads."""
        full_path = (self.public_dir / path.lstrip("/")).resolve()
        root = self.uploads_root.resolve()
        if full_path != root and root not in full_path.parents:
            raise ValidationError(f"Invalid attachment path: {path}")
        return full_path

    def store_to_filesystem(self, folder: str, upload: IncomingFile, naming: str = "timestamp") -> str:
        """
        Write an upload under ``folder`` and return its root-relative path.

        naming="timestamp" keeps the sanitized original name behind a
        millisecond prefix and a random suffix; naming="uuid" uses a fresh uuid
        plus the extension.
        """
        if naming == "uuid":
            filename = f"{uuid.uuid4()}{upload.extension}"
        else:
            filename = f"{int(time.time() * 1000)}_{_random_suffix()}_{sanitize_filename(upload.filename)}"

        relative_path = f"{folder.rstrip('/')}/{filename}"
        full_path = self.resolve_path(relative_path)
        try:
            full_path.parent.mkdir(parents=True, exist_ok=True)
            with open(full_path, "wb") as buffer:
                buffer.write(upload.data)
        except OSError as e:
            raise StorageError("Failed to save file", error=str(e))

        logger.debug("Stored %s (%d bytes) at %s", upload.filename, upload.size, relative_path)
        return relative_path

    def read_file(self, path: str) -> bytes:
        try:
            full_path = self.resolve_path(path)
        except ValidationError:
            raise NotFoundError("File not found")
        if not full_path.is_file():
            raise NotFoundError("File not found")
        try:
            return full_path.read_bytes()
        except OSError as e:
            raise StorageError("Failed to read file", error=str(e))

    def delete_filesystem_file(self, path: str) -> bool:
        """Best-effort unlink. Failures are logged, never raised."""
        try:
            self.resolve_path(path).unlink()
            logger.info("Deleted attachment: %s", path)
            return True
        except Exception as e:
            logger.warning("Error deleting attachment %s: %s", path, e)
            return False

    def delete_filesystem_folder(self, path: str) -> bool:
        """Best-effort recursive removal. Failures are logged, never raised."""
        try:
            folder = self.resolve_path(path)
            if folder == self.uploads_root.resolve():
                raise ValidationError("Refusing to remove the uploads root")
            shutil.rmtree(folder)
            logger.info("Deleted attachments folder: %s", path)
            return True
        except Exception as e:
            logger.warning("Error deleting attachments folder %s: %s", path, e)
            return False

    # ------------------------------------------------------------------
    # Blob backend
    # ------------------------------------------------------------------

    def store_to_blob(
        self,
        data: bytes,
        filename: str,
        content_type: Optional[str],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Persist bytes as a stored blob and return its id."""
        blob_metadata = {
            "originalName": filename,
            "uploadedAt": datetime.utcnow().isoformat(),
            **(metadata or {}),
        }
        blob = StoredBlob(
            filename=filename,
            content_type=content_type or "application/octet-stream",
            length=len(data),
            file_metadata=blob_metadata,
            data=data,
        )
        try:
            with self.session_factory() as session:
                session.add(blob)
                session.commit()
                blob_id = blob.id
        except SQLAlchemyError as e:
            logger.error("Blob upload failed for %s: %s", filename, e)
            raise StorageError("Failed to store file", error=str(e))
        return str(blob_id)

    def store_upload_to_blob(self, upload: IncomingFile, metadata: Optional[Dict[str, Any]] = None) -> str:
        return self.store_to_blob(upload.data, upload.filename, upload.content_type, metadata)

    def blob_info(self, blob_id: str) -> Optional[AttachmentInfo]:
        if not is_object_id(blob_id):
            return None
        try:
            with self.session_factory() as session:
                blob = session.get(StoredBlob, blob_id)
                if blob is None:
                    return None
                return AttachmentInfo(
                    ref=BlobRef(blob_id),
                    filename=blob.filename,
                    content_type=blob.content_type,
                    size=int(blob.length or 0),
                    extra=dict(blob.file_metadata or {}),
                )
        except SQLAlchemyError as e:
            raise StorageError("Failed to look up file", error=str(e))

    def read_blob(self, blob_id: str) -> BlobFile:
        """Load a blob's bytes with its recorded filename and content type."""
        if not is_object_id(blob_id):
            raise NotFoundError("File not found")
        try:
            with self.session_factory() as session:
                blob = session.get(StoredBlob, blob_id)
                if blob is None:
                    raise NotFoundError("File not found")
                return BlobFile(
                    data=bytes(blob.data),
                    filename=blob.filename or f"file-{blob_id}",
                    content_type=blob.content_type or "application/octet-stream",
                )
        except SQLAlchemyError as e:
            raise StorageError("Failed to read file", error=str(e))

    # ------------------------------------------------------------------
    # Either backend
    # ------------------------------------------------------------------

    def describe(self, ref: AttachmentRef) -> Optional[AttachmentInfo]:
        """Resolve name and size without reading content; None if missing."""
        if isinstance(ref, BlobRef):
            return self.blob_info(ref.blob_id)
        try:
            full_path = self.resolve_path(ref.path)
        except ValidationError:
            return None
        if not full_path.is_file():
            return None
        return AttachmentInfo(ref=ref, filename=full_path.name, content_type=None, size=full_path.stat().st_size)

    def read(self, ref: AttachmentRef) -> bytes:
        if isinstance(ref, BlobRef):
            return self.read_blob(ref.blob_id).data
        return self.read_file(ref.path)


def get_attachment_store(session_factory: sessionmaker = Depends(get_session_factory)) -> AttachmentStore:
    """FastAPI dependency for the attachment store."""
    return AttachmentStore(session_factory)
