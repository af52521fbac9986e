"""
Zip packaging of a task's attachments under a size and wall-clock budget.

One packager class serves both download endpoints; they differ only in
parameters:

- the assignment download reads files one after another, compresses, stops
  adding entries past a soft cap and gives up after a few seconds;
- the bulk download fetches every file at once and stores entries
  uncompressed for speed.
"""
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import List, Optional, Protocol, Sequence, Tuple
import asyncio
import io
import logging
import zipfile

from app.services.attachment_refs import AttachmentRef
from app.services.attachment_store import AttachmentInfo
from app.utils.errors import PackagingTimeoutError, PayloadTooLargeError, TaskDeskError

logger = logging.getLogger(__name__)


class AttachmentSource(Protocol):
    def describe(self, ref: AttachmentRef) -> Optional[AttachmentInfo]: ...

    def read(self, ref: AttachmentRef) -> bytes: ...


@dataclass
class ArchiveResult:
    content: bytes
    filename: str
    entries: List[str] = field(default_factory=list)
    truncated: bool = False


def archive_filename(task_label: str, category: str) -> str:
    return f"task-{task_label}-{category}-attachments.zip"


def _unique_name(name: str, taken: set) -> str:
    if name not in taken:
        return name
    path = PurePosixPath(name)
    counter = 1
    while True:
        candidate = f"{path.stem}-{counter}{path.suffix}"
        if candidate not in taken:
            return candidate
        counter += 1


def _log_abandoned(task: "asyncio.Future") -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.warning("Abandoned archive packaging finished with error: %s", exc)
    else:
        logger.info("Abandoned archive packaging finished after the response was sent")


class ArchivePackager:
    """
    Build a zip from attachment references.

    Args:
        source: object exposing describe(ref) and read(ref)
        max_total_bytes: projected total above which nothing is downloaded
        soft_cap_bytes: once this many bytes are added, stop adding entries
        timeout_seconds: wall-clock budget for the whole packaging run
        parallelism: 1 reads sequentially, 0 fetches everything at once,
            n > 1 fetches at most n files concurrently
        compression: zipfile compression constant
    """

    def __init__(
        self,
        source: AttachmentSource,
        *,
        max_total_bytes: Optional[int],
        timeout_seconds: float,
        soft_cap_bytes: Optional[int] = None,
        parallelism: int = 1,
        compression: int = zipfile.ZIP_DEFLATED,
    ):
        self.source = source
        self.max_total_bytes = max_total_bytes
        self.soft_cap_bytes = soft_cap_bytes
        self.timeout_seconds = timeout_seconds
        self.parallelism = parallelism
        self.compression = compression

    async def package(self, refs: Sequence[AttachmentRef], filename: str) -> Optional[ArchiveResult]:
        """
        Race packaging against the timeout.

        Returns None when no reference resolves to a stored file. Raises
        PayloadTooLargeError when the projected size exceeds the guard and
        PackagingTimeoutError when the budget runs out; in-flight reads are
        left to finish on their own.
        """
        work = asyncio.ensure_future(self._build(list(refs), filename))
        done, _ = await asyncio.wait({work}, timeout=self.timeout_seconds)
        if work not in done:
            work.add_done_callback(_log_abandoned)
            logger.warning("Archive %s not ready after %.1fs, abandoning", filename, self.timeout_seconds)
            raise PackagingTimeoutError(
                "Archive took too long to prepare. Download the files individually."
            )
        return work.result()

    async def _build(self, refs: List[AttachmentRef], filename: str) -> Optional[ArchiveResult]:
        infos = [info for info in await self._describe_all(refs) if info is not None]
        if not infos:
            return None

        projected = sum(info.size for info in infos)
        if self.max_total_bytes is not None and projected > self.max_total_bytes:
            logger.info("Archive %s rejected: %d bytes projected", filename, projected)
            raise PayloadTooLargeError(
                f"Attachments total {projected // (1024 * 1024)}MB, which is too large to zip. "
                "Download the files individually."
            )

        if self.parallelism == 1:
            files, truncated = await self._fetch_sequential(infos)
        else:
            files, truncated = await self._fetch_parallel(infos)

        if not files:
            return None

        content, entries = await asyncio.to_thread(self._write_zip, files)
        logger.info("Packaged %d attachment(s) into %s (%d bytes)", len(entries), filename, len(content))
        return ArchiveResult(content=content, filename=filename, entries=entries, truncated=truncated)

    async def _describe_all(self, refs: List[AttachmentRef]) -> List[Optional[AttachmentInfo]]:
        if self.parallelism == 1:
            infos: List[Optional[AttachmentInfo]] = []
            for ref in refs:
                try:
                    infos.append(await asyncio.to_thread(self.source.describe, ref))
                except TaskDeskError as e:
                    logger.warning("Could not resolve attachment %s: %s", ref, e)
                    infos.append(None)
            return infos
        results = await asyncio.gather(
            *(asyncio.to_thread(self.source.describe, ref) for ref in refs),
            return_exceptions=True,
        )
        return [None if isinstance(result, BaseException) else result for result in results]

    def _over_soft_cap(self, processed: int) -> bool:
        return self.soft_cap_bytes is not None and processed >= self.soft_cap_bytes

    async def _fetch_sequential(self, infos: List[AttachmentInfo]) -> Tuple[List[Tuple[AttachmentInfo, bytes]], bool]:
        files: List[Tuple[AttachmentInfo, bytes]] = []
        processed = 0
        for info in infos:
            if self._over_soft_cap(processed):
                logger.info("Soft cap reached after %d bytes, finalizing early", processed)
                return files, True
            try:
                data = await asyncio.to_thread(self.source.read, info.ref)
            except TaskDeskError as e:
                logger.warning("Skipping attachment %s: %s", info.ref, e)
                continue
            files.append((info, data))
            processed += len(data)
        return files, False

    async def _fetch_parallel(self, infos: List[AttachmentInfo]) -> Tuple[List[Tuple[AttachmentInfo, bytes]], bool]:
        limit = self.parallelism if self.parallelism > 1 else len(infos)
        semaphore = asyncio.Semaphore(max(limit, 1))

        async def fetch(info: AttachmentInfo) -> bytes:
            async with semaphore:
                return await asyncio.to_thread(self.source.read, info.ref)

        results = await asyncio.gather(*(fetch(info) for info in infos), return_exceptions=True)

        files: List[Tuple[AttachmentInfo, bytes]] = []
        processed = 0
        for info, result in zip(infos, results):
            if isinstance(result, BaseException):
                logger.warning("Skipping attachment %s: %s", info.ref, result)
                continue
            if self._over_soft_cap(processed):
                return files, True
            files.append((info, result))
            processed += len(result)
        return files, False

    def _write_zip(self, files: List[Tuple[AttachmentInfo, bytes]]) -> Tuple[bytes, List[str]]:
        buffer = io.BytesIO()
        entries: List[str] = []
        taken: set = set()
        with zipfile.ZipFile(buffer, "w", compression=self.compression) as archive:
            for index, (info, data) in enumerate(files, start=1):
                name = _unique_name(info.filename or f"file-{index}", taken)
                taken.add(name)
                archive.writestr(name, data)
                entries.append(name)
        return buffer.getvalue(), entries
