"""
Task API endpoints.

Multipart forms carry the task fields as strings next to uploaded files, so
most write endpoints read ``request.form()`` directly and hand it to the
TaskService facet for that screen.
"""
from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from fastapi.responses import JSONResponse
from typing import List, Optional
import logging

from ..schemas.task import (
    TaskResponse,
    BulkUnpostRequest,
    BulkUnpostResponse,
    AssignmentRemarksRequest,
    DeveloperUpdateResponse,
    AttachmentFileList,
    MessageResponse,
)
from ..services.archive_packager import ArchivePackager, ArchiveResult
from ..services.attachment_store import AttachmentStore, BlobFile, get_attachment_store
from ..services.task_service import (
    TaskService,
    get_assignment_packager,
    get_bulk_packager,
    get_task_service,
)
from ..utils.auth import require_permission
from ..utils.ids import is_object_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tasks", tags=["tasks"])


def _safe_filename(name: str) -> str:
    cleaned = "".join(c for c in name if c.isalnum() or c in (" ", "_", "-", ".")).strip()
    return cleaned or "file"


def _download_response(blob: BlobFile) -> Response:
    return Response(
        content=blob.data,
        media_type=blob.content_type,
        headers={
            "Content-Disposition": f'attachment; filename="{_safe_filename(blob.filename)}"',
            "Content-Length": str(len(blob.data)),
        },
    )


def _archive_response(archive: ArchiveResult) -> Response:
    headers = {"Content-Disposition": f'attachment; filename="{archive.filename}"'}
    if archive.truncated:
        headers["X-Archive-Truncated"] = "true"
    return Response(content=archive.content, media_type="application/zip", headers=headers)


def _no_attachments() -> JSONResponse:
    return JSONResponse({"message": "No attachments available", "files": []})


async def _multipart_form(request: Request):
    content_type = request.headers.get("content-type", "")
    if "multipart/form-data" not in content_type:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Content-Type must be multipart/form-data"
        )
    return await request.form()


@router.get("")
async def list_or_download(
    id: Optional[str] = Query(None, description="Return a single task"),
    fileId: Optional[str] = Query(None, description="Download a stored blob"),
    service: TaskService = Depends(get_task_service),
    store: AttachmentStore = Depends(get_attachment_store),
):
    """
    List all tasks.

    With ``fileId`` the stored blob is returned as a download; with ``id`` the
    matching task is returned as a one-element list.
    """
    if fileId:
        if not is_object_id(fileId):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid fileId")
        return _download_response(store.read_blob(fileId))

    if id:
        if not is_object_id(id):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid task id")
        return [TaskResponse.model_validate(service.get_task(id)).model_dump(by_alias=True, mode="json")]

    return [TaskResponse.model_validate(task).model_dump(by_alias=True, mode="json") for task in service.list_tasks()]


@router.post("", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
async def create_task(
    request: Request,
    service: TaskService = Depends(get_task_service),
):
    """Create a task; attachments arrive as TasksAttachment_0..n-1 and go to the blob store."""
    form = await request.form()
    task = await service.create_task(form)
    return TaskResponse.model_validate(task)


@router.put(
    "",
    response_model=BulkUnpostResponse,
    dependencies=[Depends(require_permission("tasks.unpost"))],
)
async def bulk_unpost(
    payload: BulkUnpostRequest,
    service: TaskService = Depends(get_task_service),
):
    """Unpost several tasks at once. Requires the tasks.unpost permission."""
    modified = service.bulk_unpost(payload.taskIds)
    return BulkUnpostResponse(message="Tasks unposted successfully", modifiedCount=modified)


@router.get("/pending", response_model=List[TaskResponse])
async def list_pending(service: TaskService = Depends(get_task_service)):
    """Tasks waiting for assignment."""
    return [TaskResponse.model_validate(task) for task in service.list_pending()]


@router.get("/approved", response_model=List[TaskResponse])
async def list_approved(service: TaskService = Depends(get_task_service)):
    """Assigned (approved) tasks that are still posted, newest approval first."""
    return [TaskResponse.model_validate(task) for task in service.list_approved()]


@router.get("/completed", response_model=List[TaskResponse])
async def list_completed(service: TaskService = Depends(get_task_service)):
    return [TaskResponse.model_validate(task) for task in service.list_completed()]


@router.put("/assign", response_model=TaskResponse)
async def assign_task(
    request: Request,
    service: TaskService = Depends(get_task_service),
):
    """
    Assign a task to a developer.

    Uploaded ``files`` go to the blob store. Files that fail validation or
    storage are skipped; the assignment still succeeds.
    """
    form = await request.form()
    task = await service.assign_task(form)
    return TaskResponse.model_validate(task)


@router.get("/assign")
async def download_assignment_files(
    taskId: Optional[str] = Query(None),
    fileId: Optional[str] = Query(None),
    list_files: bool = Query(False, alias="list"),
    service: TaskService = Depends(get_task_service),
    store: AttachmentStore = Depends(get_attachment_store),
    packager: ArchivePackager = Depends(get_assignment_packager),
):
    """
    Download the files of an assignment.

    - ``fileId``: that single blob
    - ``list=true``: file names, sizes and download links
    - otherwise: a zip of the task and assignment attachments, built under
      an 8 second budget; 408/413 responses carry ``fallback: true`` so the
      client can fall back to per-file downloads
    """
    if not taskId:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="taskId is required")
    if not is_object_id(taskId):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid taskId")

    task = service.get_task(taskId)

    if fileId:
        if not is_object_id(fileId):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid file ID")
        return _download_response(store.read_blob(fileId))

    if list_files:
        files = service.attachment_file_list(task)
        if not files:
            return _no_attachments()
        return AttachmentFileList(message="Files retrieved successfully", taskCode=task.code, files=files)

    archive = await service.package_attachments(task, service.download_refs(task), "assignment", packager)
    if archive is None:
        return _no_attachments()
    return _archive_response(archive)


@router.put("/unpost/{task_id}", response_model=TaskResponse)
async def unpost_edit(
    task_id: str,
    request: Request,
    service: TaskService = Depends(get_task_service),
):
    """
    Edit an unposted task.

    Each attachment category is rebuilt from the ``existing...`` references
    the form sends back plus newly uploaded files; stored files that drop
    out of a category are removed from disk.
    """
    form = await request.form()
    task = await service.apply_unpost_update(task_id, form)
    return TaskResponse.model_validate(task)


@router.get("/developer_working", response_model=List[TaskResponse])
async def developer_queue(
    username: Optional[str] = Query(None),
    service: TaskService = Depends(get_task_service),
):
    """Open tasks for one developer."""
    return [TaskResponse.model_validate(task) for task in service.developer_queue(username or "")]


@router.put("/developer_working", response_model=DeveloperUpdateResponse)
async def developer_update(
    request: Request,
    service: TaskService = Depends(get_task_service),
):
    form = await request.form()
    task_id = await service.apply_developer_update(form)
    return DeveloperUpdateResponse(message="Task status updated successfully", taskId=task_id)


@router.post("/remarks", response_model=TaskResponse)
async def update_assignment_remarks(
    payload: AssignmentRemarksRequest,
    service: TaskService = Depends(get_task_service),
):
    """Update only the assignment remarks."""
    task = service.update_assignment_remarks(payload.taskId, payload.remarks)
    return TaskResponse.model_validate(task)


@router.get("/{task_id}/attachments/{category}/archive")
async def download_category_archive(
    task_id: str,
    category: str,
    service: TaskService = Depends(get_task_service),
    packager: ArchivePackager = Depends(get_bulk_packager),
):
    """Zip every file of one attachment category, fetched in parallel and stored uncompressed."""
    task = service.get_task(task_id)
    archive = await service.package_attachments(task, service.category_refs(task, category), category, packager)
    if archive is None:
        return _no_attachments()
    return _archive_response(archive)


@router.get("/{task_id}", response_model=TaskResponse)
async def get_task(
    task_id: str,
    service: TaskService = Depends(get_task_service),
):
    return TaskResponse.model_validate(service.get_task(task_id))


@router.put("/{task_id}", response_model=TaskResponse)
async def update_task(
    task_id: str,
    request: Request,
    service: TaskService = Depends(get_task_service),
):
    """
    Update a task.

    A form carrying ``completionApproved`` is a completion approval (files to
    the blob store, routed to completion or rejection fields by finalStatus);
    any other form is a general edit (files to the task's upload folder).
    """
    form = await _multipart_form(request)
    task = await service.update_task(task_id, form)
    return TaskResponse.model_validate(task)


@router.delete("/{task_id}", response_model=MessageResponse)
async def delete_task(
    task_id: str,
    service: TaskService = Depends(get_task_service),
):
    """Delete a task and its filesystem attachments. Blob attachments are kept."""
    service.delete_task(task_id)
    return MessageResponse(message="Task deleted successfully")
