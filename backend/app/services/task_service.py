"""
Task update orchestration.

Every write to a task goes through one of the facets below. Each facet reads
its multipart form, validates files against the upload policy of its call
site, stores them in the right backend, checks the resulting workflow move
with ``ensure_transition`` and issues one partial update.

Facets and where their new files go:

- general edit (``PUT /api/tasks/{id}`` without ``completionApproved``):
  filesystem, next to the task's existing attachments; a bad file aborts
- completion approval (``PUT /api/tasks/{id}`` with ``completionApproved``):
  blob store; a bad file aborts
- assignment (``PUT /api/tasks/assign``): blob store; bad files are skipped
- unpost edit (``PUT /api/tasks/unpost/{id}``): filesystem, shared tasks
  folder, four categories with orphan cleanup; a bad file aborts
- developer update (``PUT /api/tasks/developer_working``): blob store in
  parallel batches; bad files are skipped
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple
import asyncio
import logging
import zipfile

from fastapi import Depends
from sqlalchemy import and_, or_
from sqlalchemy.orm import Session
from starlette.datastructures import FormData

from app.config import settings
from app.database import get_db
from app.models.task import Task
from app.services.archive_packager import ArchivePackager, ArchiveResult, archive_filename
from app.services.attachment_refs import (
    BlobRef,
    FilesystemRef,
    merge_attachment_lists,
    normalize_attachment_list,
    orphaned_refs,
    parse_ref,
    parse_refs,
)
from app.services.attachment_store import (
    ASSIGNMENT_POLICY,
    DEFAULT_POLICY,
    DEVELOPER_POLICY,
    EXTENDED_POLICY,
    SHARED_TASKS_FOLDER,
    UPLOADS_PREFIX,
    AttachmentStore,
    IncomingFile,
    UploadPolicy,
    get_attachment_store,
    task_folder_hint,
    validate_upload,
)
from app.services.company_service import CompanyService
from app.services.task_repository import TaskRepository
from app.services.task_workflow import (
    FinalStatus,
    TaskStatus,
    compute_time_taken,
    ensure_transition,
    validate_developer_status,
    validate_final_status,
    validate_status,
)
from app.utils.errors import NotFoundError, StorageError, ValidationError
from app.utils.forms import (
    form_bool,
    form_int,
    form_str,
    numbered_uploads,
    parse_datetime,
    parse_json_field,
    prefixed_string_values,
    read_uploads,
    string_values,
    upload_values,
)
from app.utils.ids import is_object_id

logger = logging.getLogger(__name__)

# URL category name -> Task attribute
ATTACHMENT_CATEGORIES: Dict[str, str] = {
    "TasksAttachment": "tasks_attachment",
    "assignmentAttachment": "assignment_attachment",
    "completionAttachment": "completion_attachment",
    "rejectionAttachment": "rejection_attachment",
    "developerAttachment": "developer_attachment",
    "developerRejectionSolveAttachment": "developer_rejection_solve_attachment",
}

DEVELOPER_UPLOAD_BATCH_SIZE = 4


@dataclass(frozen=True)
class UnpostCategory:
    """One attachment category of the unpost edit form."""
    upload_key: str
    existing_prefix: str
    attribute: str
    label: str


UNPOST_CATEGORIES: Tuple[UnpostCategory, ...] = (
    UnpostCategory("TasksAttachment", "existingTasksAttachment", "tasks_attachment", "TasksAttachment"),
    UnpostCategory("assignmentAttachment", "existingAssignmentAttachment", "assignment_attachment", "assignmentAttachment"),
    UnpostCategory("completionAttachment", "existingCompletionAttachment", "completion_attachment", "completionAttachment"),
    UnpostCategory("developerAttachment", "existingDeveloperAttachment", "developer_attachment", "developer_attachment"),
)


def _missing(values: Dict[str, Any]) -> List[str]:
    return [name for name, value in values.items() if value in (None, "")]


def _validate_all(files: Sequence[IncomingFile], policy: UploadPolicy, field_name: str) -> None:
    for incoming in files:
        validate_upload(incoming, policy, field_name)


def _valid_only(files: Sequence[IncomingFile], policy: UploadPolicy, field_name: str) -> List[IncomingFile]:
    accepted = []
    for incoming in files:
        try:
            validate_upload(incoming, policy, field_name)
        except ValidationError as e:
            logger.warning("Skipped file %s for %s: %s", incoming.filename, field_name, e.message)
            continue
        accepted.append(incoming)
    return accepted


def _validate_contact(contact: Any) -> Dict[str, Any]:
    if not isinstance(contact, dict) or not contact.get("name") or not contact.get("phone"):
        raise ValidationError("Contact must include name and phone")
    return contact


def _validate_assignee(assigned_to: Any) -> Dict[str, Any]:
    role = assigned_to.get("role") if isinstance(assigned_to, dict) else None
    if (
        not isinstance(assigned_to, dict)
        or not assigned_to.get("id")
        or not assigned_to.get("username")
        or not assigned_to.get("name")
        or not isinstance(role, dict)
        or not role.get("name")
    ):
        raise ValidationError("Invalid assignedTo format: must include id, username, name, and role.name")
    return assigned_to


class TaskService:
    """Applies the task facets on top of the repository and attachment store."""

    def __init__(self, db: Session, store: AttachmentStore):
        self.db = db
        self.store = store
        self.tasks = TaskRepository(db)
        self.companies = CompanyService(db)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_task(self, task_id: str) -> Task:
        task = self.tasks.find_by_id(task_id)
        if task is None:
            raise NotFoundError("Task not found")
        return task

    def list_tasks(self) -> List[Task]:
        return self.tasks.find(order_by=Task.created_at.desc())

    def list_pending(self) -> List[Task]:
        return self.tasks.find(
            Task.status == TaskStatus.PENDING.value,
            Task.approved.is_(False),
            order_by=Task.created_at.desc(),
        )

    def list_approved(self) -> List[Task]:
        return self.tasks.find(
            Task.approved.is_(True),
            Task.status != TaskStatus.UNPOSTED.value,
            order_by=Task.approved_at.desc(),
        )

    def list_completed(self) -> List[Task]:
        return self.tasks.find(
            Task.completion_approved.is_(True),
            Task.final_status == FinalStatus.DONE.value,
            or_(Task.unposted.is_(None), Task.unposted.is_(False)),
            order_by=Task.completion_approved_at.desc(),
        )

    def developer_queue(self, username: str) -> List[Task]:
        """Open work for one developer: assigned and unfinished, or rejected and not yet fixed."""
        if not username:
            raise ValidationError("Username is required")
        # The assignee snapshot is a JSON column, so match the username in Python
        candidates = self.tasks.find(
            or_(
                and_(
                    Task.status == TaskStatus.ASSIGNED.value,
                    or_(Task.developer_status.is_(None), Task.developer_status != "done"),
                    or_(Task.final_status.is_(None), Task.final_status != FinalStatus.DONE.value),
                ),
                and_(
                    Task.final_status == FinalStatus.REJECTED.value,
                    or_(Task.developer_status_rejection.is_(None), Task.developer_status_rejection != "fixed"),
                ),
            ),
            order_by=Task.assigned_date.desc(),
        )
        return [task for task in candidates if (task.assigned_to or {}).get("username") == username]

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_task(self, form: FormData) -> Task:
        code = form_str(form, "code") or ""
        company = parse_json_field(form_str(form, "company"), "company")
        contact = parse_json_field(form_str(form, "contact"), "contact")
        working = form_str(form, "working") or ""
        date_time = parse_datetime(form_str(form, "dateTime"), "dateTime")
        created_by = form_str(form, "createdBy") or ""

        missing = _missing({
            "code": code, "company": company, "contact": contact,
            "working": working, "dateTime": date_time, "createdBy": created_by,
        })
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

        status = validate_status(form_str(form, "status")) or TaskStatus.PENDING.value
        count = form_int(form, "TasksAttachmentCount")
        files = await read_uploads(numbered_uploads(form, "TasksAttachment_", count))
        _validate_all(files, DEFAULT_POLICY, "TasksAttachment")

        attachment_ids = [
            self.store.store_upload_to_blob(incoming, {"uploadedBy": created_by, "attachmentType": "task"})
            for incoming in files
        ]

        task_data = {
            "code": code,
            "company": company,
            "contact": contact,
            "working": working,
            "date_time": date_time,
            "priority": form_str(form, "priority") or "",
            "status": status,
            "created_by": created_by,
            "assigned": form_bool(form, "assigned"),
            "approved": form_bool(form, "approved"),
            "unposted": form_bool(form, "unposted"),
            "task_remarks": form_str(form, "TaskRemarks") or "",
            "tasks_attachment": attachment_ids,
        }
        created_at = parse_datetime(form_str(form, "createdAt"), "createdAt")
        if created_at:
            task_data["created_at"] = created_at
        return self.tasks.create(task_data)

    # ------------------------------------------------------------------
    # PUT /api/tasks/{id}
    # ------------------------------------------------------------------

    async def update_task(self, task_id: str, form: FormData) -> Task:
        """Dispatch on the presence of ``completionApproved``."""
        if "completionApproved" in form:
            return await self.apply_completion_update(task_id, form)
        return await self.apply_general_update(task_id, form)

    async def apply_general_update(self, task_id: str, form: FormData) -> Task:
        values = {
            "code": form_str(form, "code"),
            "company": form_str(form, "company"),
            "contact": form_str(form, "contact"),
            "working": form_str(form, "working"),
            "dateTime": form_str(form, "dateTime"),
            "status": form_str(form, "status"),
        }
        missing = _missing(values)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

        task = self.get_task(task_id)
        status = validate_status(values["status"])

        existing = normalize_attachment_list(string_values(form, "existingAttachments"))
        count = form_int(form, "newAttachmentsCount")
        files = await read_uploads(numbered_uploads(form, "newAttachments_", count))
        _validate_all(files, DEFAULT_POLICY, "TasksAttachment")

        assigned_to = parse_json_field(form_str(form, "assignedTo"), "assignedTo")
        update_data = {
            "code": values["code"],
            "company": parse_json_field(values["company"], "company"),
            "contact": parse_json_field(values["contact"], "contact"),
            "working": values["working"],
            "date_time": parse_datetime(values["dateTime"], "dateTime"),
            "priority": form_str(form, "priority") or task.priority,
            "status": status,
            "assigned": form_bool(form, "assigned"),
            "assigned_to": assigned_to or None,
            "approved": form_bool(form, "approved"),
            "unposted": form_bool(form, "unposted"),
            "task_remarks": form_str(form, "TaskRemarks") or "",
        }
        ensure_transition(task, update_data)

        new_paths = []
        if files:
            folder = task_folder_hint(normalize_attachment_list(task.tasks_attachment))
            new_paths = [self.store.store_to_filesystem(folder, incoming) for incoming in files]
        update_data["tasks_attachment"] = merge_attachment_lists(existing, new_paths)

        return self._save(task_id, update_data)

    async def apply_completion_update(self, task_id: str, form: FormData) -> Task:
        final_status = form_str(form, "finalStatus")
        status = form_str(form, "status")
        if not final_status or not status:
            raise ValidationError("Missing required fields for completion approval")

        task = self.get_task(task_id)
        validate_final_status(final_status)
        validate_status(status)

        completion_files = await read_uploads(upload_values(form, "completionAttachment"))
        rejection_files = await read_uploads(upload_values(form, "rejectionAttachment"))
        _validate_all(completion_files, DEFAULT_POLICY, "completionAttachment")
        _validate_all(rejection_files, DEFAULT_POLICY, "rejectionAttachment")

        approved_at = parse_datetime(form_str(form, "completionApprovedAt"), "completionApprovedAt") or datetime.utcnow()
        update_data: Dict[str, Any] = {
            "completion_approved": form_bool(form, "completionApproved"),
            "completion_approved_at": approved_at,
            "final_status": final_status,
            "status": status,
        }
        ensure_transition(task, update_data)

        if final_status == FinalStatus.REJECTED.value:
            update_data["rejection_remarks"] = form_str(form, "rejectionRemarks") or ""
            update_data["rejection_attachment"] = (
                self._store_blobs(rejection_files, task_id, "rejection")
                if rejection_files
                else normalize_attachment_list(task.rejection_attachment)
            )
        else:
            update_data["completion_remarks"] = form_str(form, "completionRemarks") or ""
            update_data["completion_attachment"] = (
                self._store_blobs(completion_files, task_id, "completion")
                if completion_files
                else normalize_attachment_list(task.completion_attachment)
            )

        time_taken = compute_time_taken(final_status, task.assigned_date, approved_at)
        if time_taken is not None:
            update_data["time_taken"] = time_taken

        return self._save(task_id, update_data)

    # ------------------------------------------------------------------
    # Assignment
    # ------------------------------------------------------------------

    async def assign_task(self, form: FormData) -> Task:
        task_id = form_str(form, "taskId") or ""
        user_id = form_str(form, "userId") or ""
        if not task_id or not user_id:
            raise ValidationError("taskId and userId are required")

        task = self.get_task(task_id)
        software_type = self.companies.software_type_for((task.company or {}).get("id"))

        files = _valid_only(await read_uploads(upload_values(form, "files")), ASSIGNMENT_POLICY, "assignmentAttachment")
        uploaded_ids = []
        for incoming in files:
            try:
                uploaded_ids.append(self.store.store_upload_to_blob(
                    incoming, {"uploadedBy": user_id, "relatedTask": task_id, "attachmentType": "assignment"},
                ))
            except StorageError as e:
                logger.warning("Skipped assignment file %s: %s", incoming.filename, e.error or e.message)

        update_data = {
            "assigned": True,
            "approved": True,
            "assigned_to": {
                "id": user_id,
                "username": form_str(form, "username") or "",
                "name": form_str(form, "name") or "",
                "role": {"name": form_str(form, "roleName") or ""},
            },
            "assigned_date": parse_datetime(form_str(form, "assignedDate"), "assignedDate") or datetime.utcnow(),
            "assignment_remarks": form_str(form, "remarks") or "",
            "assignment_attachment": uploaded_ids,
            "status": TaskStatus.ASSIGNED.value,
            "approved_at": datetime.utcnow(),
            "software_type": software_type,
        }
        if task.final_status == FinalStatus.REJECTED.value:
            # Reassignment replaces the developer fix cycle
            update_data["final_status"] = None
            update_data["developer_status_rejection"] = None
        ensure_transition(task, update_data)
        return self._save(task_id, update_data)

    def update_assignment_remarks(self, task_id: str, remarks: Optional[str]) -> Task:
        self.get_task(task_id)
        return self._save(task_id, {"assignment_remarks": remarks or ""})

    # ------------------------------------------------------------------
    # Unposting
    # ------------------------------------------------------------------

    async def apply_unpost_update(self, task_id: str, form: FormData) -> Task:
        if not task_id:
            raise ValidationError("Missing taskId")
        task = self.get_task(task_id)

        incoming_by_category: List[Tuple[UnpostCategory, List[str], List[IncomingFile]]] = []
        for category in UNPOST_CATEGORIES:
            existing = normalize_attachment_list(prefixed_string_values(form, category.existing_prefix))
            files = await read_uploads(upload_values(form, category.upload_key))
            incoming_by_category.append((category, existing, files))
        for category, _, files in incoming_by_category:
            _validate_all(files, EXTENDED_POLICY, category.label)

        code = form_str(form, "code")
        working = form_str(form, "working")
        date_time_raw = form_str(form, "dateTime")
        for label, submitted, stored in (
            ("Code", code, task.code),
            ("Company", form_str(form, "company"), task.company),
            ("Contact", form_str(form, "contact"), task.contact),
            ("Working", working, task.working),
            ("DateTime", date_time_raw, task.date_time),
        ):
            if not submitted and not stored:
                raise ValidationError(f"{label} is required")

        company = task.company
        raw_company = parse_json_field(form_str(form, "company"), "company")
        if raw_company is not None:
            if not isinstance(raw_company, dict):
                raise ValidationError("Invalid company format: must be valid JSON")
            company = {**(task.company or {}), **{key: value for key, value in raw_company.items() if value}}

        contact = task.contact
        raw_contact = parse_json_field(form_str(form, "contact"), "contact")
        if raw_contact is not None:
            contact = _validate_contact(raw_contact)

        assigned_to = task.assigned_to
        raw_assigned_to = form_str(form, "assignedTo")
        if raw_assigned_to and raw_assigned_to != "null":
            assigned_to = _validate_assignee(parse_json_field(raw_assigned_to, "assignedTo"))

        status = validate_status(form_str(form, "status")) or task.status
        developer_status = validate_developer_status(form_str(form, "developerStatus"))
        unposted = self._flag(form, "unposted", task.unposted)

        update_data: Dict[str, Any] = {
            "code": code or task.code,
            "company": company,
            "contact": contact,
            "working": working or task.working,
            "date_time": parse_datetime(date_time_raw, "dateTime") or task.date_time,
            "status": status,
            "assigned": self._flag(form, "assigned", task.assigned),
            "assigned_to": assigned_to,
            "approved": self._flag(form, "approved", task.approved),
            "completion_approved": self._flag(form, "completionApproved", task.completion_approved),
            "unposted": unposted,
            "unpost_status": form_str(form, "UnpostStatus") or task.unpost_status or "",
            "task_remarks": form_str(form, "TaskRemarks") or task.task_remarks or "",
            "assignment_remarks": form_str(form, "assignmentRemarks") or task.assignment_remarks or "",
            "completion_remarks": form_str(form, "completionRemarks") or task.completion_remarks or "",
            "developer_remarks": form_str(form, "developerRemarks") or task.developer_remarks or "",
            "developer_status": developer_status or task.developer_status or "",
            "approved_at": parse_datetime(form_str(form, "approvedAt"), "approvedAt") or task.approved_at,
            "assigned_date": parse_datetime(form_str(form, "assignedDate"), "assignedDate") or task.assigned_date,
            "unposted_at": datetime.utcnow() if unposted and not task.unposted else task.unposted_at,
        }
        ensure_transition(task, update_data)

        previous: Dict[str, List[str]] = {}
        for category, existing, files in incoming_by_category:
            new_paths = [
                self.store.store_to_filesystem(SHARED_TASKS_FOLDER, incoming, naming="uuid")
                for incoming in files
            ]
            previous[category.attribute] = normalize_attachment_list(getattr(task, category.attribute))
            update_data[category.attribute] = merge_attachment_lists(existing, new_paths)

        updated = self._save(task_id, update_data)

        for attribute, current in previous.items():
            self._remove_orphans(current, update_data[attribute])
        return updated

    def bulk_unpost(self, task_ids: Any) -> int:
        """Unpost several tasks, keeping each task's status."""
        if isinstance(task_ids, str):
            task_ids = [task_ids]
        ids = [str(task_id).strip() for task_id in task_ids or [] if str(task_id).strip()]
        if not ids:
            raise ValidationError("Invalid or empty taskIds")
        # Moving into unposted is legal from every stage
        modified = self.tasks.update_many(ids, {
            "unposted": True,
            "unposted_at": datetime.utcnow(),
            "unpost_status": "unposted",
        })
        logger.info("Unposted %d of %d task(s)", modified, len(ids))
        return modified

    # ------------------------------------------------------------------
    # Developer cycle
    # ------------------------------------------------------------------

    async def apply_developer_update(self, form: FormData) -> str:
        task_id = form_str(form, "taskId") or ""
        developer_status = form_str(form, "developer_status")
        developer_remarks = form_str(form, "developer_remarks")
        if not task_id or not developer_status or not developer_remarks:
            raise ValidationError("Task ID, developer status, and remarks are required")
        if not is_object_id(task_id):
            raise ValidationError("Invalid task ID")
        validate_developer_status(developer_status)

        task = self.get_task(task_id)
        update_data: Dict[str, Any] = {
            "developer_status": developer_status,
            "developer_remarks": developer_remarks,
        }
        done_date = parse_datetime(form_str(form, "developer_done_date"), "developer_done_date")
        if done_date:
            update_data["developer_done_date"] = done_date
        status_rejection = form_str(form, "developer_status_rejection")
        if status_rejection:
            update_data["developer_status_rejection"] = status_rejection
            if status_rejection == "fixed" and task.final_status == FinalStatus.REJECTED.value:
                update_data["final_status"] = FinalStatus.IN_PROGRESS.value
        rejection_remarks = form_str(form, "developer_rejection_remarks")
        if rejection_remarks:
            update_data["developer_rejection_remarks"] = rejection_remarks
        ensure_transition(task, update_data)

        developer_files = await read_uploads(upload_values(form, "developer_attachments"))
        solve_files = await read_uploads(upload_values(form, "developer_rejection_solve_attachments"))
        developer_ids, solve_ids = await asyncio.gather(
            self._store_blobs_in_batches(developer_files, task_id, "developer"),
            self._store_blobs_in_batches(solve_files, task_id, "developer_rejection_solve"),
        )
        if developer_ids:
            update_data["developer_attachment"] = developer_ids
        if solve_ids:
            update_data["developer_rejection_solve_attachment"] = solve_ids

        self._save(task_id, update_data)
        return task_id

    # ------------------------------------------------------------------
    # Deletion
    # ------------------------------------------------------------------

    def delete_task(self, task_id: str) -> None:
        """
        Delete the task, then its filesystem attachments.

        Blob attachments are left in the blob store.
        """
        task = self.tasks.find_by_id_and_delete(task_id)
        if task is None:
            raise NotFoundError("Task not found")

        task_paths = [ref.path for ref in parse_refs(task.tasks_attachment) if isinstance(ref, FilesystemRef)]
        removed_folder = None
        if task_paths:
            folder = task_paths[0].rsplit("/", 1)[0]
            # Only a per-task folder is removed wholesale; the shared folder holds other tasks' files
            if folder.startswith(f"{UPLOADS_PREFIX}/task_"):
                self.store.delete_filesystem_folder(folder)
                removed_folder = folder

        for attribute in ATTACHMENT_CATEGORIES.values():
            for ref in parse_refs(getattr(task, attribute)):
                if not isinstance(ref, FilesystemRef):
                    continue
                if removed_folder and ref.path.startswith(removed_folder + "/"):
                    continue
                self.store.delete_filesystem_file(ref.path)
        logger.info("Deleted task %s", task_id)

    # ------------------------------------------------------------------
    # Downloads
    # ------------------------------------------------------------------

    def download_refs(self, task: Task) -> List[str]:
        """Attachments offered on the assignment download screen."""
        return merge_attachment_lists(task.tasks_attachment, task.assignment_attachment)

    def attachment_file_list(self, task: Task) -> List[Dict[str, Any]]:
        files = []
        for value in self.download_refs(task):
            ref = parse_ref(value)
            info = None
            try:
                info = self.store.describe(ref)
            except StorageError as e:
                logger.warning("Could not describe attachment %s: %s", value, e.error or e.message)
            if isinstance(ref, BlobRef):
                download_url = f"/api/tasks/assign?taskId={task.id}&fileId={value}"
            else:
                download_url = value
            files.append({
                "id": value,
                "name": info.filename if info and info.filename else f"file-{value}",
                "type": info.content_type if info and info.content_type else "unknown",
                "size": info.size if info else 0,
                "downloadUrl": download_url,
            })
        return files

    def category_refs(self, task: Task, category: str) -> List[str]:
        attribute = ATTACHMENT_CATEGORIES.get(category)
        if attribute is None:
            raise NotFoundError(f"Unknown attachment category: {category}")
        return normalize_attachment_list(getattr(task, attribute))

    async def package_attachments(
        self,
        task: Task,
        refs: Sequence[str],
        category: str,
        packager: ArchivePackager,
    ) -> Optional[ArchiveResult]:
        filename = archive_filename(task.code or task.id, category)
        return await packager.package(parse_refs(list(refs)), filename)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _flag(form: FormData, key: str, current: Optional[bool]) -> bool:
        if key in form:
            return form_bool(form, key)
        return bool(current)

    def _save(self, task_id: str, update_data: Dict[str, Any]) -> Task:
        updated = self.tasks.find_by_id_and_update(task_id, update_data)
        if updated is None:
            raise NotFoundError("Task not found")
        return updated

    def _store_blobs(self, files: Sequence[IncomingFile], task_id: str, attachment_type: str) -> List[str]:
        return [
            self.store.store_upload_to_blob(incoming, {"taskId": task_id, "attachmentType": attachment_type})
            for incoming in files
        ]

    async def _store_blobs_in_batches(self, files: Sequence[IncomingFile], task_id: str, attachment_type: str) -> List[str]:
        """Upload valid files a few at a time; invalid or failed files are dropped."""
        accepted = _valid_only(files, DEVELOPER_POLICY, attachment_type)
        uploaded: List[str] = []
        for start in range(0, len(accepted), DEVELOPER_UPLOAD_BATCH_SIZE):
            batch = accepted[start:start + DEVELOPER_UPLOAD_BATCH_SIZE]
            results = await asyncio.gather(
                *(
                    asyncio.to_thread(
                        self.store.store_upload_to_blob,
                        incoming,
                        {"relatedTask": task_id, "attachmentType": attachment_type},
                    )
                    for incoming in batch
                ),
                return_exceptions=True,
            )
            for incoming, result in zip(batch, results):
                if isinstance(result, BaseException):
                    logger.warning("Skipped %s upload %s: %s", attachment_type, incoming.filename, result)
                    continue
                uploaded.append(result)
        return uploaded

    def _remove_orphans(self, current: Sequence[str], updated: Sequence[str]) -> None:
        for ref in orphaned_refs(current, updated):
            if isinstance(ref, FilesystemRef):
                self.store.delete_filesystem_file(ref.path)


def get_task_service(
    db: Session = Depends(get_db),
    store: AttachmentStore = Depends(get_attachment_store),
) -> TaskService:
    return TaskService(db, store)


def get_assignment_packager(store: AttachmentStore = Depends(get_attachment_store)) -> ArchivePackager:
    """Sequential, compressed, 8 second budget."""
    return ArchivePackager(
        store,
        max_total_bytes=settings.ZIP_MAX_TOTAL_BYTES,
        soft_cap_bytes=settings.ZIP_SOFT_CAP_BYTES,
        timeout_seconds=settings.ZIP_TIMEOUT_SECONDS,
        parallelism=1,
        compression=zipfile.ZIP_DEFLATED,
    )


def get_bulk_packager(store: AttachmentStore = Depends(get_attachment_store)) -> ArchivePackager:
    """Fetches every file at once and stores entries uncompressed."""
    return ArchivePackager(
        store,
        max_total_bytes=settings.BULK_ZIP_MAX_TOTAL_BYTES,
        timeout_seconds=settings.BULK_ZIP_TIMEOUT_SECONDS,
        parallelism=0,
        compression=zipfile.ZIP_STORED,
    )
