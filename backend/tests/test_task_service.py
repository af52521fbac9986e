"""
Tests for the task update facets, orphan cleanup and deletion.
"""
from datetime import datetime
import json

import pytest

from app.models.company import Company
from app.services.attachment_store import mint_task_folder
from app.utils.errors import NotFoundError, ValidationError

from conftest import PDF_BYTES, form, incoming, upload


def general_fields(**overrides):
    fields = {
        "code": "T-1001",
        "company": json.dumps({"id": None, "name": "Acme Traders"}),
        "contact": json.dumps({"name": "Sara", "phone": "0300-1234567"}),
        "working": "Install the billing module",
        "dateTime": "2026-01-01T09:00:00Z",
        "status": "pending",
    }
    fields.update(overrides)
    return list(fields.items())


class TestCreate:
    async def test_creates_pending_task_with_blob_attachments(self, service, store):
        task = await service.create_task(form(
            *general_fields(),
            ("createdBy", "creator-1"),
            ("TasksAttachmentCount", "2"),
            ("TasksAttachment_0", upload("scope.pdf")),
            ("TasksAttachment_1", upload("notes.docx", b"doc", "application/octet-stream")),
        ))

        assert task.status == "pending"
        assert task.assigned is False
        assert len(task.tasks_attachment) == 2
        assert store.read_blob(task.tasks_attachment[0]).filename == "scope.pdf"

    async def test_missing_fields_are_named(self, service):
        with pytest.raises(ValidationError) as exc_info:
            await service.create_task(form(("code", "T-1"), ("working", "x")))
        assert exc_info.value.message == "Missing required fields: company, contact, dateTime, createdBy"

    async def test_bad_file_aborts_before_any_write(self, service, db):
        with pytest.raises(ValidationError):
            await service.create_task(form(
                *general_fields(),
                ("createdBy", "creator-1"),
                ("TasksAttachmentCount", "2"),
                ("TasksAttachment_0", upload("scope.pdf")),
                ("TasksAttachment_1", upload("tool.exe", b"MZ", "application/x-msdownload")),
            ))
        from app.models.blob import StoredBlob
        assert db.query(StoredBlob).count() == 0


class TestGeneralEdit:
    """PUT without completionApproved: filesystem attachments next to the task's existing ones."""

    async def test_new_files_join_the_existing_folder(self, service, store, make_task, public_dir):
        folder = mint_task_folder()
        first = store.store_to_filesystem(folder, incoming("first.pdf"))
        task = make_task(tasks_attachment=[first])

        updated = await service.update_task(task.id, form(
            *general_fields(working="Updated scope"),
            ("existingAttachments", first),
            ("newAttachmentsCount", "1"),
            ("newAttachments_0", upload("second.txt", b"more", "text/plain")),
        ))

        assert updated.working == "Updated scope"
        assert updated.tasks_attachment[0] == first
        assert len(updated.tasks_attachment) == 2
        assert updated.tasks_attachment[1].startswith(folder + "/")
        assert store.read_file(updated.tasks_attachment[1]) == b"more"

    async def test_same_named_files_are_both_kept(self, service, store, make_task):
        task = make_task()

        updated = await service.update_task(task.id, form(
            *general_fields(),
            ("newAttachmentsCount", "2"),
            ("newAttachments_0", upload("a.pdf", b"first")),
            ("newAttachments_1", upload("a.pdf", b"second")),
        ))

        assert len(updated.tasks_attachment) == 2
        assert [store.read_file(path) for path in updated.tasks_attachment] == [b"first", b"second"]

    async def test_missing_fields_are_named(self, service, make_task):
        task = make_task()
        with pytest.raises(ValidationError) as exc_info:
            await service.update_task(task.id, form(*general_fields(working="", status="")))
        assert exc_info.value.message == "Missing required fields: working, status"

    async def test_disallowed_file_fails_whole_request(self, service, make_task, public_dir):
        task = make_task()
        with pytest.raises(ValidationError):
            await service.update_task(task.id, form(
                *general_fields(),
                ("newAttachmentsCount", "2"),
                ("newAttachments_0", upload("ok.pdf")),
                ("newAttachments_1", upload("bad.exe", b"MZ", "application/x-msdownload")),
            ))
        assert list((public_dir / "uploads").iterdir()) == []

    async def test_unknown_task(self, service):
        with pytest.raises(NotFoundError):
            await service.update_task("0123456789abcdef01234567", form(*general_fields()))


class TestCompletionApproval:
    """PUT with completionApproved: routed by finalStatus."""

    async def test_rejection_fills_rejection_fields_only(self, service, make_task):
        task = make_task(status="assigned", assigned=True, approved=True,
                         completion_remarks="earlier", completion_attachment=["65a1f0c2e4b0a1b2c3d4e5f6"])

        updated = await service.update_task(task.id, form(
            ("completionApproved", "false"),
            ("finalStatus", "rejected"),
            ("status", "assigned"),
            ("rejectionRemarks", "Totals are wrong"),
            ("completionRemarks", "ignored"),
            ("rejectionAttachment", upload("diff.pdf")),
        ))

        assert updated.final_status == "rejected"
        assert updated.rejection_remarks == "Totals are wrong"
        assert len(updated.rejection_attachment) == 1
        assert updated.completion_remarks == "earlier"
        assert updated.completion_attachment == ["65a1f0c2e4b0a1b2c3d4e5f6"]
        assert updated.time_taken is None

    async def test_done_fills_completion_fields_and_time_taken(self, service, store, make_task):
        task = make_task(status="assigned", assigned=True, approved=True,
                         assigned_date=datetime(2026, 1, 1, 10, 0, 0), rejection_remarks="old")

        updated = await service.update_task(task.id, form(
            ("completionApproved", "true"),
            ("completionApprovedAt", "2026-01-01T12:30:00Z"),
            ("finalStatus", "done"),
            ("status", "completed"),
            ("completionRemarks", "Delivered"),
            ("rejectionRemarks", "ignored"),
            ("timeTaken", "1"),
            ("completionAttachment", upload("signoff.pdf")),
        ))

        assert updated.status == "completed"
        assert updated.completion_approved is True
        assert updated.completion_remarks == "Delivered"
        assert store.read_blob(updated.completion_attachment[0]).data == PDF_BYTES
        assert updated.rejection_remarks == "old"
        assert updated.time_taken == 2.5 * 60 * 60 * 1000

    async def test_time_taken_absent_without_assigned_date(self, service, make_task):
        task = make_task(status="assigned", assigned=True)

        updated = await service.update_task(task.id, form(
            ("completionApproved", "true"),
            ("finalStatus", "done"),
            ("status", "completed"),
            ("timeTaken", "5000"),
        ))

        assert updated.time_taken is None

    async def test_existing_files_kept_when_none_uploaded(self, service, make_task):
        task = make_task(status="assigned", assigned=True, completion_attachment=["65a1f0c2e4b0a1b2c3d4e5f6"])

        updated = await service.update_task(task.id, form(
            ("completionApproved", "true"),
            ("finalStatus", "not-done"),
            ("status", "assigned"),
        ))

        assert updated.completion_attachment == ["65a1f0c2e4b0a1b2c3d4e5f6"]

    async def test_missing_final_status(self, service, make_task):
        task = make_task(status="assigned", assigned=True)
        with pytest.raises(ValidationError) as exc_info:
            await service.update_task(task.id, form(("completionApproved", "true"), ("status", "completed")))
        assert exc_info.value.message == "Missing required fields for completion approval"

    async def test_holding_unassigned_task_does_not_allow_completion(self, service, make_task):
        task = make_task()
        held = await service.update_task(task.id, form(*general_fields(status="on-hold")))
        assert held.status == "on-hold"

        with pytest.raises(ValidationError) as exc_info:
            await service.update_task(task.id, form(
                ("completionApproved", "true"), ("finalStatus", "done"), ("status", "completed"),
            ))
        assert "pending -> completed" in exc_info.value.message

    async def test_pending_task_cannot_be_completed(self, service, make_task):
        task = make_task()
        with pytest.raises(ValidationError) as exc_info:
            await service.update_task(task.id, form(
                ("completionApproved", "true"), ("finalStatus", "done"), ("status", "completed"),
            ))
        assert "pending -> completed" in exc_info.value.message


class TestAssignment:
    async def test_sets_assignee_and_skips_bad_files(self, service, store, make_task, db):
        company = Company(name="Acme Traders", software_information=[{"softwareType": "ERP"}])
        db.add(company)
        db.commit()
        task = make_task(company={"id": company.id, "name": company.name})

        updated = await service.assign_task(form(
            ("taskId", task.id),
            ("userId", "dev-7"),
            ("username", "dev7"),
            ("name", "Dev Seven"),
            ("roleName", "developer"),
            ("assignedDate", "2026-02-01T08:00:00Z"),
            ("remarks", "Start with invoices"),
            ("files", upload("brief.pdf")),
            ("files", upload("notes.txt", b"call first", "text/plain")),
            ("files", upload("virus.exe", b"MZ", "application/x-msdownload")),
            ("files", upload("huge.pdf", b"0" * (10 * 1024 * 1024 + 1))),
        ))

        assert updated.status == "assigned"
        assert updated.assigned is True
        assert updated.approved is True
        assert updated.assigned_to == {"id": "dev-7", "username": "dev7", "name": "Dev Seven", "role": {"name": "developer"}}
        assert updated.assigned_date == datetime(2026, 2, 1, 8, 0, 0)
        assert updated.software_type == "ERP"
        assert len(updated.assignment_attachment) == 1
        assert store.read_blob(updated.assignment_attachment[0]).filename == "brief.pdf"

    async def test_reassigning_rejected_task_allows_completion(self, service, make_task):
        task = make_task(status="assigned", assigned=True, approved=True,
                         assigned_date=datetime(2026, 1, 1, 10, 0, 0))
        await service.update_task(task.id, form(
            ("completionApproved", "false"), ("finalStatus", "rejected"), ("status", "assigned"),
        ))

        reassigned = await service.assign_task(form(
            ("taskId", task.id), ("userId", "dev-8"), ("username", "dev8"),
            ("assignedDate", "2026-01-02T10:00:00Z"),
        ))
        assert reassigned.final_status is None
        assert reassigned.developer_status_rejection is None
        assert reassigned.assigned_to["username"] == "dev8"

        done = await service.update_task(task.id, form(
            ("completionApproved", "true"),
            ("completionApprovedAt", "2026-01-02T11:00:00Z"),
            ("finalStatus", "done"),
            ("status", "completed"),
        ))
        assert done.final_status == "done"
        assert done.time_taken == 60 * 60 * 1000

    async def test_unknown_company_gives_na(self, service, make_task):
        task = make_task()
        updated = await service.assign_task(form(("taskId", task.id), ("userId", "dev-7")))
        assert updated.software_type == "N/A"

    async def test_requires_task_and_user(self, service):
        with pytest.raises(ValidationError) as exc_info:
            await service.assign_task(form(("taskId", "")))
        assert exc_info.value.message == "taskId and userId are required"


class TestUnpostEdit:
    """Four attachment categories, each rebuilt from the form, with orphan cleanup."""

    async def test_orphaned_files_deleted_blobs_kept(self, service, store, make_task, public_dir):
        kept = store.store_to_filesystem("/uploads/tasks", incoming("kept.pdf"), naming="uuid")
        dropped = store.store_to_filesystem("/uploads/tasks", incoming("dropped.pdf"), naming="uuid")
        blob_id = store.store_to_blob(b"blob", "blob.txt", "text/plain")
        task = make_task(status="completed", final_status="done", unposted=True,
                         tasks_attachment=[kept, dropped, blob_id])

        updated = await service.apply_unpost_update(task.id, form(
            ("existingTasksAttachment", kept),
            ("TasksAttachment", upload("extra.csv", b"a,b", "text/csv")),
        ))

        assert updated.tasks_attachment[0] == kept
        assert updated.tasks_attachment[1].startswith("/uploads/tasks/")
        assert updated.tasks_attachment[1].endswith(".csv")
        assert (public_dir / kept.lstrip("/")).is_file()
        assert not (public_dir / dropped.lstrip("/")).exists()
        assert store.read_blob(blob_id).data == b"blob"

    async def test_fields_fall_back_to_stored_values(self, service, make_task):
        task = make_task(status="completed", final_status="done", unposted=True,
                         unpost_status="unposted", assignment_remarks="keep me")

        updated = await service.apply_unpost_update(task.id, form(("working", "Revised")))

        assert updated.working == "Revised"
        assert updated.code == "T-1001"
        assert updated.status == "completed"
        assert updated.unposted is True
        assert updated.unpost_status == "unposted"
        assert updated.assignment_remarks == "keep me"

    async def test_each_category_validated(self, service, make_task):
        task = make_task(unposted=True)
        with pytest.raises(ValidationError) as exc_info:
            await service.apply_unpost_update(task.id, form(
                ("developerAttachment", upload("tool.exe", b"MZ", "application/x-msdownload")),
            ))
        assert "developer_attachment" in exc_info.value.message

    async def test_contact_and_assignee_shapes(self, service, make_task):
        task = make_task(unposted=True)
        with pytest.raises(ValidationError) as exc_info:
            await service.apply_unpost_update(task.id, form(("contact", json.dumps({"name": "Sara"}))))
        assert exc_info.value.message == "Contact must include name and phone"

        with pytest.raises(ValidationError) as exc_info:
            await service.apply_unpost_update(task.id, form(("assignedTo", json.dumps({"id": "1"}))))
        assert exc_info.value.message.startswith("Invalid assignedTo format")

        with pytest.raises(ValidationError):
            await service.apply_unpost_update(task.id, form(("company", "{broken")))

    async def test_invalid_status(self, service, make_task):
        task = make_task(unposted=True)
        with pytest.raises(ValidationError):
            await service.apply_unpost_update(task.id, form(("status", "archived")))


class TestBulkUnpost:
    def test_status_is_preserved(self, service, make_task, db):
        first = make_task(status="completed", final_status="done")
        second = make_task(status="assigned", assigned=True)

        assert service.bulk_unpost([first.id, second.id]) == 2

        db.expire_all()
        for task, status in ((first, "completed"), (second, "assigned")):
            reloaded = service.get_task(task.id)
            assert reloaded.unposted is True
            assert reloaded.unpost_status == "unposted"
            assert reloaded.unposted_at is not None
            assert reloaded.status == status

    def test_single_id_string(self, service, make_task):
        task = make_task()
        assert service.bulk_unpost(task.id) == 1

    def test_empty_ids(self, service):
        with pytest.raises(ValidationError):
            service.bulk_unpost([])


class TestDeveloperCycle:
    async def test_fixed_rejection_moves_to_in_progress(self, service, store, make_task):
        task = make_task(status="assigned", assigned=True, final_status="rejected",
                         assigned_to={"id": "dev-7", "username": "dev7", "name": "Dev", "role": {"name": "developer"}})

        await service.apply_developer_update(form(
            ("taskId", task.id),
            ("developer_status", "done"),
            ("developer_remarks", "Fixed totals"),
            ("developer_status_rejection", "fixed"),
            ("developer_rejection_remarks", "Rounding"),
            ("developer_done_date", "2026-02-03T10:00:00Z"),
            *[("developer_rejection_solve_attachments", upload(f"fix{i}.pdf")) for i in range(5)],
            ("developer_rejection_solve_attachments", upload("fix.pdf", b"x", "application/octet-stream")),
        ))

        updated = service.get_task(task.id)
        service.db.refresh(updated)
        assert updated.final_status == "in-progress"
        assert updated.developer_status_rejection == "fixed"
        assert updated.developer_done_date == datetime(2026, 2, 3, 10, 0, 0)
        # Five valid files across two batches; the octet-stream one is skipped
        assert len(updated.developer_rejection_solve_attachment) == 5
        assert {store.read_blob(blob_id).filename for blob_id in updated.developer_rejection_solve_attachment} == {
            f"fix{i}.pdf" for i in range(5)
        }

    async def test_required_fields(self, service, make_task):
        task = make_task()
        with pytest.raises(ValidationError) as exc_info:
            await service.apply_developer_update(form(("taskId", task.id), ("developer_status", "done")))
        assert exc_info.value.message == "Task ID, developer status, and remarks are required"

        with pytest.raises(ValidationError) as exc_info:
            await service.apply_developer_update(form(
                ("taskId", "abc"), ("developer_status", "done"), ("developer_remarks", "x"),
            ))
        assert exc_info.value.message == "Invalid task ID"

    def test_queue_lists_open_work_for_one_developer(self, service, make_task):
        mine = {"id": "dev-7", "username": "dev7", "name": "Dev", "role": {"name": "developer"}}
        theirs = {**mine, "username": "dev8"}
        open_task = make_task(code="A", status="assigned", assigned=True, assigned_to=mine)
        rejected = make_task(code="B", status="assigned", assigned=True, final_status="rejected", assigned_to=mine)
        make_task(code="C", status="assigned", assigned=True, developer_status="done", assigned_to=mine)
        make_task(code="D", status="assigned", assigned=True, final_status="rejected", developer_status="done",
                  developer_status_rejection="fixed", assigned_to=mine)
        make_task(code="E", status="assigned", assigned=True, assigned_to=theirs)

        codes = {task.code for task in service.developer_queue("dev7")}

        assert codes == {open_task.code, rejected.code}


class TestListings:
    def test_pending_approved_completed(self, service, make_task):
        make_task(code="P")
        make_task(code="A", status="assigned", assigned=True, approved=True, approved_at=datetime(2026, 1, 2))
        make_task(code="U", status="unposted", approved=True)
        make_task(code="C", status="completed", approved=True, completion_approved=True, final_status="done")
        make_task(code="CU", status="completed", completion_approved=True, final_status="done", unposted=True)

        assert [task.code for task in service.list_pending()] == ["P"]
        assert {task.code for task in service.list_approved()} == {"A", "C"}
        assert [task.code for task in service.list_completed()] == ["C"]


class TestDelete:
    def test_removes_task_folder_and_loose_files(self, service, store, make_task, public_dir):
        folder = mint_task_folder()
        first = store.store_to_filesystem(folder, incoming("a.pdf"))
        second = store.store_to_filesystem(folder, incoming("b.pdf"))
        loose = store.store_to_filesystem("/uploads/tasks", incoming("c.pdf"), naming="uuid")
        neighbour = store.store_to_filesystem("/uploads/tasks", incoming("d.pdf"), naming="uuid")
        task = make_task(tasks_attachment=[first, second], completion_attachment=[loose])

        service.delete_task(task.id)

        assert not (public_dir / folder.lstrip("/")).exists()
        assert not (public_dir / loose.lstrip("/")).exists()
        assert (public_dir / neighbour.lstrip("/")).is_file()
        with pytest.raises(NotFoundError):
            service.get_task(task.id)

    def test_blob_attachments_are_left_alone(self, service, store, make_task):
        blob_id = store.store_to_blob(b"keep", "keep.txt", "text/plain")
        task = make_task(tasks_attachment=[blob_id], assignment_attachment=blob_id)

        service.delete_task(task.id)

        assert store.read_blob(blob_id).data == b"keep"

    def test_shared_folder_is_not_removed(self, service, store, make_task, public_dir):
        mine = store.store_to_filesystem("/uploads/tasks", incoming("mine.pdf"), naming="uuid")
        other = store.store_to_filesystem("/uploads/tasks", incoming("other.pdf"), naming="uuid")
        task = make_task(tasks_attachment=[mine])

        service.delete_task(task.id)

        assert not (public_dir / mine.lstrip("/")).exists()
        assert (public_dir / other.lstrip("/")).is_file()

    def test_unknown_task(self, service):
        with pytest.raises(NotFoundError):
            service.delete_task("0123456789abcdef01234567")
