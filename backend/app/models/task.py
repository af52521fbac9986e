"""
Task model for the task-tracking and approval workflow.
"""
from datetime import datetime
from sqlalchemy import Column, String, Text, DateTime, Boolean, BigInteger, JSON, func

from app.database import Base
from app.utils.ids import new_object_id


class Task(Base):
    """
    Task document.

    Embedded sub-documents (company snapshot, contact, assignee snapshot) and
    attachment reference lists are stored as JSON. Attachment lists may hold a
    bare string on legacy rows; read them through normalize_attachment_list.
    """
    __tablename__ = "tasks"

    # Primary key
    id = Column(String(24), primary_key=True, default=new_object_id)

    # Task details
    code = Column(String(100), nullable=False, index=True, comment="Client-generated task label")
    company = Column(JSON, nullable=True, comment="id + denormalized name/city/address/representative/support")
    contact = Column(JSON, nullable=True, comment="name + phone")
    working = Column(Text, nullable=True, comment="Free-text work description")
    date_time = Column(DateTime, nullable=True, comment="Scheduled time")
    priority = Column(String(20), nullable=True, comment="Urgent, High, Normal")
    task_remarks = Column(Text, nullable=True)
    tasks_attachment = Column(JSON, nullable=True)

    # Workflow
    status = Column(String(30), nullable=False, server_default="pending", default="pending", index=True,
                    comment="pending, assigned, approved, completed, on-hold, unposted")
    final_status = Column(String(30), nullable=True, index=True,
                          comment="done, not-done, on-hold, rejected, in-progress")
    assigned = Column(Boolean, nullable=False, default=False)
    approved = Column(Boolean, nullable=False, default=False)
    completion_approved = Column(Boolean, nullable=False, default=False)
    unposted = Column(Boolean, nullable=False, default=False)
    unpost_status = Column(String(30), nullable=True)
    unposted_at = Column(DateTime, nullable=True)

    # Assignment
    assigned_to = Column(JSON, nullable=True, comment="id/username/name/role.name snapshot")
    assigned_date = Column(DateTime, nullable=True)
    assignment_remarks = Column(Text, nullable=True)
    assignment_attachment = Column(JSON, nullable=True)
    approved_at = Column(DateTime, nullable=True)
    software_type = Column(String(100), nullable=True)

    # Completion / rejection
    completion_remarks = Column(Text, nullable=True)
    completion_attachment = Column(JSON, nullable=True)
    rejection_remarks = Column(Text, nullable=True)
    rejection_attachment = Column(JSON, nullable=True)
    completion_approved_at = Column(DateTime, nullable=True)
    time_taken = Column(BigInteger, nullable=True, comment="Milliseconds from assignment to completion")

    # Developer cycle
    developer_status = Column(String(30), nullable=True)
    developer_remarks = Column(Text, nullable=True)
    developer_attachment = Column(JSON, nullable=True)
    developer_status_rejection = Column(String(30), nullable=True)
    developer_rejection_remarks = Column(Text, nullable=True)
    developer_rejection_solve_attachment = Column(JSON, nullable=True)
    developer_done_date = Column(DateTime, nullable=True)

    # Timestamps
    created_by = Column(String(64), nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.current_timestamp(), default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, server_default=func.current_timestamp(), default=datetime.utcnow,
                        onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<Task(id={self.id}, code='{self.code}', status='{self.status}')>"
