"""
Pydantic schemas for Task documents.

Responses keep the document field names the dashboard reads (``_id``,
``TasksAttachment``, ``assignedTo``, ``developer_status`` ...).
"""
from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import Any, Dict, List, Optional, Union
from datetime import datetime

from app.services.attachment_refs import normalize_attachment_list


ATTACHMENT_FIELDS = (
    "tasks_attachment",
    "assignment_attachment",
    "completion_attachment",
    "rejection_attachment",
    "developer_attachment",
    "developer_rejection_solve_attachment",
)


class AssignedRole(BaseModel):
    name: str


class AssignedToSnapshot(BaseModel):
    """Denormalized copy of the assignee at assignment time."""
    id: str
    username: str
    name: str
    role: AssignedRole


class ContactInfo(BaseModel):
    name: str
    phone: str


class TaskResponse(BaseModel):
    """Schema for task response"""
    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., serialization_alias="_id")
    code: str
    company: Optional[Dict[str, Any]] = None
    contact: Optional[Dict[str, Any]] = None
    working: Optional[str] = None
    date_time: Optional[datetime] = Field(None, serialization_alias="dateTime")
    priority: Optional[str] = None
    status: str
    final_status: Optional[str] = Field(None, serialization_alias="finalStatus")
    assigned: bool = False
    approved: bool = False
    completion_approved: bool = Field(False, serialization_alias="completionApproved")
    unposted: bool = False
    unpost_status: Optional[str] = Field(None, serialization_alias="UnpostStatus")
    unposted_at: Optional[datetime] = Field(None, serialization_alias="unpostedAt")
    task_remarks: Optional[str] = Field(None, serialization_alias="TaskRemarks")
    tasks_attachment: List[str] = Field(default_factory=list, serialization_alias="TasksAttachment")

    assigned_to: Optional[Dict[str, Any]] = Field(None, serialization_alias="assignedTo")
    assigned_date: Optional[datetime] = Field(None, serialization_alias="assignedDate")
    assignment_remarks: Optional[str] = Field(None, serialization_alias="assignmentRemarks")
    assignment_attachment: List[str] = Field(default_factory=list, serialization_alias="assignmentAttachment")
    approved_at: Optional[datetime] = Field(None, serialization_alias="approvedAt")
    software_type: Optional[str] = Field(None, serialization_alias="softwareType")

    completion_remarks: Optional[str] = Field(None, serialization_alias="completionRemarks")
    completion_attachment: List[str] = Field(default_factory=list, serialization_alias="completionAttachment")
    rejection_remarks: Optional[str] = Field(None, serialization_alias="rejectionRemarks")
    rejection_attachment: List[str] = Field(default_factory=list, serialization_alias="rejectionAttachment")
    completion_approved_at: Optional[datetime] = Field(None, serialization_alias="completionApprovedAt")
    time_taken: Optional[int] = Field(None, serialization_alias="timeTaken")

    developer_status: Optional[str] = None
    developer_remarks: Optional[str] = None
    developer_attachment: List[str] = Field(default_factory=list)
    developer_status_rejection: Optional[str] = None
    developer_rejection_remarks: Optional[str] = None
    developer_rejection_solve_attachment: List[str] = Field(default_factory=list)
    developer_done_date: Optional[datetime] = None

    created_by: Optional[str] = Field(None, serialization_alias="createdBy")
    created_at: Optional[datetime] = Field(None, serialization_alias="createdAt")
    updated_at: Optional[datetime] = Field(None, serialization_alias="updatedAt")

    @field_validator(*ATTACHMENT_FIELDS, mode="before")
    @classmethod
    def _normalize_attachments(cls, value):
        # Legacy rows store a single attachment as a bare string
        return normalize_attachment_list(value)


class BulkUnpostRequest(BaseModel):
    """Schema for unposting several tasks at once"""
    taskIds: Union[List[str], str]


class BulkUnpostResponse(BaseModel):
    message: str
    modifiedCount: int


class AssignmentRemarksRequest(BaseModel):
    taskId: str
    remarks: Optional[str]


class DeveloperUpdateResponse(BaseModel):
    message: str
    taskId: str
    success: bool = True


class AttachmentFileInfo(BaseModel):
    id: str
    name: str
    type: str
    size: int
    downloadUrl: str


class AttachmentFileList(BaseModel):
    message: str
    taskCode: Optional[str] = None
    files: List[AttachmentFileInfo] = Field(default_factory=list)


class MessageResponse(BaseModel):
    message: str
