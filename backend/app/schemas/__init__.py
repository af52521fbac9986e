"""
Pydantic schemas package.
"""
from .task import (
    TaskResponse,
    BulkUnpostRequest,
    BulkUnpostResponse,
    AssignmentRemarksRequest,
    DeveloperUpdateResponse,
    AttachmentFileInfo,
    AttachmentFileList,
    MessageResponse,
)
from .company import CompanyCreate, CompanyResponse

__all__ = [
    "TaskResponse",
    "BulkUnpostRequest",
    "BulkUnpostResponse",
    "AssignmentRemarksRequest",
    "DeveloperUpdateResponse",
    "AttachmentFileInfo",
    "AttachmentFileList",
    "MessageResponse",
    "CompanyCreate",
    "CompanyResponse",
]
