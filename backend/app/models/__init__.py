"""
Database models package.
"""
from .task import Task
from .blob import StoredBlob
from .company import Company

__all__ = [
    "Task",
    "StoredBlob",
    "Company",
]
