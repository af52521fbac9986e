"""
Stored blob model: the binary-object collection for attachments.
"""
from datetime import datetime
from sqlalchemy import Column, String, DateTime, BigInteger, JSON, LargeBinary, func
from sqlalchemy.orm import deferred

from app.database import Base
from app.utils.ids import new_object_id


class StoredBlob(Base):
    """
    A binary object addressed by a 24-hex id.

    Content is deferred so metadata lookups never load the bytes.
    """
    __tablename__ = "stored_blobs"

    id = Column(String(24), primary_key=True, default=new_object_id)
    filename = Column(String(255), nullable=False, comment="Original filename")
    content_type = Column(String(150), nullable=True, comment="MIME type")
    length = Column(BigInteger, nullable=False, default=0, comment="Size in bytes")
    upload_date = Column(DateTime, nullable=False, server_default=func.current_timestamp(), default=datetime.utcnow)
    file_metadata = Column("metadata", JSON, nullable=True,
                           comment="originalName, uploadedAt, uploadedBy, relatedTask, attachmentType")
    data = deferred(Column(LargeBinary, nullable=False))

    def __repr__(self):
        return f"<StoredBlob(id={self.id}, filename='{self.filename}', length={self.length})>"
