"""
Company model (minimal directory record referenced by tasks).
"""
from datetime import datetime
from sqlalchemy import Column, String, Text, DateTime, JSON, func

from app.database import Base
from app.utils.ids import new_object_id


class Company(Base):
    __tablename__ = "companies"

    id = Column(String(24), primary_key=True, default=new_object_id)
    name = Column(String(255), nullable=False)
    city = Column(String(120), nullable=True)
    address = Column(Text, nullable=True)
    representative = Column(String(255), nullable=True)
    support = Column(String(120), nullable=True)
    software_information = Column(JSON, nullable=True, comment="List of {softwareType, ...}")

    created_at = Column(DateTime, nullable=False, server_default=func.current_timestamp(), default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, server_default=func.current_timestamp(), default=datetime.utcnow,
                        onupdate=datetime.utcnow)

    @property
    def software_type(self) -> str:
        """First recorded software type, or N/A."""
        entries = self.software_information or []
        if entries and isinstance(entries[0], dict):
            return entries[0].get("softwareType") or "N/A"
        return "N/A"

    def __repr__(self):
        return f"<Company(id={self.id}, name='{self.name}')>"

    def to_dict(self):
        return {
            "_id": self.id,
            "name": self.name,
            "city": self.city,
            "address": self.address,
            "representative": self.representative,
            "support": self.support,
            "softwareInformation": self.software_information or [],
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }
