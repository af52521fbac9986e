"""
Pydantic schemas for the company directory.
"""
from pydantic import BaseModel, Field, ConfigDict
from typing import Any, Dict, List, Optional
from datetime import datetime


class CompanyCreate(BaseModel):
    """Schema for creating a company"""
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1, max_length=255)
    city: Optional[str] = None
    address: Optional[str] = None
    representative: Optional[str] = None
    support: Optional[str] = None
    software_information: List[Dict[str, Any]] = Field(default_factory=list, alias="softwareInformation")


class CompanyResponse(BaseModel):
    """Schema for company response"""
    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., serialization_alias="_id")
    name: str
    city: Optional[str] = None
    address: Optional[str] = None
    representative: Optional[str] = None
    support: Optional[str] = None
    software_information: List[Dict[str, Any]] = Field(default_factory=list, serialization_alias="softwareInformation")
    created_at: Optional[datetime] = Field(None, serialization_alias="createdAt")
    updated_at: Optional[datetime] = Field(None, serialization_alias="updatedAt")
