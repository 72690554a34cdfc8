"""
Request/response schemas for the admin API.
"""
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class MappingCreate(BaseModel):
    splynx_customer_id: str = Field(min_length=1, max_length=64)
    uisp_client_id: int = Field(gt=0)
    notes: Optional[str] = None

    @field_validator("splynx_customer_id", mode="before")
    @classmethod
    def _strip_id(cls, value):
        return str(value).strip() if value is not None else value


class MappingResponse(BaseModel):
    splynx_customer_id: str
    uisp_client_id: int
    notes: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class SyncStartedResponse(BaseModel):
    success: bool = True
    message: str


class SplynxCustomerSyncResponse(BaseModel):
    success: bool = True
    message: str
    count: int
