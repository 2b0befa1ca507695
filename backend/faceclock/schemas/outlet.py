from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime


class OutletBase(BaseModel):
    name: str = Field(..., min_length=1)
    address: Optional[str] = None
    latitude: float
    longitude: float


class OutletCreate(OutletBase):
    radius: Optional[float] = Field(None, ge=0)  # meters, defaults to DEFAULT_OUTLET_RADIUS_METERS
    is_active: bool = True


class OutletUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    radius: Optional[float] = Field(None, ge=0)
    is_active: Optional[bool] = None


class OutletInDB(OutletBase):
    id: int
    radius: float
    is_active: bool
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True


class Outlet(OutletInDB):
    pass
