from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime

class PlateValueIn(BaseModel):
    field_name: str = Field(..., min_length=1)
    field_value: str = Field(..., min_length=1)
    position: Optional[int] = None

class PlateValueOut(BaseModel):
    id: str
    field_name: str
    field_value: str
    position: int

    class Config:
        from_attributes = True

class LicensePlateCreate(BaseModel):
    listing_id: Optional[str] = None
    city_name: str = Field(..., min_length=1)
    plate_format: Optional[str] = None
    values: List[PlateValueIn] = []

class LicensePlateResponse(BaseModel):
    id: str
    listing_id: Optional[str] = None
    city_name: str
    plate_format: Optional[str] = None
    image_path: Optional[str] = None
    values: List[PlateValueOut] = []
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
