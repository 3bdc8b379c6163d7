from pydantic import BaseModel, validator, Field
from typing import Optional
from datetime import datetime

from motosouq.models.listing import LISTING_STATUSES, PRICE_TYPES

class ListingBase(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    price: float = Field(0, ge=0)
    price_type: str = "fixed"
    currency: str = "SAR"
    auction_enabled: bool = False
    minimum_bid: Optional[float] = Field(None, ge=0)
    allow_submission: bool = True

    @validator('title')
    def title_not_blank(cls, v):
        if not v.strip():
            raise ValueError('El título no puede estar vacío')
        return v.strip()

    @validator('price_type')
    def price_type_must_be_valid(cls, v):
        if v not in PRICE_TYPES:
            raise ValueError('El tipo de precio debe ser "fixed" o "auction"')
        return v

class ListingCreate(ListingBase):
    status: str = "published"

    @validator('status')
    def status_must_be_valid(cls, v):
        if v not in ("draft", "published"):
            raise ValueError('Un anuncio nuevo solo puede ser "draft" o "published"')
        return v

class ListingWithAuctionCreate(ListingBase):
    price_type: str = "auction"
    auction_enabled: bool = True
    initial_bid: Optional[float] = Field(None, gt=0)

class ListingUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    price_type: Optional[str] = None
    auction_enabled: Optional[bool] = None
    minimum_bid: Optional[float] = Field(None, ge=0)
    allow_submission: Optional[bool] = None
    status: Optional[str] = None

    @validator('status')
    def status_must_be_valid(cls, v):
        if v is not None and v not in LISTING_STATUSES:
            raise ValueError(f'El estado debe ser uno de: {", ".join(LISTING_STATUSES)}')
        return v

class ListingClose(BaseModel):
    closing_reason: Optional[str] = None

class ListingReopen(BaseModel):
    reopening_notes: Optional[str] = None

class ListingResponse(ListingBase):
    id: str
    seller_id: str
    status: str
    published_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    closing_reason: Optional[str] = None
    reopened_at: Optional[datetime] = None
    reopening_notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
