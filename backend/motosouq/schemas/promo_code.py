from pydantic import BaseModel, validator, Field
from typing import Optional
from datetime import datetime

from motosouq.models.promo_code import DISCOUNT_TYPES, PROMO_STATUSES

class PromoCodeBase(BaseModel):
    code: str = Field(..., min_length=2, max_length=50)
    description: Optional[str] = None
    discount_type: str = "percentage"
    discount_value: float = Field(..., gt=0)
    max_discount: Optional[float] = Field(None, gt=0)
    min_listing_price: Optional[float] = Field(None, ge=0)
    status: str = "active"
    max_uses: Optional[int] = Field(None, ge=1)
    per_user_limit: Optional[int] = Field(None, ge=1)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    @validator('discount_type')
    def discount_type_must_be_valid(cls, v):
        if v not in DISCOUNT_TYPES:
            raise ValueError('El tipo de descuento debe ser "percentage" o "fixed"')
        return v

    @validator('status')
    def status_must_be_valid(cls, v):
        if v not in PROMO_STATUSES:
            raise ValueError('El estado debe ser "active" o "inactive"')
        return v

    @validator('discount_value')
    def percentage_max_100(cls, v, values):
        if values.get('discount_type') == 'percentage' and v > 100:
            raise ValueError('Un descuento porcentual no puede superar 100')
        return v

    @validator('end_date')
    def end_after_start(cls, v, values):
        start = values.get('start_date')
        if v is not None and start is not None and v < start:
            raise ValueError('La fecha de fin debe ser posterior a la de inicio')
        return v

class PromoCodeCreate(PromoCodeBase):
    pass

class PromoCodeUpdate(BaseModel):
    description: Optional[str] = None
    discount_value: Optional[float] = Field(None, gt=0)
    max_discount: Optional[float] = Field(None, gt=0)
    min_listing_price: Optional[float] = Field(None, ge=0)
    status: Optional[str] = None
    max_uses: Optional[int] = Field(None, ge=1)
    per_user_limit: Optional[int] = Field(None, ge=1)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    @validator('status')
    def status_must_be_valid(cls, v):
        if v is not None and v not in PROMO_STATUSES:
            raise ValueError('El estado debe ser "active" o "inactive"')
        return v

class PromoCodeResponse(PromoCodeBase):
    id: str
    used_count: int
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class PromoCodeCheck(BaseModel):
    code: str
    total_price: float = Field(..., ge=0)
    listing_id: Optional[str] = None

class PromoCodeQuote(BaseModel):
    code: str
    original_price: float
    discount_amount: float
    final_price: float
