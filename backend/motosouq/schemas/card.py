from pydantic import BaseModel, validator, Field
from typing import Optional
from datetime import datetime

class CardTypeBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)

class CardTypeCreate(CardTypeBase):
    pass

class CardTypeResponse(CardTypeBase):
    id: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class BankCardBase(BaseModel):
    card_type_id: Optional[str] = None
    holder_name: Optional[str] = None
    last_four: str
    brand: Optional[str] = None
    expiry_month: str
    expiry_year: int = Field(..., ge=2000, le=2100)
    is_default: bool = False

    @validator('last_four')
    def last_four_digits(cls, v):
        if len(v) != 4 or not v.isdigit():
            raise ValueError('last_four debe contener exactamente 4 dígitos')
        return v

    @validator('expiry_month')
    def month_must_be_valid(cls, v):
        if not v.isdigit() or not 1 <= int(v) <= 12:
            raise ValueError('El mes de expiración debe estar entre 01 y 12')
        return v.zfill(2)

class BankCardCreate(BankCardBase):
    # Token emitido por el procesador de pagos
    payment_token: str = Field(..., min_length=1)

class BankCardUpdate(BaseModel):
    holder_name: Optional[str] = None
    card_type_id: Optional[str] = None
    is_default: Optional[bool] = None

class BankCardResponse(BankCardBase):
    id: str
    user_id: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
