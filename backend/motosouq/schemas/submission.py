from pydantic import BaseModel, validator, Field
from typing import Optional, List
from datetime import datetime

class SubmissionCreate(BaseModel):
    amount: float = Field(..., gt=0)

    @validator('amount')
    def amount_must_be_positive(cls, v):
        if v <= 0:
            raise ValueError('El monto debe ser mayor que cero')
        return v

class SubmissionUpdate(SubmissionCreate):
    version: Optional[int] = None

class SubmissionReject(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)

class SubmissionValidate(BaseModel):
    version: Optional[int] = None

class SubmissionResponseOut(BaseModel):
    id: str
    buyer_id: str
    response: str
    reason: Optional[str] = None
    response_date: datetime

    class Config:
        from_attributes = True

class SubmissionOut(BaseModel):
    id: str
    listing_id: str
    user_id: str
    amount: float
    min_soom: float
    status: str
    submission_date: datetime
    acceptance_date: Optional[datetime] = None
    sale_validated: bool
    sale_validation_date: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    validation_deadline: Optional[datetime] = None
    version: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class SubmissionDetail(SubmissionOut):
    responses: List[SubmissionResponseOut] = []

class NegotiationCreate(BaseModel):
    offer_amount: float = Field(..., gt=0)
    message: Optional[str] = Field(None, max_length=1000)

class NegotiationRespond(BaseModel):
    response: str

    @validator('response')
    def response_must_be_valid(cls, v):
        if v not in ("accepted", "rejected"):
            raise ValueError('La respuesta debe ser "accepted" o "rejected"')
        return v

class NegotiationOut(BaseModel):
    id: str
    submission_id: str
    sender_id: str
    receiver_id: str
    offer_amount: float
    message: Optional[str] = None
    response: Optional[str] = None
    responded_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True
