from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime

class AuctionHistoryCreate(BaseModel):
    listing_id: str
    bid_amount: float = Field(..., gt=0)
    buyer_id: Optional[str] = None
    bid_date: Optional[datetime] = None

class AuctionHistoryUpdate(BaseModel):
    validated: Optional[bool] = None
    validated_at: Optional[datetime] = None
    bid_amount: Optional[float] = Field(None, gt=0)

class AuctionHistoryOut(BaseModel):
    id: str
    listing_id: str
    submission_id: Optional[str] = None
    seller_id: str
    buyer_id: Optional[str] = None
    bid_amount: float
    bid_date: datetime
    validated: bool
    validated_at: Optional[datetime] = None
    validator_id: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
