"""Quote domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ...config import DEFAULT_CURRENCY
from ...shared.validators import validate_currency, validate_service_categories


class RequestCreate(BaseModel):
    """Schema for a customer opening a repair request"""

    vehicle: dict
    service_categories: list[str]
    description: Optional[str] = None
    customer_name: Optional[str] = None
    expires_at: Optional[datetime] = None
    draft: bool = False
    invite_workshop_ids: list[int] = Field(default_factory=list)
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)

    @field_validator("service_categories")
    @classmethod
    def normalize_categories(cls, v):
        return validate_service_categories(v)

    @field_validator("vehicle")
    @classmethod
    def validate_vehicle(cls, v):
        if not v.get("make") or not v.get("model"):
            raise ValueError("Vehicle make and model are required")
        return v


class InviteWorkshopsRequest(BaseModel):
    workshop_ids: list[int] = Field(min_length=1)


class BidSubmit(BaseModel):
    """Schema for a workshop pricing a request"""

    amount: float = Field(gt=0)
    currency: str = DEFAULT_CURRENCY
    valid_until: Optional[datetime] = None
    notes: Optional[str] = None

    @field_validator("currency")
    @classmethod
    def normalize_currency(cls, v):
        return validate_currency(v)


class BidRevise(BaseModel):
    amount: float = Field(gt=0)
    valid_until: Optional[datetime] = None
    notes: Optional[str] = None


class BidDecision(BaseModel):
    """Body for accept / decline"""

    bid_id: int


class BidResponse(BaseModel):
    id: int
    public_id: Optional[str] = None
    request_id: int
    workshop_id: int
    workshop_name: Optional[str] = None
    status: str
    amount: Optional[float] = None
    currency: Optional[str] = None
    valid_until: Optional[datetime] = None
    notes: Optional[str] = None
    submitted_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    distance_km: Optional[float] = None

    class Config:
        from_attributes = True


class RequestResponse(BaseModel):
    id: int
    public_id: Optional[str] = None
    customer_id: str
    customer_name: Optional[str] = None
    vehicle: dict
    service_categories: list[str]
    description: Optional[str] = None
    status: str
    expires_at: datetime
    accepted_bid_id: Optional[int] = None
    accepted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PriceRange(BaseModel):
    min: float
    max: float
    average: float


class CompetitionSummary(BaseModel):
    """What a bidding workshop may know about its competition"""

    total_competitors: int
    competitors_submitted: int
    competition_status: str  # active | closed
    is_winner: Optional[bool] = None  # only set once the request is accepted
    status_message: str


class CompetitionView(BaseModel):
    """
    Role-sensitive view of a request's bids.

    Customers get `bids` (priced bids, cheapest first) and `price_range`.
    Workshops get `own_bid` and `summary`; never competitor identities or amounts.
    """

    role: str
    request: RequestResponse
    bids: list[BidResponse] = Field(default_factory=list)
    price_range: Optional[PriceRange] = None
    own_bid: Optional[BidResponse] = None
    summary: Optional[CompetitionSummary] = None
