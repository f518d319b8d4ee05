"""
API models and schemas for the FastAPI application.
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class Money(BaseModel):
    amount: float
    currency: str = "USD"


class Coordinates(BaseModel):
    lat: float
    lon: float


class Address(BaseModel):
    line1: Optional[str] = None
    line2: Optional[str] = None
    city: Optional[str] = None
    region: Optional[str] = None
    country: Optional[str] = None
    postal_code: Optional[str] = None


class PublicAddress(BaseModel):
    """Coarse address returned when address masking is on."""
    city: Optional[str] = None
    region: Optional[str] = None
    country: Optional[str] = None
    postal_code: Optional[str] = None


class Photo(BaseModel):
    url: str
    caption: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    order: Optional[int] = None


class Bed(BaseModel):
    type: str
    count: int


class BedConfig(BaseModel):
    room_label: str
    beds: List[Bed]


class PetPolicy(BaseModel):
    allowed: bool
    max_pets: Optional[int] = None
    fee_type: Optional[str] = None
    fee: Optional[Money] = None


class BookingPolicy(BaseModel):
    instant_book: bool
    min_stay_nights: int = 1
    max_stay_nights: Optional[int] = None
    buffer_days_before: Optional[int] = None
    buffer_days_after: Optional[int] = None
    cancellation_tier: Optional[str] = None


class AdditionalGuestFee(BaseModel):
    applies_after_guests: int
    per_guest_per_night: Money


class Fees(BaseModel):
    cleaning_fee: Optional[Money] = None
    additional_guest_fee: Optional[AdditionalGuestFee] = None
    security_deposit: Optional[Money] = None


class TaxInfo(BaseModel):
    gst_registered: bool
    gst_number: Optional[str] = None


class Rating(BaseModel):
    average: float
    count: int


class PropertyResponse(BaseModel):
    """Public property representation."""
    id: str = Field(..., description="Property identifier")
    status: str = Field(..., description="Lifecycle status")
    title: str = Field(..., description="Listing title")
    summary: Optional[str] = None
    description: Optional[str] = None
    address: Optional[Address] = Field(None, description="Full address, only when not masked")
    public_address: Optional[PublicAddress] = Field(None, description="Coarse address, only when masked")
    coordinates: Optional[Coordinates] = Field(None, description="Exact point, only when not masked")
    public_coordinates: Optional[Coordinates] = Field(None, description="Rounded point, only when masked")
    region_id: str
    type: str
    max_occupancy: int
    bedrooms: Optional[int] = None
    bathrooms: Optional[float] = None
    bed_config: Optional[List[BedConfig]] = None
    amenities: List[str] = []
    accessibility: List[str] = []
    photos: List[Photo] = []
    pet_policy: Optional[PetPolicy] = None
    booking_policy: Optional[BookingPolicy] = None
    fees: Optional[Fees] = None
    tax_info: Optional[TaxInfo] = None
    rating: Optional[Rating] = None
    tags: List[str] = []
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class PropertyListResponse(BaseModel):
    """One page of properties."""
    data: List[PropertyResponse] = Field(..., description="Properties on this page")
    next_cursor: Optional[str] = Field(None, description="Cursor for the next page, null on the last page")


class ErrorResponse(BaseModel):
    """Error response model."""
    code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Error message")
    request_id: Optional[str] = Field(None, description="Request correlation id")
    errors: Optional[List[str]] = Field(None, description="Validation failures")


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="Service status")
    timestamp: datetime = Field(..., description="Current timestamp")
    version: str = Field(..., description="API version")


class ReadinessResponse(BaseModel):
    """Readiness check response model."""
    status: str = Field(..., description="ready or not ready")
    services: Dict[str, str] = Field(..., description="Per-dependency status")
    timestamp: datetime = Field(..., description="Current timestamp")
