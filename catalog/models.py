"""SQLAlchemy models for the property catalog."""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from geoalchemy2 import Geography
from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, Numeric, String, Text, func
from sqlalchemy.dialects.postgresql import ARRAY
from sqlalchemy.orm import Mapped, mapped_column

from catalog.database import Base


class Property(Base):
    """A rentable property listing."""

    __tablename__ = "properties"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    summary: Mapped[Optional[str]] = mapped_column(Text)
    description: Mapped[Optional[str]] = mapped_column(Text)
    region_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    property_type: Mapped[str] = mapped_column(String(20), nullable=False)
    max_occupancy: Mapped[int] = mapped_column(Integer, nullable=False)
    bedrooms: Mapped[Optional[int]] = mapped_column(Integer)
    bathrooms: Mapped[Optional[Decimal]] = mapped_column(Numeric(4, 1))

    address_line1: Mapped[Optional[str]] = mapped_column(Text)
    address_line2: Mapped[Optional[str]] = mapped_column(Text)
    city: Mapped[Optional[str]] = mapped_column(String(100))
    region: Mapped[Optional[str]] = mapped_column(String(100))
    country: Mapped[Optional[str]] = mapped_column(String(2))
    postal_code: Mapped[Optional[str]] = mapped_column(String(20))
    coordinates: Mapped[str] = mapped_column(
        Geography("POINT", srid=4326, spatial_index=True), nullable=False
    )

    pets_allowed: Mapped[bool] = mapped_column(Boolean, default=False)
    max_pets: Mapped[Optional[int]] = mapped_column(Integer)
    pet_fee_type: Mapped[Optional[str]] = mapped_column(String(30))
    pet_fee_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    pet_fee_currency: Mapped[Optional[str]] = mapped_column(String(3))

    instant_book: Mapped[bool] = mapped_column(Boolean, default=False)
    min_stay_nights: Mapped[Optional[int]] = mapped_column(Integer)
    max_stay_nights: Mapped[Optional[int]] = mapped_column(Integer)
    buffer_days_before: Mapped[Optional[int]] = mapped_column(Integer)
    buffer_days_after: Mapped[Optional[int]] = mapped_column(Integer)
    cancellation_tier: Mapped[Optional[str]] = mapped_column(String(20))

    cleaning_fee: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    cleaning_fee_currency: Mapped[Optional[str]] = mapped_column(String(3))
    security_deposit: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    security_deposit_currency: Mapped[Optional[str]] = mapped_column(String(3))
    additional_guest_after: Mapped[Optional[int]] = mapped_column(Integer)
    additional_guest_fee: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    additional_guest_fee_currency: Mapped[Optional[str]] = mapped_column(String(3))

    gst_registered: Mapped[bool] = mapped_column(Boolean, default=False)
    gst_number: Mapped[Optional[str]] = mapped_column(String(20))

    rating_average: Mapped[Optional[Decimal]] = mapped_column(Numeric(3, 2))
    rating_count: Mapped[Optional[int]] = mapped_column(Integer)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    def __repr__(self) -> str:
        return f"<Property {self.id}: {self.title}>"


class PropertyPhoto(Base):
    """A photo of a property."""

    __tablename__ = "property_photos"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    property_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("properties.id"), nullable=False, index=True
    )
    url: Mapped[str] = mapped_column(Text, nullable=False)
    caption: Mapped[Optional[str]] = mapped_column(Text)
    width: Mapped[Optional[int]] = mapped_column(Integer)
    height: Mapped[Optional[int]] = mapped_column(Integer)
    display_order: Mapped[Optional[int]] = mapped_column(Integer)


class PropertyAmenity(Base):
    """An amenity offered by a property."""

    __tablename__ = "property_amenities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    property_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("properties.id"), nullable=False, index=True
    )
    amenity: Mapped[str] = mapped_column(String(50), nullable=False)


class PropertyAccessibility(Base):
    """An accessibility feature of a property."""

    __tablename__ = "property_accessibility"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    property_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("properties.id"), nullable=False, index=True
    )
    feature: Mapped[str] = mapped_column(String(50), nullable=False)


class PropertyTag(Base):
    """A free-form tag on a property."""

    __tablename__ = "property_tags"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    property_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("properties.id"), nullable=False, index=True
    )
    tag: Mapped[str] = mapped_column(String(50), nullable=False)


class PropertyBedConfig(Base):
    """Beds of one type within a room."""

    __tablename__ = "property_bed_configs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    property_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("properties.id"), nullable=False, index=True
    )
    room_label: Mapped[Optional[str]] = mapped_column(String(50))
    bed_type: Mapped[str] = mapped_column(String(20), nullable=False)
    bed_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)


# Credential tables

class ApiKey(Base):
    """An issued API key, stored by hash."""

    __tablename__ = "api_keys"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    key_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[Optional[str]] = mapped_column(Text)
    scopes: Mapped[List[str]] = mapped_column(ARRAY(String(50)), default=list)
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    last_used_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))


class OAuthToken(Base):
    """An OAuth access token issued to a client."""

    __tablename__ = "oauth_tokens"

    token: Mapped[str] = mapped_column(String(255), primary_key=True)
    client_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    scopes: Mapped[List[str]] = mapped_column(ARRAY(String(50)), default=list)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
