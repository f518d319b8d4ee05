"""
Projection of property records into the public Property representation.

Applies exactly one of two address-disclosure policies: masked (coarse
address plus reduced-precision coordinates) or full (street address plus
exact coordinates). The two shapes never mix.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional

from catalog.records import BedConfigRecord, PropertyRecord

DEFAULT_CURRENCY = "USD"
DEFAULT_ROOM_LABEL = "Bedroom"
MIN_MASK_PRECISION = 0
MAX_MASK_PRECISION = 5


def mask_coordinate(value: float, precision: int) -> float:
    """
    Reduce a coordinate to `precision` decimal digits.

    Rounds value * 10**precision half away from zero, then scales back, so
    -36.84853 at precision 2 becomes -36.85. Decimal arithmetic on the
    float's shortest repr keeps halves from drifting.
    """
    if not MIN_MASK_PRECISION <= precision <= MAX_MASK_PRECISION:
        raise ValueError(f"mask precision must be between {MIN_MASK_PRECISION} and {MAX_MASK_PRECISION}")
    scale = Decimal(10) ** precision
    scaled = (Decimal(repr(float(value))) * scale).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    return float(scaled / scale)


def group_bed_configs(configs: List[BedConfigRecord]) -> List[Dict[str, Any]]:
    """Group bed rows by room label in first-seen order."""
    grouped: Dict[str, Dict[str, Any]] = {}
    for config in configs:
        label = config.room_label or DEFAULT_ROOM_LABEL
        room = grouped.setdefault(label, {"room_label": label, "beds": []})
        room["beds"].append({"type": config.bed_type, "count": config.bed_count})
    return list(grouped.values())


def _money(amount: Optional[Decimal], currency: Optional[str]) -> Optional[Dict[str, Any]]:
    if amount is None:
        return None
    return {"amount": float(amount), "currency": currency or DEFAULT_CURRENCY}


def _prune(value: Any) -> Any:
    """Drop None entries from nested dicts."""
    if isinstance(value, dict):
        return {k: _prune(v) for k, v in value.items() if v is not None}
    if isinstance(value, list):
        return [_prune(v) for v in value]
    return value


class ResultProjector:
    """Maps PropertyRecords to public Property dicts."""

    def __init__(self, address_masking: bool = False, mask_precision: int = 2):
        if not MIN_MASK_PRECISION <= mask_precision <= MAX_MASK_PRECISION:
            raise ValueError(f"mask precision must be between {MIN_MASK_PRECISION} and {MAX_MASK_PRECISION}")
        self.address_masking = address_masking
        self.mask_precision = mask_precision

    def project(self, record: PropertyRecord) -> Dict[str, Any]:
        """
        Build the public representation of one record.

        Args:
            record: Store record with children attached

        Returns:
            JSON-ready Property dict with None values omitted
        """
        prop: Dict[str, Any] = {
            "id": record.id,
            "status": record.status.value,
            "title": record.title,
            "summary": record.summary,
            "description": record.description,
            "region_id": record.region_id,
            "type": record.property_type,
            "max_occupancy": record.max_occupancy,
            "bedrooms": record.bedrooms,
            "bathrooms": float(record.bathrooms) if record.bathrooms is not None else None,
            "photos": [
                {
                    "url": p.url,
                    "caption": p.caption,
                    "width": p.width,
                    "height": p.height,
                    "order": p.order,
                }
                for p in record.photos
            ],
            "amenities": list(record.amenities),
            "accessibility": list(record.accessibility),
            "tags": list(record.tags),
            "created_at": record.created_at.isoformat() if record.created_at else None,
            "updated_at": record.updated_at.isoformat() if record.updated_at else None,
        }

        prop.update(self._location(record))

        if record.bed_configs:
            prop["bed_config"] = group_bed_configs(record.bed_configs)

        prop["pet_policy"] = {
            "allowed": bool(record.pets_allowed),
            "max_pets": record.max_pets,
            "fee_type": record.pet_fee_type,
            "fee": _money(record.pet_fee_amount, record.pet_fee_currency),
        }

        prop["booking_policy"] = {
            "instant_book": bool(record.instant_book),
            "min_stay_nights": record.min_stay_nights or 1,
            "max_stay_nights": record.max_stay_nights,
            "buffer_days_before": record.buffer_days_before,
            "buffer_days_after": record.buffer_days_after,
            "cancellation_tier": record.cancellation_tier,
        }

        prop["fees"] = self._fees(record)

        prop["tax_info"] = {
            "gst_registered": bool(record.gst_registered),
            "gst_number": record.gst_number,
        }

        if record.rating_average is not None:
            prop["rating"] = {
                "average": float(record.rating_average),
                "count": record.rating_count or 0,
            }

        return _prune(prop)

    def _location(self, record: PropertyRecord) -> Dict[str, Any]:
        if self.address_masking:
            return {
                "public_address": {
                    "city": record.city,
                    "region": record.region,
                    "country": record.country,
                    "postal_code": record.postal_code,
                },
                "public_coordinates": {
                    "lat": mask_coordinate(record.lat, self.mask_precision),
                    "lon": mask_coordinate(record.lon, self.mask_precision),
                },
            }
        return {
            "address": {
                "line1": record.address_line1,
                "line2": record.address_line2,
                "city": record.city,
                "region": record.region,
                "country": record.country,
                "postal_code": record.postal_code,
            },
            "coordinates": {"lat": record.lat, "lon": record.lon},
        }

    def _fees(self, record: PropertyRecord) -> Dict[str, Any]:
        fees: Dict[str, Any] = {}
        cleaning = _money(record.cleaning_fee, record.cleaning_fee_currency)
        if cleaning:
            fees["cleaning_fee"] = cleaning
        deposit = _money(record.security_deposit, record.security_deposit_currency)
        if deposit:
            fees["security_deposit"] = deposit
        if record.additional_guest_after is not None and record.additional_guest_fee is not None:
            fees["additional_guest_fee"] = {
                "applies_after_guests": record.additional_guest_after,
                "per_guest_per_night": _money(
                    record.additional_guest_fee, record.additional_guest_fee_currency
                ),
            }
        return fees
