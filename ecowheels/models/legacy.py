"""Normalization of historical order documents to the canonical schema.

Older clients wrote orders with camelCase keys and several incompatible shapes
for the same field:

- ``price`` or ``fee`` for the delivery price
- ``pickupAddress`` / ``deliveryAddress`` as a structured object or a single
  line of text, with ``postalCode`` or ``zip`` and ``province`` or ``state``
- ``shippingWeight`` as a number or a string such as ``"2.5 kg"``
- ``duration`` as a number or a string of minutes
- timestamps as ISO strings or ``{"seconds": ..., "nanoseconds": ...}`` maps

``normalize_order_document`` maps any of these onto :class:`Order`.
"""

import re
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

from ecowheels.models.order import ASSIGNED_STATUSES, Address, Order, OrderStatus

FIELD_RENAMES = {
    "orderId": "order_code",
    "vehicleType": "vehicle_type",
    "driverId": "driver_id",
    "shippingItem": "shipping_item",
    "shippingWeight": "shipping_weight",
    "pickupAddress": "pickup_address",
    "deliveryAddress": "delivery_address",
    "declineCount": "decline_count",
    "declinedDrivers": "declined_drivers",
    "createdAt": "created_at",
    "acceptedAt": "accepted_at",
    "pickedUpAt": "picked_up_at",
    "inTransitAt": "in_transit_at",
    "completedAt": "completed_at",
    "lastDeclinedAt": "last_declined_at",
}

TIMESTAMP_FIELDS = (
    "created_at",
    "accepted_at",
    "picked_up_at",
    "in_transit_at",
    "completed_at",
    "last_declined_at",
)

_NUMBER = re.compile(r"-?\d+(?:\.\d+)?")


def _parse_number(value: Any) -> float | None:
    """Leading number of a measurement such as ``"2.5 kg"``; negatives count as missing."""
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        match = _NUMBER.search(str(value))
        if not match:
            return None
        number = float(match.group())
    return number if number >= 0 else None


def _parse_price(value: Any) -> Decimal:
    if value is None or value == "":
        return Decimal("0.00")
    try:
        return Decimal(str(value).replace("$", "").strip())
    except InvalidOperation:
        number = _parse_number(value)
        return Decimal(str(number)) if number is not None else Decimal("0.00")


def _parse_timestamp(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, dict) and "seconds" in value:
        seconds = value["seconds"] + value.get("nanoseconds", 0) / 1e9
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    if isinstance(value, (int, float)):
        # Epoch milliseconds, as written by Date.now()
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def normalize_address(value: Any) -> Address | None:
    """Coerce a legacy address (object or text) into an Address."""
    if value is None or value == "":
        return None
    if isinstance(value, Address):
        return value
    if isinstance(value, str):
        return Address(address1=value.strip())
    return Address(
        address1=value.get("address1") or value.get("street") or "",
        address2=value.get("address2") or None,
        city=value.get("city"),
        province=value.get("province") or value.get("state"),
        postal_code=value.get("postal_code") or value.get("postalCode") or value.get("zip"),
        country=value.get("country"),
    )


def normalize_order_document(raw: dict[str, Any]) -> Order:
    """Convert a stored order document of any historical shape into an Order."""
    data: dict[str, Any] = {}
    for key, value in raw.items():
        data[FIELD_RENAMES.get(key, key)] = value

    if "fee" in data:
        fee = data.pop("fee")
        data.setdefault("price", fee)
    data["price"] = _parse_price(data.get("price"))

    weight = _parse_number(data.get("shipping_weight"))
    data["shipping_weight"] = weight
    duration = _parse_number(data.get("duration"))
    data["duration"] = int(duration) if duration is not None else None

    data["pickup_address"] = normalize_address(data.get("pickup_address"))
    data["delivery_address"] = normalize_address(data.get("delivery_address"))

    for field in TIMESTAMP_FIELDS:
        if field in data:
            data[field] = _parse_timestamp(data[field])
    if data.get("created_at") is None:
        data.pop("created_at", None)

    declined = data.get("declined_drivers") or []
    data["declined_drivers"] = list(dict.fromkeys(declined))
    data["decline_count"] = max(int(data.get("decline_count") or 0), len(data["declined_drivers"]))

    status = OrderStatus(data.get("status") or OrderStatus.PENDING)
    if status not in ASSIGNED_STATUSES:
        data["driver_id"] = None
    elif not data.get("driver_id"):
        # An assigned status without a driver cannot be resumed by anyone
        status = OrderStatus.PENDING
        data["driver_id"] = None
    data["status"] = status

    if data.get("order_code") is None:
        data.pop("order_code", None)

    return Order.model_validate(data)
