"""Tiltify donation payload mapping.

The webhook body looks like::

    {
        "data": {"id": "...", "amount": {"currency": "USD", "value": "10.00"},
                 "donor_name": "...", "donor_comment": "...", ...},
        "meta": {"event_type": "public:direct:donation_updated", ...}
    }
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class WebhookPayloadError(ValueError):
    """Webhook body does not match the Tiltify donation schema"""


class TiltifyEventType(Enum):
    DONATION_UPDATED = "donation_updated"
    OTHER = "other"

    @classmethod
    def from_string(cls, value: str) -> "TiltifyEventType":
        """Exact match on the four donation_updated spellings, anything else is OTHER"""
        if value in _DONATION_UPDATED_EVENTS:
            return cls.DONATION_UPDATED
        return cls.OTHER


_DONATION_UPDATED_EVENTS = frozenset({
    "public:direct:donation_updated",
    "private:direct:donation_updated",
    "public:indirect:donation_updated",
    "private:indirect:donation_updated",
})


@dataclass(frozen=True)
class Amount:
    currency: str
    value: str


@dataclass(frozen=True)
class Donation:
    """Normalized donation notification"""
    event_type: TiltifyEventType
    amount: Amount
    donor_name: Optional[str] = None
    donor_comment: Optional[str] = None
    donation_id: Optional[str] = None

    @classmethod
    def from_webhook(cls, payload: dict[str, Any]) -> "Donation":
        """
        Map a Tiltify webhook body to a Donation.

        Args:
            payload: Decoded JSON body

        Returns:
            Donation

        Raises:
            WebhookPayloadError: data/meta/amount/event_type missing or malformed
        """
        if not isinstance(payload, dict):
            raise WebhookPayloadError("payload must be a JSON object")

        data = payload.get("data")
        meta = payload.get("meta")
        if not isinstance(data, dict) or not isinstance(meta, dict):
            raise WebhookPayloadError("payload requires 'data' and 'meta' objects")

        amount = data.get("amount")
        if not isinstance(amount, dict) or "currency" not in amount or "value" not in amount:
            raise WebhookPayloadError("data.amount requires 'currency' and 'value'")

        event_type = meta.get("event_type")
        if not isinstance(event_type, str):
            raise WebhookPayloadError("meta.event_type must be a string")

        donation_id = data.get("id")
        return cls(
            event_type=TiltifyEventType.from_string(event_type),
            amount=Amount(currency=str(amount["currency"]), value=str(amount["value"])),
            donor_name=data.get("donor_name") or None,
            donor_comment=data.get("donor_comment") or None,
            donation_id=str(donation_id) if donation_id is not None else None,
        )
