"""
tiltify/
========

Tiltify webhook payload mapping.

- donation.py : Donation / TiltifyEventType (pure mapping from the webhook JSON)
- intake.py : dedupe + publish onto the CommandBus (state owned by the web layer)
"""

from tiltify.donation import Amount, Donation, TiltifyEventType, WebhookPayloadError

__all__ = ["Amount", "Donation", "TiltifyEventType", "WebhookPayloadError"]
