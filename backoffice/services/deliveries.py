# backoffice/services/deliveries.py
from __future__ import annotations

import logging

from ..errors import InvalidStateError, ValidationError, not_found
from ..extensions import db
from ..models import DELIVERY_TRANSITIONS, DeliveryNote, DeliveryStatus, can_transition
from .unit_of_work import atomic
from .validation import NAME_MAXLEN, NOTE_MAXLEN, clean_str, require_object

log = logging.getLogger(__name__)


def get_delivery(delivery_id: int) -> DeliveryNote:
    note = db.session.get(DeliveryNote, delivery_id)
    if note is None:
        raise not_found("Delivery", delivery_id)
    return note


def update_delivery(delivery_id: int, raw) -> DeliveryNote:
    body = require_object(raw)

    target = None
    if body.get("status"):
        try:
            target = DeliveryStatus(str(body["status"]).strip())
        except ValueError:
            allowed = ", ".join(s.value for s in DeliveryStatus)
            raise ValidationError(f"status must be one of: {allowed}.", field="status")

    with atomic("Update delivery"):
        note = get_delivery(delivery_id)

        if target is not None and target != note.status:
            if not can_transition(DELIVERY_TRANSITIONS, note.status, target):
                raise InvalidStateError(
                    f"Delivery {note.delivery_number} cannot move from {note.status.value} to {target.value}."
                )
            note.status = target

        if "shipperName" in body:
            note.shipper_name = clean_str(body.get("shipperName"), "shipperName", NAME_MAXLEN)
        if "note" in body:
            note.note = clean_str(body.get("note"), "note", NOTE_MAXLEN)

    log.info("delivery %s now %s", note.delivery_number, note.status.value)
    return note
