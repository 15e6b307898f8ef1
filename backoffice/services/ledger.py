# backoffice/services/ledger.py
"""
Partner ledger: customers and suppliers with a running ``debt`` balance.

The stored balance is moved only by explicit increments/decrements from
the conversion, payment and purchase services, or by a manual override
that is written down as a DebtAdjustment. reconcile() rebuilds the
expected balance from the documents and reports any drift.
"""
from __future__ import annotations

import logging

import sqlalchemy as sa

from ..errors import IntegrityError, ValidationError, not_found
from ..extensions import db
from ..models import MONEY_TOLERANCE, Customer, DebtAdjustment, Invoice, Purchase, Supplier
from .unit_of_work import atomic, guarded_update

log = logging.getLogger(__name__)

DRIFT_TOLERANCE = 0.005

PARTNER_MODELS = {"customer": Customer, "supplier": Supplier}


def partner_model(kind: str):
    return PARTNER_MODELS[kind]


def get_partner(kind: str, partner_id: int):
    model = partner_model(kind)
    partner = db.session.get(model, partner_id)
    if partner is None:
        raise not_found(kind.capitalize(), partner_id)
    return partner


# ======================
# Balance moves
# ======================
def adjust_debt(kind: str, partner_id: int, delta: float):
    """
    debt += delta as one guarded UPDATE. A decrement that would take the
    balance below zero is an integrity problem and is raised, not clamped.
    A balance left within MONEY_TOLERANCE of zero is written as 0.
    """
    model = partner_model(kind)
    delta = round(float(delta), 2)
    new_debt = model.debt + delta
    conditions = [] if delta >= 0 else [new_debt >= -MONEY_TOLERANCE]

    partner = guarded_update(
        model,
        partner_id,
        *conditions,
        debt=sa.case((sa.func.abs(new_debt) <= MONEY_TOLERANCE, 0.0), else_=new_debt),
    )
    if partner is not None:
        return partner

    current = get_partner(kind, partner_id)
    raise IntegrityError(
        f"{kind.capitalize()} debt would become negative ({current.debt} {delta:+}).",
        details={"partnerId": partner_id, "currentDebt": current.debt, "delta": delta},
    )


# ======================
# Create / update
# ======================
def create_partner(kind: str, values: dict):
    model = partner_model(kind)
    if kind == "customer" and not values.get("group"):
        values = {**values, "group": "Khách lẻ"}
    with atomic(f"Create {kind}"):
        partner = model(debt=0.0, **values)
        db.session.add(partner)
        db.session.flush()
    log.info("%s %s created", kind, partner.id)
    return partner


def update_partner(kind: str, partner_id: int, values: dict):
    """
    Apply contact edits. A ``debt`` value is a manual override: it is
    applied as an adjustment entry holding previous, new and delta.
    """
    values = dict(values)
    new_debt = values.pop("debt", None)
    reason = values.pop("debt_reason", None)

    if new_debt is not None and new_debt < 0:
        raise ValidationError("debt must be 0 or greater.", field="debt")

    with atomic(f"Update {kind}"):
        partner = get_partner(kind, partner_id)
        for column, value in values.items():
            setattr(partner, column, value)

        if new_debt is not None and round(new_debt - partner.debt, 2) != 0:
            previous = float(partner.debt)
            db.session.add(
                DebtAdjustment(
                    partner_type=kind,
                    partner_id=partner.id,
                    previous_debt=previous,
                    new_debt=new_debt,
                    delta=round(new_debt - previous, 2),
                    reason=reason,
                )
            )
            partner = adjust_debt(kind, partner.id, new_debt - previous)
            log.info("%s %s debt overridden %s -> %s", kind, partner.id, previous, new_debt)

    return partner


def list_adjustments(kind: str, partner_id: int) -> list[DebtAdjustment]:
    return (
        db.session.execute(
            sa.select(DebtAdjustment)
            .where(DebtAdjustment.partner_type == kind, DebtAdjustment.partner_id == partner_id)
            .order_by(DebtAdjustment.created_at.asc(), DebtAdjustment.id.asc())
        )
        .scalars()
        .all()
    )


# ======================
# Reconciliation
# ======================
def _outstanding(kind: str, partner_id: int) -> tuple[float, int]:
    if kind == "customer":
        stmt = sa.select(sa.func.coalesce(sa.func.sum(Invoice.debt), 0.0), sa.func.count(Invoice.id)).where(
            Invoice.customer_id == partner_id,
            Invoice.cancelled_at.is_(None),
            Invoice.debt > 0,
        )
    else:
        stmt = sa.select(sa.func.coalesce(sa.func.sum(Purchase.debt), 0.0), sa.func.count(Purchase.id)).where(
            Purchase.supplier_id == partner_id,
            Purchase.returned_at.is_(None),
            Purchase.debt > 0,
        )
    total, count = db.session.execute(stmt).one()
    return round(float(total or 0), 2), int(count or 0)


def reconcile(kind: str, partner_id: int) -> dict:
    partner = get_partner(kind, partner_id)
    outstanding, open_documents = _outstanding(kind, partner_id)
    adjustments = list_adjustments(kind, partner_id)
    adjusted = round(sum(a.delta for a in adjustments), 2)

    expected = round(outstanding + adjusted, 2)
    stored = round(float(partner.debt), 2)
    drift = round(stored - expected, 2)

    if abs(drift) > DRIFT_TOLERANCE:
        log.warning("%s %s ledger drift: stored=%s expected=%s", kind, partner_id, stored, expected)

    return {
        "partner": partner,
        "stored_debt": stored,
        "outstanding": outstanding,
        "open_documents": open_documents,
        "adjustments": adjustments,
        "adjustment_total": adjusted,
        "expected_debt": expected,
        "drift": drift,
        "consistent": abs(drift) <= DRIFT_TOLERANCE,
    }
