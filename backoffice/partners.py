# backoffice/partners.py
"""
Partner side of the JSON API: customers, suppliers, purchases (receiving)
and the cash-flow journal.
"""
from __future__ import annotations

from flask import Blueprint, jsonify, request

from .routes import json_body, mutation_limit
from .extensions import limiter
from .serializers import (
    cash_flow_json,
    customer_json,
    ledger_json,
    page_json,
    purchase_json,
    supplier_json,
)
from .services import cashflow, ledger, listing, payments, purchases
from .services.validation import parse_bool, parse_partner_payload

partners = Blueprint("partners", __name__)

SERIALIZERS = {"customer": customer_json, "supplier": supplier_json}


# ======================
# Shared partner handlers
# ======================
def _list(kind: str):
    page = listing.list_partners(kind, request.args)
    return jsonify(page_json(page, SERIALIZERS[kind]))


def _create(kind: str):
    values = parse_partner_payload(json_body(), kind, creating=True)
    partner = ledger.create_partner(kind, values)
    return jsonify(SERIALIZERS[kind](partner)), 201


def _update(kind: str, partner_id: int):
    values = parse_partner_payload(json_body(), kind, creating=False)
    partner = ledger.update_partner(kind, partner_id, values)
    return jsonify(SERIALIZERS[kind](partner))


# ======================
# Customers
# ======================
@partners.route("/customers")
def list_customers():
    return _list("customer")


@partners.route("/customers", methods=["POST"])
def create_customer():
    return _create("customer")


@partners.route("/customers/<int:customer_id>")
def get_customer(customer_id):
    return jsonify(customer_json(ledger.get_partner("customer", customer_id)))


@partners.route("/customers/<int:customer_id>", methods=["PUT"])
@limiter.limit(mutation_limit)
def update_customer(customer_id):
    return _update("customer", customer_id)


@partners.route("/customers/<int:customer_id>/ledger")
def customer_ledger(customer_id):
    return jsonify(ledger_json(ledger.reconcile("customer", customer_id)))


# ======================
# Suppliers
# ======================
@partners.route("/suppliers")
def list_suppliers():
    return _list("supplier")


@partners.route("/suppliers", methods=["POST"])
def create_supplier():
    return _create("supplier")


@partners.route("/suppliers/<int:supplier_id>")
def get_supplier(supplier_id):
    return jsonify(supplier_json(ledger.get_partner("supplier", supplier_id)))


@partners.route("/suppliers/<int:supplier_id>", methods=["PUT"])
@limiter.limit(mutation_limit)
def update_supplier(supplier_id):
    return _update("supplier", supplier_id)


@partners.route("/suppliers/<int:supplier_id>/ledger")
def supplier_ledger(supplier_id):
    return jsonify(ledger_json(ledger.reconcile("supplier", supplier_id)))


# ======================
# Purchases (receiving)
# ======================
@partners.route("/purchases")
def list_purchases():
    page = listing.list_purchases(request.args)
    return jsonify(page_json(page, lambda p: purchase_json(p, with_items=False)))


@partners.route("/purchases", methods=["POST"])
@limiter.limit(mutation_limit)
def create_purchase():
    purchase = purchases.create_purchase(json_body())
    return jsonify(purchase_json(purchase)), 201


@partners.route("/purchases/<int:purchase_id>")
def get_purchase(purchase_id):
    return jsonify(purchase_json(purchases.get_purchase(purchase_id)))


@partners.route("/purchases/<int:purchase_id>/payment", methods=["POST"])
@limiter.limit(mutation_limit)
def pay_purchase(purchase_id):
    body = json_body()
    purchase = payments.pay_purchase(
        purchase_id,
        body.get("amount"),
        update_debt=parse_bool(body.get("updateDebt"), default=True),
        payment_method=body.get("paymentMethod"),
    )
    return jsonify(purchase_json(purchase))


@partners.route("/purchases/<int:purchase_id>/return", methods=["POST"])
@limiter.limit(mutation_limit)
def return_purchase(purchase_id):
    body = json_body()
    reason = body.get("reason")
    purchase = purchases.return_purchase(purchase_id, reason=str(reason).strip()[:255] if reason else None)
    return jsonify(purchase_json(purchase))


# ======================
# Cash flow
# ======================
@partners.route("/cash-flow")
def list_cash_flow():
    page = listing.list_cash_flow(request.args)
    return jsonify(page_json(page, cash_flow_json))


@partners.route("/cash-flow", methods=["POST"])
def create_cash_flow():
    entry = cashflow.create_manual_entry(json_body())
    return jsonify(cash_flow_json(entry)), 201
