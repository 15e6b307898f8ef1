# backoffice/routes.py
"""
Sales side of the JSON API: catalog reads, quotes, orders, invoices and
deliveries. Handlers stay thin: parse the request, call one service,
serialize the result. Domain errors are turned into JSON by create_app().
"""
from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from .extensions import db, limiter
from .errors import not_found
from .models import DeliveryNote, Invoice, Order, Product, Quote
from .serializers import (
    cash_flow_json,
    delivery_json,
    invoice_json,
    order_json,
    page_json,
    product_json,
    quote_json,
    stock_history_json,
)
from .services import conversion, deliveries, documents, listing, payments, stock
from .services.validation import parse_bool, require_object

main = Blueprint("main", __name__)


# ======================
# Helpers
# ======================
def json_body() -> dict:
    body = request.get_json(silent=True)
    return require_object({} if body is None else body)


def mutation_limit() -> str:
    return current_app.config["MUTATION_RATE_LIMIT"]


def _get_or_404(model, ident: int, kind: str):
    obj = db.session.get(model, ident)
    if obj is None:
        raise not_found(kind, ident)
    return obj


@main.route("/health")
def health():
    return jsonify({"status": "ok"})


# ======================
# Catalog (read only)
# ======================
@main.route("/products")
def list_products():
    page = listing.list_products(request.args)
    return jsonify(page_json(page, product_json))


@main.route("/products/<int:product_id>")
def get_product(product_id):
    return jsonify(product_json(_get_or_404(Product, product_id, "Product")))


@main.route("/products/<int:product_id>/stock-history")
def product_stock_history(product_id):
    rows = stock.stock_history(product_id)
    return jsonify({"data": [stock_history_json(h) for h in rows]})


# ======================
# Quotes
# ======================
@main.route("/quotes")
def list_quotes():
    page = listing.list_quotes(request.args)
    return jsonify(page_json(page, lambda q: quote_json(q, with_items=False)))


@main.route("/quotes", methods=["POST"])
def create_quote():
    quote = documents.create_quote(json_body())
    return jsonify(quote_json(quote)), 201


@main.route("/quotes/<int:quote_id>")
def get_quote(quote_id):
    return jsonify(quote_json(_get_or_404(Quote, quote_id, "Quote")))


@main.route("/quotes/<int:quote_id>", methods=["PUT"])
def update_quote(quote_id):
    quote = documents.update_quote(quote_id, json_body())
    return jsonify(quote_json(quote))


@main.route("/quotes/<int:quote_id>", methods=["DELETE"])
def delete_quote(quote_id):
    documents.delete_quote(quote_id)
    return jsonify({"success": True})


@main.route("/quotes/<int:quote_id>/to-order", methods=["POST"])
@limiter.limit(mutation_limit)
def quote_to_order(quote_id):
    order = conversion.quote_to_order(quote_id)
    return jsonify(order_json(order)), 201


# ======================
# Orders
# ======================
@main.route("/orders")
def list_orders():
    page = listing.list_orders(request.args)
    return jsonify(page_json(page, lambda o: order_json(o, with_items=False)))


@main.route("/orders", methods=["POST"])
def create_order():
    order = documents.create_order(json_body())
    return jsonify(order_json(order)), 201


@main.route("/orders/<int:order_id>")
def get_order(order_id):
    return jsonify(order_json(_get_or_404(Order, order_id, "Order")))


@main.route("/orders/<int:order_id>", methods=["PUT"])
def update_order(order_id):
    order = documents.update_order(order_id, json_body())
    return jsonify(order_json(order))


@main.route("/orders/<int:order_id>", methods=["DELETE"])
def delete_order(order_id):
    documents.delete_order(order_id)
    return jsonify({"success": True})


@main.route("/orders/<int:order_id>/to-invoice", methods=["POST"])
@limiter.limit(mutation_limit)
def order_to_invoice(order_id):
    body = json_body()
    result = conversion.order_to_invoice(
        order_id, body.get("paymentAmount"), payment_method=body.get("paymentMethod")
    )
    return (
        jsonify(
            {
                "invoice": invoice_json(result.invoice),
                "changeDue": result.change_due,
                "delivery": delivery_json(result.delivery) if result.delivery else None,
            }
        ),
        201,
    )


# ======================
# Invoices
# ======================
@main.route("/invoices")
def list_invoices():
    page = listing.list_invoices(request.args)
    return jsonify(page_json(page, lambda i: invoice_json(i, with_items=False)))


@main.route("/invoices/<int:invoice_id>")
def get_invoice(invoice_id):
    return jsonify(invoice_json(_get_or_404(Invoice, invoice_id, "Invoice")))


@main.route("/invoices/<int:invoice_id>/payment", methods=["POST"])
@limiter.limit(mutation_limit)
def pay_invoice(invoice_id):
    body = json_body()
    invoice = payments.pay_invoice(
        invoice_id,
        body.get("amount"),
        update_debt=parse_bool(body.get("updateDebt"), default=True),
        payment_method=body.get("paymentMethod"),
    )
    return jsonify(invoice_json(invoice))


@main.route("/invoices/<int:invoice_id>/payments")
def invoice_payments(invoice_id):
    return jsonify([cash_flow_json(t) for t in payments.invoice_payments(invoice_id)])


@main.route("/invoices/<int:invoice_id>/cancel", methods=["POST"])
@limiter.limit(mutation_limit)
def cancel_invoice(invoice_id):
    body = json_body()
    reason = body.get("reason")
    invoice = conversion.cancel_invoice(invoice_id, reason=str(reason).strip()[:255] if reason else None)
    return jsonify(invoice_json(invoice))


# ======================
# Deliveries
# ======================
@main.route("/deliveries")
def list_deliveries():
    page = listing.list_deliveries(request.args)
    return jsonify(page_json(page, delivery_json))


@main.route("/deliveries/<int:delivery_id>")
def get_delivery(delivery_id):
    return jsonify(delivery_json(_get_or_404(DeliveryNote, delivery_id, "Delivery")))


@main.route("/deliveries/<int:delivery_id>", methods=["PUT"])
def update_delivery(delivery_id):
    note = deliveries.update_delivery(delivery_id, json_body())
    return jsonify(delivery_json(note))
