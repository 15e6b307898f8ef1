# backoffice/serializers.py
"""JSON shapes (camelCase) for the API. Plain functions, one per model."""
from __future__ import annotations


def _iso(value):
    return value.isoformat() if value is not None else None


def _enum(value):
    return getattr(value, "value", value)


def line_item_json(item) -> dict:
    return {
        "id": item.id,
        "productId": item.product_id,
        "sku": item.sku,
        "name": item.name,
        "unit": item.unit,
        "quantity": item.quantity,
        "price": item.price,
        "lineTotal": item.line_total,
    }


def delivery_info_json(doc) -> dict:
    info = doc.delivery
    if not info.is_delivery:
        return {"isDelivery": False}
    return {
        "isDelivery": True,
        "address": info.address,
        "phone": info.phone,
        "shipFee": info.ship_fee,
    }


def product_json(p) -> dict:
    return {
        "id": p.id,
        "sku": p.sku,
        "name": p.name,
        "unit": p.unit,
        "price": p.price,
        "costPrice": p.cost_price,
        "stock": p.stock,
        "createdAt": _iso(p.created_at),
        "updatedAt": _iso(p.updated_at),
    }


def stock_history_json(h) -> dict:
    return {
        "id": h.id,
        "productId": h.product_id,
        "productName": h.product_name,
        "sku": h.sku,
        "changeAmount": h.change_amount,
        "balanceAfter": h.balance_after,
        "type": h.kind,
        "referenceNumber": h.reference_number,
        "note": h.note,
        "createdAt": _iso(h.created_at),
    }


def customer_json(c) -> dict:
    return {
        "id": c.id,
        "name": c.name,
        "phone": c.phone,
        "email": c.email,
        "address": c.address,
        "taxCode": c.tax_code,
        "group": c.group,
        "notes": c.notes,
        "debt": c.debt,
        "createdAt": _iso(c.created_at),
    }


def supplier_json(s) -> dict:
    return {
        "id": s.id,
        "name": s.name,
        "phone": s.phone,
        "email": s.email,
        "address": s.address,
        "taxCode": s.tax_code,
        "website": s.website,
        "group": s.group,
        "notes": s.notes,
        "debt": s.debt,
        "createdAt": _iso(s.created_at),
    }


def debt_adjustment_json(a) -> dict:
    return {
        "id": a.id,
        "partnerType": a.partner_type,
        "partnerId": a.partner_id,
        "previousDebt": a.previous_debt,
        "newDebt": a.new_debt,
        "delta": a.delta,
        "reason": a.reason,
        "createdAt": _iso(a.created_at),
    }


def ledger_json(report: dict) -> dict:
    return {
        "partnerId": report["partner"].id,
        "name": report["partner"].name,
        "storedDebt": report["stored_debt"],
        "outstanding": report["outstanding"],
        "openDocuments": report["open_documents"],
        "adjustmentTotal": report["adjustment_total"],
        "expectedDebt": report["expected_debt"],
        "drift": report["drift"],
        "consistent": report["consistent"],
        "adjustments": [debt_adjustment_json(a) for a in report["adjustments"]],
    }


def quote_json(q, with_items: bool = True) -> dict:
    data = {
        "id": q.id,
        "quoteNumber": q.quote_number,
        "customerId": q.customer_id,
        "customerName": q.customer_name,
        "customerPhone": q.customer_phone,
        "customerAddress": q.customer_address,
        "totalAmount": q.total_amount,
        "discountAmount": q.discount_amount,
        "finalAmount": q.final_amount,
        "status": _enum(q.status),
        "issueDate": _iso(q.issue_date),
        "expiryDate": _iso(q.expiry_date),
        "note": q.note,
        "createdAt": _iso(q.created_at),
        "updatedAt": _iso(q.updated_at),
    }
    if with_items:
        data["items"] = [line_item_json(i) for i in q.items]
    return data


def order_json(o, with_items: bool = True) -> dict:
    data = {
        "id": o.id,
        "orderNumber": o.order_number,
        "customerId": o.customer_id,
        "customerName": o.customer_name,
        "customerPhone": o.customer_phone,
        "customerAddress": o.customer_address,
        "sourceQuoteId": o.source_quote_id,
        "totalAmount": o.total_amount,
        "discountAmount": o.discount_amount,
        "paymentAmount": o.deposit_amount,
        "deliveryInfo": delivery_info_json(o),
        "status": _enum(o.status),
        "note": o.note,
        "completedAt": _iso(o.completed_at),
        "cancelledAt": _iso(o.cancelled_at),
        "createdAt": _iso(o.created_at),
        "updatedAt": _iso(o.updated_at),
    }
    if with_items:
        data["items"] = [line_item_json(i) for i in o.items]
    return data


def invoice_json(inv, with_items: bool = True) -> dict:
    data = {
        "id": inv.id,
        "invoiceNumber": inv.invoice_number,
        "orderId": inv.order_id,
        "customerId": inv.customer_id,
        "customerName": inv.customer_name,
        "issueDate": _iso(inv.issue_date),
        "subtotal": inv.subtotal,
        "discountAmount": inv.discount_amount,
        "shipFee": inv.ship_fee,
        "totalAmount": inv.total_amount,
        "paidAmount": inv.paid_amount,
        "debt": round(inv.debt, 2),
        "paymentStatus": inv.payment_status,
        "deliveryInfo": delivery_info_json(inv),
        "note": inv.note,
        "cancelledAt": _iso(inv.cancelled_at),
        "createdAt": _iso(inv.created_at),
    }
    if with_items:
        data["items"] = [line_item_json(i) for i in inv.items]
    return data


def delivery_json(d) -> dict:
    return {
        "id": d.id,
        "deliveryNumber": d.delivery_number,
        "invoiceId": d.invoice_id,
        "invoiceNumber": d.invoice.invoice_number if d.invoice else None,
        "customerName": d.customer_name,
        "phone": d.phone,
        "address": d.address,
        "shipFee": d.ship_fee,
        "codAmount": d.cod_amount,
        "status": _enum(d.status),
        "shipperName": d.shipper_name,
        "note": d.note,
        "createdAt": _iso(d.created_at),
        "updatedAt": _iso(d.updated_at),
    }


def purchase_json(p, with_items: bool = True) -> dict:
    data = {
        "id": p.id,
        "purchaseNumber": p.purchase_number,
        "supplierId": p.supplier_id,
        "supplierName": p.supplier_name,
        "issueDate": _iso(p.issue_date),
        "totalAmount": p.total_amount,
        "paidAmount": p.paid_amount,
        "debt": round(p.debt, 2),
        "paymentStatus": p.payment_status,
        "returnedAt": _iso(p.returned_at),
        "note": p.note,
        "createdAt": _iso(p.created_at),
    }
    if with_items:
        data["items"] = [
            {
                "id": i.id,
                "productId": i.product_id,
                "name": i.name,
                "quantity": i.quantity,
                "costPrice": i.cost_price,
                "lineTotal": i.line_total,
            }
            for i in p.items
        ]
    return data


def cash_flow_json(t) -> dict:
    return {
        "id": t.id,
        "transactionNumber": t.transaction_number,
        "type": t.kind,
        "amount": t.amount,
        "category": t.category,
        "description": t.description,
        "payerReceiverName": t.payer_receiver_name,
        "paymentMethod": t.payment_method,
        "referenceType": t.reference_type,
        "referenceId": t.reference_id,
        "transactionDate": _iso(t.transaction_date),
        "createdAt": _iso(t.created_at),
    }


def page_json(page, serialize) -> dict:
    return {
        "data": [serialize(obj) for obj in page.items],
        "pagination": {
            "page": page.page,
            "limit": page.limit,
            "total": page.total,
            "totalPages": page.total_pages,
        },
        "stats": page.stats,
    }
