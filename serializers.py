# serializers.py
"""Domain records -> JSON-ready dicts for the HTTP endpoints."""
from flask import request

from money import round_money


def payload():
    # JSON body from API clients, form fields from plain HTML forms
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


def money_json(m):
    return str(round_money(m.amount)) if m is not None else None


def quantity_json(q):
    return {"value": str(q.value), "unit": q.unit}


def iso(value):
    return value.isoformat() if value else None


def audit_json(record):
    return {
        "created_at": iso(record.created_at),
        "created_by": record.created_by,
        "updated_at": iso(record.updated_at),
        "updated_by": record.updated_by,
    }


def customer_json(c):
    return {
        "id": c.id,
        "code": c.code,
        "name": c.name,
        "phone": c.phone,
        "address": c.address,
        "village": c.village,
        "is_active": c.is_active,
        **audit_json(c),
    }


def product_json(p):
    return {
        "id": p.id,
        "code": p.code,
        "name": p.name,
        "description": p.description,
        "unit": p.unit,
        "unit_price": money_json(p.unit_price),
        "current_stock": str(p.current_stock.value),
        "reorder_level": str(p.reorder_level.value),
        "stock_status": p.stock_status().value,
        "is_active": p.is_active,
        **audit_json(p),
    }


def purchase_json(p):
    return {
        "id": p.id,
        "product_id": p.product_id,
        "purchase_date": iso(p.purchase_date),
        "quantity": quantity_json(p.quantity),
        "unit_price": money_json(p.unit_price),
        "total_amount": money_json(p.total_amount),
        "supplier_name": p.supplier_name,
        "invoice_number": p.invoice_number,
        "notes": p.notes,
        "created_by": p.created_by,
    }


def sale_json(s):
    return {
        "id": s.id,
        "customer_id": s.customer_id,
        "product_id": s.product_id,
        "cycle_id": s.cycle_id,
        "sale_date": iso(s.sale_date),
        "quantity": quantity_json(s.quantity),
        "unit_price": money_json(s.unit_price),
        "total_amount": money_json(s.total_amount),
        "notes": s.notes,
        "created_by": s.created_by,
    }


def advance_json(a):
    return {
        "id": a.id,
        "customer_id": a.customer_id,
        "cycle_id": a.cycle_id,
        "payment_date": iso(a.payment_date),
        "amount": money_json(a.amount),
        "payment_mode": a.payment_mode.value,
        "reference_number": a.reference_number,
        "notes": a.notes,
        "created_by": a.created_by,
    }


def cycle_json(c, with_lines=False):
    data = {
        "id": c.id,
        "customer_id": c.customer_id,
        "start_date": iso(c.start_date),
        "end_date": iso(c.end_date),
        "duration_days": c.date_range.duration_in_days,
        "total_milk_amount": money_json(c.total_milk_amount),
        "is_settled": c.is_settled,
        "settlement_date": iso(c.settlement_date),
        "can_be_settled": c.can_be_settled(),
        "notes": c.notes,
        **audit_json(c),
    }
    if with_lines:
        data["product_sales"] = [sale_json(s) for s in c.product_sales]
        data["advance_payments"] = [advance_json(a) for a in c.advance_payments]
        data["total_product_sales"] = money_json(c.calculate_total_product_sales())
        data["total_advances"] = money_json(c.calculate_total_advances())
        data["estimated_payable"] = money_json(c.calculate_estimated_payable())
    return data


def preview_json(p):
    return {
        "cycle_id": p.cycle_id,
        "customer_id": p.customer_id,
        "start_date": iso(p.start_date),
        "end_date": iso(p.end_date),
        "milk_amount": money_json(p.milk_amount),
        "total_product_sales": money_json(p.total_product_sales),
        "total_advances": money_json(p.total_advances),
        "final_payable": money_json(p.final_payable),
        "customer_owes_money": p.customer_owes_money(),
        "can_be_settled": p.can_be_settled,
    }


def detail_json(d):
    return {
        "id": d.id,
        "detail_type": d.detail_type.value,
        "reference_id": d.reference_id,
        "description": d.description,
        "amount": money_json(d.amount),
        "signed_amount": money_json(d.signed_amount()),
        "transaction_date": iso(d.transaction_date),
        "is_credit": d.is_credit(),
    }


def settlement_json(s):
    return {
        "id": s.id,
        "customer_id": s.customer_id,
        "cycle_id": s.cycle_id,
        "settlement_date": iso(s.settlement_date),
        "milk_amount": money_json(s.milk_amount),
        "total_product_sales": money_json(s.total_product_sales),
        "total_advance_paid": money_json(s.total_advance_paid),
        "final_payable": money_json(s.final_payable),
        "customer_owes_money": s.customer_owes_money(),
        "amount_owed": money_json(s.get_amount_owed()),
        "requires_payment_to_customer": s.requires_payment_to_customer(),
        "payment_mode": s.payment_mode.value,
        "is_paid": s.is_paid,
        "payment_date": iso(s.payment_date),
        "payment_reference": s.payment_reference,
        "notes": s.notes,
        "details": [detail_json(d) for d in s.details],
        **audit_json(s),
    }
