# billing.py
from flask import Blueprint, current_app, jsonify, request, send_file, make_response
from flask_login import login_required
from io import BytesIO
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas

from auth import acting_username
from cycles import MilkCycleService
from serializers import (payload, advance_json, cycle_json, preview_json, sale_json,
                         settlement_json)
from settlement import SettlementService
from stock import StockService
from store import current_clock, current_store
from utils import parse_date, to_bool, to_int

billing = Blueprint("billing", __name__, url_prefix="")

ROLL_WIDTH = 58 * mm
ROLL_MARGIN = 3 * mm
RECEIPT_FONT = "Courier"
RECEIPT_FONT_SIZE = 7.5
RECEIPT_LINE_HEIGHT = 9


def _cycles():
    return MilkCycleService(current_store(), current_clock())


def _settlements():
    return SettlementService(current_store(), current_clock())


def _stock():
    return StockService(current_store(), current_clock())


# ----------------------------------------------------------------------
# Milk cycles
# ----------------------------------------------------------------------

@billing.route("/cycles")
@login_required
def cycles_list():
    service = _cycles()
    start = request.args.get("start")
    end = request.args.get("end")
    if start or end:
        cycles = service.cycles_between(parse_date(start, "start"), parse_date(end, "end"))
    else:
        customer_id = request.args.get("customer_id")
        cycles = service.list_cycles(
            customer_id=to_int(customer_id, "customer_id") if customer_id else None,
            unsettled_only=to_bool(request.args.get("unsettled")),
        )
    return jsonify({"cycles": [cycle_json(c) for c in cycles]})


@billing.route("/cycles", methods=["POST"])
@login_required
def create_cycle():
    data = payload()
    service = _cycles()
    customer_id = to_int(data.get("customer_id"), "customer_id")
    start = parse_date(data.get("start_date"), "start_date")
    if data.get("end_date"):
        cycle = service.create_cycle(customer_id, start, parse_date(data.get("end_date"), "end_date"),
                                     acting_username(), notes=data.get("notes"),
                                     milk_amount=data.get("milk_amount"))
    else:
        # no end date: the standard ten-day cycle
        cycle = service.create_ten_day_cycle(customer_id, start, acting_username(), notes=data.get("notes"))
    return jsonify(cycle_json(cycle)), 201


@billing.route("/cycles/<int:cycle_id>")
@login_required
def cycle_detail(cycle_id):
    cycle = _cycles().get_cycle(cycle_id)
    data = cycle_json(cycle, with_lines=True)
    settlement = _settlements().get_settlement_by_cycle(cycle_id)
    data["settlement_id"] = settlement.id if settlement else None
    return jsonify(data)


@billing.route("/cycles/<int:cycle_id>/milk-amount", methods=["PUT"])
@login_required
def set_milk_amount(cycle_id):
    data = payload()
    cycle = _cycles().set_milk_amount(cycle_id, data.get("amount"), acting_username())
    return jsonify(cycle_json(cycle))


@billing.route("/cycles/<int:cycle_id>/notes", methods=["PUT"])
@login_required
def update_cycle_notes(cycle_id):
    data = payload()
    cycle = _cycles().update_notes(cycle_id, data.get("notes"), acting_username())
    return jsonify(cycle_json(cycle))


@billing.route("/cycles/<int:cycle_id>/sales", methods=["POST"])
@login_required
def record_sale(cycle_id):
    data = payload()
    sale_date = data.get("sale_date")
    sale = _stock().record_sale(
        cycle_id,
        to_int(data.get("customer_id"), "customer_id"),
        to_int(data.get("product_id"), "product_id"),
        data.get("quantity"),
        acting_username(),
        unit_price=data.get("unit_price"),
        notes=data.get("notes"),
        sale_date=parse_date(sale_date, "sale_date") if sale_date else None,
    )
    return jsonify(sale_json(sale)), 201


@billing.route("/cycles/<int:cycle_id>/advances", methods=["POST"])
@login_required
def record_advance(cycle_id):
    data = payload()
    payment_date = data.get("payment_date")
    advance = _cycles().record_advance_payment(
        cycle_id,
        to_int(data.get("customer_id"), "customer_id"),
        data.get("amount"),
        data.get("payment_mode") or "Cash",
        acting_username(),
        reference_number=data.get("reference_number"),
        notes=data.get("notes"),
        payment_date=parse_date(payment_date, "payment_date") if payment_date else None,
    )
    return jsonify(advance_json(advance)), 201


@billing.route("/cycles/<int:cycle_id>/preview")
@login_required
def preview_settlement(cycle_id):
    return jsonify(preview_json(_settlements().preview_settlement(cycle_id)))


@billing.route("/cycles/<int:cycle_id>/settle", methods=["POST"])
@login_required
def settle_cycle(cycle_id):
    data = payload()
    settlement = _settlements().create_settlement(
        cycle_id, data.get("payment_mode") or "Cash", acting_username(), notes=data.get("notes"))
    return jsonify(settlement_json(settlement)), 201


# ----------------------------------------------------------------------
# Settlements
# ----------------------------------------------------------------------

@billing.route("/settlements")
@login_required
def settlements_list():
    service = _settlements()
    start = request.args.get("start")
    end = request.args.get("end")
    customer_id = request.args.get("customer_id")
    if to_bool(request.args.get("unpaid")):
        settlements = service.unpaid_settlements()
    elif customer_id:
        settlements = service.customer_settlements(to_int(customer_id, "customer_id"))
    elif start or end:
        settlements = service.settlements_between(parse_date(start, "start"), parse_date(end, "end"))
    else:
        settlements = service.store.list_settlements()
    return jsonify({"settlements": [settlement_json(s) for s in settlements]})


@billing.route("/settlements/<int:settlement_id>")
@login_required
def settlement_detail(settlement_id):
    return jsonify(settlement_json(_settlements().get_settlement(settlement_id)))


@billing.route("/settlements/<int:settlement_id>/verify")
@login_required
def verify_settlement(settlement_id):
    settlement = _settlements().verify_settlement(settlement_id)
    return jsonify({"id": settlement.id, "consistent": True})


@billing.route("/settlements/<int:settlement_id>/pay", methods=["POST"])
@login_required
def mark_settlement_paid(settlement_id):
    data = payload()
    settlement = _settlements().mark_as_paid(settlement_id, acting_username(),
                                             payment_reference=data.get("payment_reference"))
    return jsonify(settlement_json(settlement))


@billing.route("/settlements/<int:settlement_id>/receipt")
@login_required
def settlement_receipt(settlement_id):
    text = _settlements().receipt_text(settlement_id, title=current_app.config["RECEIPT_TITLE"])
    response = make_response(text)
    response.mimetype = "text/plain"
    return response


@billing.route("/settlements/<int:settlement_id>/receipt.pdf")
@login_required
def settlement_receipt_pdf(settlement_id):
    text = _settlements().receipt_text(settlement_id, title=current_app.config["RECEIPT_TITLE"])
    buffer = render_receipt_pdf(text)
    filename = f"settlement_{settlement_id}.pdf"
    return send_file(buffer, as_attachment=True, download_name=filename, mimetype="application/pdf")


def render_receipt_pdf(text):
    """Draw the fixed-width receipt on a single 58 mm roll page sized to fit."""
    lines = text.rstrip("\n").split("\n")
    height = 2 * ROLL_MARGIN + RECEIPT_LINE_HEIGHT * len(lines)

    buffer = BytesIO()
    c = canvas.Canvas(buffer, pagesize=(ROLL_WIDTH, height))
    c.setFont(RECEIPT_FONT, RECEIPT_FONT_SIZE)
    y = height - ROLL_MARGIN - RECEIPT_FONT_SIZE
    for line in lines:
        c.drawString(ROLL_MARGIN, y, line)
        y -= RECEIPT_LINE_HEIGHT
    c.showPage()
    c.save()
    buffer.seek(0)
    return buffer
