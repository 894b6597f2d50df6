# receipt.py
"""
Fixed-width settlement receipt for a 58 mm thermal roll (32 columns).

Output depends only on the settlement and header passed in, so the same
input always produces the same text.
"""
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_HALF_UP

PAGE_WIDTH = 32
DATE_WIDTH = 6
AMOUNT_WIDTH = 8
DEFAULT_TITLE = "DAIRY MANAGEMENT SYSTEM"
TEAR_OFF_LINES = 3


@dataclass(frozen=True)
class ReceiptHeader:
    customer_code: str
    customer_name: str
    cycle_start: date
    cycle_end: date
    title: str = DEFAULT_TITLE


def _whole(amount: Decimal) -> str:
    return f"{amount.quantize(Decimal('1'), rounding=ROUND_HALF_UP):,.0f}"


def _rupees(amount: Decimal) -> str:
    return "Rs." + f"{amount.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP):,.2f}"


def _center(text, width):
    if len(text) >= width:
        return text[:width]
    return " " * ((width - len(text)) // 2) + text


def _row(date_text, description, amount_text, width):
    # wide amounts take their room from the description, keeping one space between
    amount_width = max(AMOUNT_WIDTH, len(amount_text) + 1)
    desc_width = width - DATE_WIDTH - amount_width
    return date_text.ljust(DATE_WIDTH) + description[:desc_width].ljust(desc_width) + amount_text.rjust(amount_width)


def _total(label, amount, width):
    amount_text = _rupees(amount)
    return label.ljust(width - len(amount_text)) + amount_text


def format_settlement_receipt(settlement, header: ReceiptHeader, width=PAGE_WIDTH):
    rule = "-" * width
    lines = [
        _center(header.title, width),
        _center("Settlement Receipt", width),
        rule,
        f"Date: {settlement.settlement_date:%d/%m/%Y %H:%M}",
        f"Code: {header.customer_code}",
        f"Name: {header.customer_name}",
        f"Period: {header.cycle_start:%d/%m} - {header.cycle_end:%d/%m}",
        rule,
        _row("Date", "Description", "Amt", width),
        rule,
    ]

    for detail in settlement.credits:
        lines.append(_row(f"{detail.transaction_date:%d/%m}", detail.description,
                          _whole(detail.amount.amount), width))

    debits = settlement.debits
    if debits:
        lines.append("." * width)
        for detail in debits:
            lines.append(_row(f"{detail.transaction_date:%d/%m}", detail.description,
                              "-" + _whole(detail.amount.amount), width))

    lines.append("=" * width)
    deductions = settlement.total_product_sales.amount + settlement.total_advance_paid.amount
    lines.append(_total("Milk Total:", settlement.milk_amount.amount, width))
    lines.append(_total("Deductions:", deductions, width))
    lines.append(rule)
    label = "Amt Owed:" if settlement.customer_owes_money() else "Net Payable:"
    lines.append(_total(label, abs(settlement.final_payable.amount), width))

    lines.append(rule)
    lines.append(_center("Payment: " + settlement.payment_mode.value, width))
    if settlement.is_paid:
        lines.append(_center("PAID", width))
    lines.append("")
    lines.append(_center("Thank You!", width))
    lines.extend([""] * TEAR_OFF_LINES)
    return "\n".join(lines) + "\n"
