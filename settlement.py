# settlement.py
"""
Settlement calculation.

    final payable = milk amount - product sales - advances

``preview_settlement`` and ``build_settlement`` are pure: they read a fully
loaded cycle and touch nothing else. ``SettlementService.create_settlement``
is the only place a settlement is written, and it writes it together with
the cycle's transition to Settled.
"""
import logging
from dataclasses import dataclass
from datetime import date

from cycles import cycle_lock, settlement_lock
from domain import PaymentMode, Settlement, SettlementDetail
from errors import ConsistencyError, InvalidStateError
from money import DateRange, Money
from receipt import DEFAULT_TITLE, ReceiptHeader, format_settlement_receipt
from utils import utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SettlementPreview:
    cycle_id: int
    customer_id: int
    start_date: date
    end_date: date
    milk_amount: Money
    total_product_sales: Money
    total_advances: Money
    final_payable: Money
    can_be_settled: bool

    def customer_owes_money(self):
        return self.final_payable.is_negative


def preview_settlement(cycle):
    """Totals and expected payout for a cycle; creates and saves nothing."""
    sales = cycle.calculate_total_product_sales()
    advances = cycle.calculate_total_advances()
    return SettlementPreview(
        cycle_id=cycle.id,
        customer_id=cycle.customer_id,
        start_date=cycle.start_date,
        end_date=cycle.end_date,
        milk_amount=cycle.total_milk_amount,
        total_product_sales=sales,
        total_advances=advances,
        final_payable=cycle.total_milk_amount - sales - advances,
        can_be_settled=cycle.can_be_settled(),
    )


def _sale_description(sale, product_names):
    name = product_names.get(sale.product_id) or f"Product #{sale.product_id}"
    return f"{name} - {sale.quantity}"


def build_settlement(cycle, payment_mode, username, product_names=None, notes=None, now=None):
    """Build (but do not save) the settlement for ``cycle``.

    Details are ordered: the milk credit first, dated at the cycle's end,
    then each sale by sale date, then each advance by payment date. Ties
    keep the order the items were recorded in.
    """
    if not cycle.can_be_settled():
        raise InvalidStateError("Cycle cannot be settled. Either already settled or milk amount is zero")
    mode = PaymentMode.parse(payment_mode)
    product_names = product_names or {}
    now = now or utc_now()

    totals = preview_settlement(cycle)
    settlement = Settlement.create(
        cycle.customer_id,
        cycle.id,
        totals.milk_amount,
        totals.total_product_sales,
        totals.total_advances,
        mode,
        username,
        notes=notes,
        now=now,
    )

    days = DateRange(cycle.start_date, cycle.end_date).duration_in_days
    settlement.add_detail(SettlementDetail.milk(cycle.total_milk_amount, cycle.end_date, f"Milk ({days} days)"))
    for sale in sorted(cycle.product_sales, key=lambda s: s.sale_date):
        settlement.add_detail(SettlementDetail.product_sale(
            sale.id, _sale_description(sale, product_names), sale.total_amount, sale.sale_date))
    for advance in sorted(cycle.advance_payments, key=lambda a: a.payment_date):
        settlement.add_detail(SettlementDetail.advance(
            advance.id, f"Advance ({advance.payment_mode.value})", advance.amount, advance.payment_date))

    settlement.validate_calculation()
    return settlement


class SettlementService:
    def __init__(self, store, clock=utc_now):
        self.store = store
        self.clock = clock

    def preview_settlement(self, cycle_id):
        return preview_settlement(self.store.get_cycle(cycle_id))

    def create_settlement(self, cycle_id, payment_mode, username, notes=None):
        with cycle_lock(cycle_id):
            cycle = self.store.get_cycle(cycle_id)
            now = self.clock()
            names = self.store.product_names(sale.product_id for sale in cycle.product_sales)
            settlement = build_settlement(cycle, payment_mode, username, names, notes=notes, now=now)
            with self.store.transaction():
                saved = self.store.add_settlement(settlement)
                cycle.mark_as_settled(username, now=now)
                self.store.save_cycle(cycle)
        logger.info(
            f"Settlement {saved.id} created for cycle {cycle_id}: final payable {saved.final_payable} "
            f"({len(saved.details)} lines)"
        )
        return self.store.get_settlement(saved.id)

    def get_settlement(self, settlement_id):
        return self.store.get_settlement(settlement_id)

    def get_settlement_by_cycle(self, cycle_id):
        return self.store.find_settlement_by_cycle(cycle_id)

    def customer_settlements(self, customer_id):
        return self.store.list_settlements(customer_id=customer_id)

    def unpaid_settlements(self):
        return self.store.list_settlements(unpaid_only=True)

    def settlements_between(self, start, end):
        period = DateRange(start, end)
        return self.store.list_settlements(start=period.start, end=period.end)

    def mark_as_paid(self, settlement_id, username, payment_reference=None):
        with settlement_lock(settlement_id):
            settlement = self.store.get_settlement(settlement_id)
            settlement.mark_as_paid(username, payment_reference, now=self.clock())
            with self.store.transaction():
                saved = self.store.save_settlement_payment(settlement)
        logger.info(f"Settlement {settlement_id} marked paid by {saved.updated_by}")
        return saved

    def verify_settlement(self, settlement_id):
        settlement = self.store.get_settlement(settlement_id)
        try:
            settlement.validate_calculation()
        except ConsistencyError as e:
            logger.error(f"Consistency check failed: {e}")
            raise
        return settlement

    def receipt_text(self, settlement_id, title=DEFAULT_TITLE):
        settlement = self.store.get_settlement(settlement_id)
        customer = self.store.get_customer(settlement.customer_id)
        cycle = self.store.get_cycle(settlement.cycle_id, with_details=False)
        header = ReceiptHeader(
            customer_code=customer.code,
            customer_name=customer.name,
            cycle_start=cycle.start_date,
            cycle_end=cycle.end_date,
            title=title,
        )
        return format_settlement_receipt(settlement, header)
