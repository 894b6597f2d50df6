# cycles.py
"""
Milk cycle workflows.

Writers that touch one cycle (milk amount, advances, sales, settling) run
under ``cycle_lock(cycle_id)`` so two requests in the same process cannot
interleave on the same aggregate. Stock movements take ``product_lock``
and paying a settlement takes ``settlement_lock`` in the same way. Across
processes the row re-read inside each transaction and the database
constraints are the backstop.
"""
import logging
import threading
from collections import defaultdict
from contextlib import contextmanager

from domain import AdvancePayment, MilkCycle
from errors import InvalidStateError
from money import DateRange
from utils import utc_now

logger = logging.getLogger(__name__)

_locks_guard = threading.Lock()
_locks = defaultdict(threading.RLock)


@contextmanager
def _keyed_lock(kind, key):
    with _locks_guard:
        lock = _locks[(kind, key)]
    with lock:
        yield


def cycle_lock(cycle_id):
    return _keyed_lock("cycle", cycle_id)


def product_lock(product_id):
    # taken after cycle_lock when both are held
    return _keyed_lock("product", product_id)


def settlement_lock(settlement_id):
    return _keyed_lock("settlement", settlement_id)


class MilkCycleService:
    def __init__(self, store, clock=utc_now):
        self.store = store
        self.clock = clock

    def create_cycle(self, customer_id, start_date, end_date, username, notes=None, milk_amount=None):
        customer = self.store.get_customer(customer_id)
        if not customer.can_create_new_cycle():
            raise InvalidStateError(f"Customer {customer.code} is inactive")
        now = self.clock()
        cycle = MilkCycle.create(customer.id, start_date, end_date, username, notes=notes, now=now)
        if milk_amount not in (None, ""):
            cycle.set_milk_amount(milk_amount, username, now=now)
        with self.store.transaction():
            cycle = self.store.save_cycle(cycle)
        logger.info(f"Cycle {cycle.id} ({cycle.date_range}) opened for customer {customer.code}")
        return cycle

    def create_ten_day_cycle(self, customer_id, start_date, username, notes=None):
        period = DateRange.ten_day_cycle(start_date)
        return self.create_cycle(customer_id, period.start, period.end, username, notes=notes)

    def set_milk_amount(self, cycle_id, amount, username):
        with cycle_lock(cycle_id):
            cycle = self.store.get_cycle(cycle_id, with_details=False)
            cycle.set_milk_amount(amount, username, now=self.clock())
            with self.store.transaction():
                return self.store.save_cycle(cycle)

    def update_notes(self, cycle_id, notes, username):
        with cycle_lock(cycle_id):
            cycle = self.store.get_cycle(cycle_id, with_details=False)
            cycle.update_notes(notes, username, now=self.clock())
            with self.store.transaction():
                return self.store.save_cycle(cycle)

    def record_advance_payment(self, cycle_id, customer_id, amount, payment_mode, username,
                               reference_number=None, notes=None, payment_date=None):
        with cycle_lock(cycle_id):
            cycle = self.store.get_cycle(cycle_id, with_details=False)
            advance = AdvancePayment.create(customer_id, cycle.id, amount, payment_mode, username,
                                            reference_number=reference_number, notes=notes,
                                            payment_date=payment_date, now=self.clock())
            cycle.record_advance_payment(advance)
            with self.store.transaction():
                advance = self.store.add_advance(advance)
        logger.info(f"Advance {advance.id} of {advance.amount} recorded on cycle {cycle_id}")
        return advance

    def get_cycle(self, cycle_id):
        return self.store.get_cycle(cycle_id)

    def list_cycles(self, customer_id=None, unsettled_only=False):
        return self.store.list_cycles(customer_id=customer_id, unsettled_only=unsettled_only)

    def cycles_between(self, start, end):
        period = DateRange(start, end)
        return self.store.list_cycles(start=period.start, end=period.end)
