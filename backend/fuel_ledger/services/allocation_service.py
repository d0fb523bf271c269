"""
Receivable Allocation
Distributes an amount across open receivables, oldest trip first.
"""
from sqlalchemy import func
from sqlalchemy.orm import Session
from typing import Any, List, Sequence, Tuple
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
import logging

from fuel_ledger.models import Trip, TripDepo, TripStatus
from fuel_ledger.services.ledger_service import ZERO, money

logger = logging.getLogger(__name__)


@dataclass
class Receivable:
    """
    An amount owed against one trip.

    `source` is the row to update afterwards: a TripDepo (payable/paid) or,
    for client receivables, the Trip itself (total_amount/amount_collected).
    """
    source: Any
    trip_id: int
    start_date: date
    payable: Decimal
    paid: Decimal

    @property
    def remaining(self) -> Decimal:
        return max(money(self.payable) - money(self.paid), ZERO)

    @property
    def order_key(self) -> Tuple:
        return (self.start_date or date.min, self.trip_id, getattr(self.source, "id", 0))


@dataclass
class Allocation:
    receivable: Receivable
    applied: Decimal

    @property
    def new_paid(self) -> Decimal:
        return money(self.receivable.paid) + self.applied


def allocate(amount, candidates: Sequence[Receivable]) -> Tuple[List[Allocation], Decimal]:
    """
    Apply `amount` to `candidates` oldest first.

    Returns the allocations made and the remainder nothing could absorb.
    Receivables with nothing remaining are skipped.
    """
    amount = money(amount)
    if amount < 0:
        raise ValueError("Cannot allocate a negative amount")

    results = []
    for candidate in sorted(candidates, key=lambda r: r.order_key):
        if amount <= 0:
            break
        remaining = candidate.remaining
        if remaining <= 0:
            continue
        applied = min(amount, remaining)
        results.append(Allocation(candidate, applied))
        amount -= applied

    return results, amount


class AllocationService:
    """Loads open receivables and writes allocation results back"""

    def __init__(self, db: Session):
        self.db = db

    def open_trip_depos(self, depo_id: int) -> List[Receivable]:
        """What trips still owe a depot, skipping cancelled trips and inactive rows"""
        rows = self.db.query(TripDepo).join(Trip, Trip.id == TripDepo.trip_id).filter(
            TripDepo.depo_id == depo_id,
            TripDepo.active == True,
            Trip.active == True,
            Trip.status != TripStatus.CANCELLED.value,
            TripDepo.paid_amount < TripDepo.payable_amount
        ).order_by(Trip.start_date.asc(), Trip.id.asc(), TripDepo.id.asc()).with_for_update().all()

        return [
            Receivable(row, row.trip_id, row.trip.start_date, row.payable_amount, row.paid_amount)
            for row in rows
        ]

    def open_client_trips(self, customer_id: int) -> List[Receivable]:
        """Trips a customer has not fully paid for"""
        trips = self.db.query(Trip).filter(
            Trip.customer_id == customer_id,
            Trip.active == True,
            Trip.status != TripStatus.CANCELLED.value,
            Trip.amount_collected < Trip.total_amount
        ).order_by(Trip.start_date.asc(), Trip.id.asc()).with_for_update().all()

        return [
            Receivable(trip, trip.id, trip.start_date, trip.total_amount, trip.amount_collected)
            for trip in trips
        ]

    def apply_to_trip_depos(self, allocations: Sequence[Allocation]) -> List[int]:
        """Persist paid amounts and refresh trip totals. Returns touched trip ids."""
        trip_ids = []
        for allocation in allocations:
            allocation.receivable.source.paid_amount = allocation.new_paid
            if allocation.receivable.trip_id not in trip_ids:
                trip_ids.append(allocation.receivable.trip_id)
        self.db.flush()

        for trip_id in trip_ids:
            self.refresh_trip_paid(trip_id)
        return trip_ids

    def apply_to_client_trips(self, allocations: Sequence[Allocation]) -> List[int]:
        trip_ids = []
        for allocation in allocations:
            allocation.receivable.source.amount_collected = allocation.new_paid
            trip_ids.append(allocation.receivable.trip_id)
        self.db.flush()
        return trip_ids

    def refresh_trip_paid(self, trip_id: int) -> Decimal:
        """trips.paid is the sum of its active trip-depo paid amounts"""
        total = self.db.query(func.coalesce(func.sum(TripDepo.paid_amount), 0)).filter(
            TripDepo.trip_id == trip_id,
            TripDepo.active == True
        ).scalar()
        trip = self.db.query(Trip).filter(Trip.id == trip_id).first()
        if trip is not None:
            trip.paid = money(total)
            self.db.flush()
        return money(total)

    def oldest_open_trip(self, customer_id: int):
        return self.db.query(Trip).filter(
            Trip.customer_id == customer_id,
            Trip.active == True,
            Trip.status == TripStatus.OPEN.value
        ).order_by(Trip.start_date.asc(), Trip.id.asc()).first()
