"""
Oldest-first allocation of payments and collections.
"""
import pytest
from datetime import date
from decimal import Decimal
from types import SimpleNamespace

from fuel_ledger.models import Trip, TripDepo
from fuel_ledger.services.allocation_service import AllocationService, Receivable, allocate
from fuel_ledger.services.trip_service import TripService


def receivable(trip_id, payable, paid="0", start=date(2024, 1, 1), source_id=None):
    return Receivable(
        SimpleNamespace(id=source_id or trip_id), trip_id, start, Decimal(payable), Decimal(paid)
    )


def test_allocates_oldest_first():
    candidates = [receivable(1, "50"), receivable(2, "30"), receivable(3, "20")]
    results, remainder = allocate(Decimal("60"), candidates)

    assert [(r.receivable.trip_id, r.applied) for r in results] == [(1, Decimal("50.00")), (2, Decimal("10.00"))]
    assert remainder == Decimal("0.00")


def test_allocation_conserves_the_amount():
    candidates = [receivable(1, "120.40", "20.40"), receivable(2, "75.35"), receivable(3, "10")]
    for amount in ("0.01", "99.99", "100.00", "185.35", "500"):
        results, remainder = allocate(amount, candidates)
        assert sum(r.applied for r in results) + remainder == Decimal(amount)
        for r in results:
            assert r.new_paid <= r.receivable.payable


def test_remainder_when_everything_is_paid():
    results, remainder = allocate("500", [receivable(1, "300"), receivable(2, "100")])
    assert [r.applied for r in results] == [Decimal("300.00"), Decimal("100.00")]
    assert remainder == Decimal("100.00")


def test_settled_receivables_are_skipped():
    results, _ = allocate("40", [receivable(1, "50", "50"), receivable(2, "30", "10")])
    assert len(results) == 1
    assert results[0].receivable.trip_id == 2
    assert results[0].new_paid == Decimal("30.00")


def test_orders_by_start_date_then_trip_id():
    later = receivable(1, "10", start=date(2024, 2, 1))
    same_day_high = receivable(5, "10", start=date(2024, 1, 1))
    same_day_low = receivable(3, "10", start=date(2024, 1, 1))

    results, _ = allocate("25", [later, same_day_high, same_day_low])
    assert [r.receivable.trip_id for r in results] == [3, 5, 1]
    assert results[-1].applied == Decimal("5.00")


def test_zero_amount_allocates_nothing():
    assert allocate("0", [receivable(1, "10")]) == ([], Decimal("0.00"))


def test_negative_amount_is_rejected():
    with pytest.raises(ValueError):
        allocate("-1", [receivable(1, "10")])


def test_open_trip_depos_skip_cancelled_inactive_and_paid(db_session, factory):
    depo = factory.depo()
    keep = factory.trip("T-1", depos=[(depo.id, 100)])
    cancelled = factory.trip("T-2", depos=[(depo.id, 100)])
    paid = factory.trip("T-3", depos=[(depo.id, 100)])
    inactive = factory.trip("T-4", depos=[(depo.id, 100)])

    TripService(db_session).cancel(cancelled.id)
    db_session.query(TripDepo).filter(TripDepo.trip_id == paid.id).update({"paid_amount": Decimal("100")})
    db_session.query(TripDepo).filter(TripDepo.trip_id == inactive.id).update({"active": False})
    db_session.commit()

    open_rows = AllocationService(db_session).open_trip_depos(depo.id)
    assert [r.trip_id for r in open_rows] == [keep.id]


def test_apply_to_trip_depos_refreshes_trip_paid(db_session, factory):
    first = factory.depo("North Depo")
    second = factory.depo("South Depo")
    trip = factory.trip("T-1", depos=[(first.id, 100), (second.id, 80)])
    service = AllocationService(db_session)

    results, _ = allocate("100", service.open_trip_depos(first.id))
    assert service.apply_to_trip_depos(results) == [trip.id]
    results, _ = allocate("30", service.open_trip_depos(second.id))
    service.apply_to_trip_depos(results)
    db_session.commit()

    assert db_session.get(Trip, trip.id).paid == Decimal("130.00")


def test_open_client_trips_and_oldest_open_trip(db_session, factory):
    customer = factory.customer()
    newer = factory.trip("T-2", start_date=date(2024, 3, 1), customer_id=customer.id, total_amount="100")
    older = factory.trip("T-1", start_date=date(2024, 2, 1), customer_id=customer.id, total_amount="200")
    factory.trip("T-3", start_date=date(2024, 1, 1), customer_id=customer.id, total_amount="0")
    service = AllocationService(db_session)

    assert [r.trip_id for r in service.open_client_trips(customer.id)] == [older.id, newer.id]

    results, remainder = allocate("250", service.open_client_trips(customer.id))
    service.apply_to_client_trips(results)
    db_session.commit()

    assert remainder == Decimal("0.00")
    assert db_session.get(Trip, older.id).amount_collected == Decimal("200.00")
    assert db_session.get(Trip, newer.id).amount_collected == Decimal("50.00")
    assert service.oldest_open_trip(customer.id).trip_no == "T-3"
