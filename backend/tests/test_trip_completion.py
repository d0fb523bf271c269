"""
Trip completion monitor.
"""
import pytest
from datetime import date
from decimal import Decimal

from fuel_ledger.core.exceptions import ConflictError
from fuel_ledger.models import AuditLog, Depo, LedgerKind, Pool, Trip, TripDepo, TripStatus
from fuel_ledger.schemas import DepoPaymentCreate, PolSaleCreate
from fuel_ledger.services.ledger_service import LedgerService
from fuel_ledger.services.transaction_service import TransactionRecorder
from fuel_ledger.services.trip_service import TripCompletionMonitor, TripService


def pay_all(db, trip_id):
    for row in db.query(TripDepo).filter(TripDepo.trip_id == trip_id).all():
        row.paid_amount = row.payable_amount
    db.flush()


def test_completes_when_paid_and_fuel_sold(db_session, factory):
    depo = factory.depo()
    trip = factory.trip("T-1", depos=[(depo.id, 300)], fuel=1000)
    service = TripService(db_session)

    pay_all(db_session, trip.id)
    assert service.monitor.maybe_complete(trip.id) is False  # fuel still unsold

    service.add_sale(trip.id, PolSaleCreate(fuel=Decimal("600")))
    assert db_session.get(Trip, trip.id).status == TripStatus.OPEN.value

    service.add_sale(trip.id, PolSaleCreate(fuel=Decimal("400")))
    db_session.commit()

    completed = db_session.get(Trip, trip.id)
    assert completed.status == TripStatus.COMPLETED.value
    assert completed.completed_at is not None


def test_trip_without_fuel_completes_once_paid(db_session, factory):
    depo = factory.depo()
    trip = factory.trip("T-1", depos=[(depo.id, 300)])
    monitor = TripCompletionMonitor(db_session)

    assert monitor.is_fuel_settled(trip.id) is True
    assert monitor.maybe_complete(trip.id) is False

    pay_all(db_session, trip.id)
    assert monitor.maybe_complete(trip.id) is True


def test_completion_is_idempotent(db_session, factory):
    depo = factory.depo()
    trip = factory.trip("T-1", depos=[(depo.id, 100)])
    monitor = TripCompletionMonitor(db_session)
    pay_all(db_session, trip.id)

    assert monitor.maybe_complete(trip.id) is True
    completed_at = db_session.get(Trip, trip.id).completed_at

    assert monitor.maybe_complete(trip.id) is False
    again = db_session.get(Trip, trip.id)
    assert again.status == TripStatus.COMPLETED.value
    assert again.completed_at == completed_at


def test_trip_without_depos_never_completes(db_session, factory):
    trip = factory.trip("T-1")
    monitor = TripCompletionMonitor(db_session)

    assert monitor.is_fully_paid(trip.id) is False
    assert monitor.maybe_complete(trip.id) is False


def test_cancelled_trip_is_left_alone(db_session, factory):
    depo = factory.depo()
    trip = factory.trip("T-1", depos=[(depo.id, 100)])
    TripService(db_session).cancel(trip.id)
    pay_all(db_session, trip.id)

    assert TripCompletionMonitor(db_session).maybe_complete(trip.id) is False
    assert db_session.get(Trip, trip.id).status == TripStatus.CANCELLED.value


def test_monitor_failure_does_not_break_the_caller(db_session, factory, monkeypatch, caplog):
    depo = factory.depo()
    trip = factory.trip("T-1", depos=[(depo.id, 100)])
    monitor = TripCompletionMonitor(db_session)

    def explode(self, trip_id):
        raise RuntimeError("count failed")

    monkeypatch.setattr(TripCompletionMonitor, "is_fully_paid", explode)
    pay_all(db_session, trip.id)

    assert monitor.maybe_complete(trip.id) is False
    assert "Trip completion check failed" in caplog.text

    db_session.commit()
    assert db_session.get(Trip, trip.id).status == TripStatus.OPEN.value
    assert db_session.query(TripDepo).filter(TripDepo.trip_id == trip.id).one().paid_amount == Decimal("100.00")


def test_reopen_when_no_longer_paid(db_session, factory):
    depo = factory.depo()
    trip = factory.trip("T-1", depos=[(depo.id, 100)])
    monitor = TripCompletionMonitor(db_session)
    pay_all(db_session, trip.id)
    monitor.maybe_complete(trip.id)

    assert monitor.reopen_if_unsettled(trip.id) is False

    db_session.query(TripDepo).filter(TripDepo.trip_id == trip.id).update({"paid_amount": Decimal("40")})
    assert monitor.reopen_if_unsettled(trip.id) is True

    reopened = db_session.get(Trip, trip.id)
    assert reopened.status == TripStatus.OPEN.value
    assert reopened.completed_at is None


def test_trip_creation_charges_the_pool(db_session, factory):
    depo = factory.depo(balance="1000")
    trip = factory.trip("T-9", depos=[(depo.id, 250)], charge_pool=True)

    charge = db_session.query(Pool).filter(Pool.trip_id == trip.id).one()
    assert charge.credit == Decimal("250.00")
    assert charge.depo_limit == Decimal("750.00")
    assert charge.payment_id is None and charge.recovery_id is None

    summary = TripService(db_session).summary(trip.id)
    assert summary["depos"][0]["remaining"] == Decimal("250.00")


def pay_depo(db, depo, account, amount):
    result = TransactionRecorder(db).record_depo_payment(DepoPaymentCreate(
        depo_id=depo.id, amount=Decimal(amount), account_head="bank", account_id=account.id
    ))
    db.commit()
    return result


def test_cancel_takes_fuel_charges_out_of_the_pool(db_session, factory):
    account = factory.account("1000")
    depo = factory.depo()
    cancelled = factory.trip("T-1", start_date=date(2024, 1, 1), depos=[(depo.id, 300)], charge_pool=True)
    later = factory.trip("T-2", start_date=date(2024, 1, 2), depos=[(depo.id, 100)], charge_pool=True)
    assert db_session.get(Depo, depo.id).balance == Decimal("-400.00")

    TripService(db_session).cancel(cancelled.id)
    db_session.commit()

    assert db_session.get(Trip, cancelled.id).status == TripStatus.CANCELLED.value
    remaining = db_session.query(Pool).filter(Pool.active == True).one()
    assert remaining.trip_id == later.id
    assert remaining.depo_limit == Decimal("-100.00")
    assert db_session.get(Depo, depo.id).balance == Decimal("-100.00")
    assert LedgerService(db_session).find_drift(LedgerKind.POOL, depo.id) == []
    assert db_session.query(AuditLog).filter(AuditLog.action == "TRIP_CANCELLED").count() == 1

    result = pay_depo(db_session, depo, account, "300")
    assert result.unallocated == Decimal("200.00")
    assert db_session.get(Trip, later.id).status == TripStatus.COMPLETED.value
    assert db_session.get(Depo, depo.id).balance == Decimal("200.00")


def test_cancel_refuses_a_trip_with_depot_payments(db_session, factory):
    account = factory.account("1000")
    depo = factory.depo()
    trip = factory.trip("T-1", depos=[(depo.id, 300)], charge_pool=True)
    pay_depo(db_session, depo, account, "100")

    with pytest.raises(ConflictError):
        TripService(db_session).cancel(trip.id)
    db_session.rollback()

    assert db_session.get(Trip, trip.id).status == TripStatus.OPEN.value
    assert db_session.query(Pool).filter(Pool.active == True).count() == 2
    assert db_session.get(Depo, depo.id).balance == Decimal("-200.00")


def test_cancelling_twice_is_a_conflict(db_session, factory):
    trip = factory.trip("T-1")
    service = TripService(db_session)
    service.cancel(trip.id)
    db_session.commit()

    with pytest.raises(ConflictError):
        service.cancel(trip.id)
