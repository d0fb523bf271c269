"""
Reversing movements restores every ledger and receivable they touched.
"""
import pytest
from datetime import date
from decimal import Decimal

from fuel_ledger.core.exceptions import ConflictError, NotFoundError, ValidationError
from fuel_ledger.models import (
    Account, CashInHand, Customer, Depo, Expense, LedgerKind, Payment, Pool, Settlement,
    Transaction, Trip, TripDepo, TripStatus, VehicleRent
)
from fuel_ledger.schemas import (
    CashTransferCreate, DepoPaymentCreate, ExpenseCreate, PoolAdjustmentCreate, RecoveryCreate,
    VehicleRentCreate
)
from fuel_ledger.services.audit_service import AuditService
from fuel_ledger.services.depo_service import DepoService
from fuel_ledger.services.ledger_service import LedgerService
from fuel_ledger.services.reversal_service import ReversalService
from fuel_ledger.services.transaction_service import TransactionRecorder


def cash_balance(db):
    return LedgerService(db).current_balance(LedgerKind.CASH)


def pay_depo(db, depo, account, amount):
    result = TransactionRecorder(db).record_depo_payment(DepoPaymentCreate(
        depo_id=depo.id, amount=Decimal(amount), account_head="bank", account_id=account.id
    ))
    db.commit()
    return result


def test_cash_expense_reversal_restores_balance(db_session, factory):
    category = factory.category()
    factory.cash("200")
    result = TransactionRecorder(db_session).record_expense(ExpenseCreate(
        category_id=category.id, amount=Decimal("75"), expense_date=date.today(),
        account_head="cash_in_hand"
    ))
    db_session.commit()
    assert cash_balance(db_session) == Decimal("125.00")

    ReversalService(db_session).delete_expense(result.entity_id)
    db_session.commit()

    ledger = LedgerService(db_session)
    assert cash_balance(db_session) == Decimal("200.00")
    assert ledger.recalculate(LedgerKind.CASH) == Decimal("200.00")
    assert ledger.find_drift(LedgerKind.CASH) == []
    assert db_session.get(Expense, result.entity_id).active is False
    assert db_session.get(Transaction, result.transaction_id).active is False


def test_bank_expense_reversal_rebuilds_later_rows(db_session, factory):
    category = factory.category()
    account = factory.account("500")
    recorder = TransactionRecorder(db_session)
    first = recorder.record_expense(ExpenseCreate(
        category_id=category.id, amount=Decimal("100"), expense_date=date.today(),
        account_head="bank", account_id=account.id, payment_mode="Cheque"
    ))
    second = recorder.record_expense(ExpenseCreate(
        category_id=category.id, amount=Decimal("50"), expense_date=date.today(),
        account_head="bank", account_id=account.id, payment_mode="Cheque"
    ))
    db_session.commit()

    ReversalService(db_session).delete_expense(first.entity_id)
    db_session.commit()

    assert db_session.get(Transaction, second.transaction_id).balance == Decimal("450.00")
    assert db_session.get(Account, account.id).balance == Decimal("450.00")


def test_payment_deletion_restores_trip_pool_and_bank(db_session, factory):
    account = factory.account("1000")
    depo = factory.depo()
    trip = factory.trip("T-1", depos=[(depo.id, 300)])
    result = pay_depo(db_session, depo, account, "300")
    assert db_session.get(Trip, trip.id).status == TripStatus.COMPLETED.value

    ReversalService(db_session).delete_payment(result.entity_id)
    db_session.commit()

    reopened = db_session.get(Trip, trip.id)
    assert reopened.status == TripStatus.OPEN.value
    assert reopened.completed_at is None
    assert reopened.paid == Decimal("0.00")
    assert db_session.query(TripDepo).filter(TripDepo.trip_id == trip.id).one().paid_amount == Decimal("0.00")
    assert db_session.query(Pool).filter(Pool.active == True).count() == 0
    assert db_session.get(Depo, depo.id).balance == Decimal("0.00")
    assert db_session.get(Account, account.id).balance == Decimal("1000.00")
    assert [log.action for log in AuditService(db_session).get_by_resource("Payment", result.entity_id)] == ["DELETE"]


def test_deleting_one_share_walks_the_pool_forward(db_session, factory):
    account = factory.account("1000")
    depo = factory.depo()
    first = factory.trip("T-1", start_date=date(2024, 1, 1), depos=[(depo.id, 300)])
    second = factory.trip("T-2", start_date=date(2024, 1, 2), depos=[(depo.id, 250)])
    result = pay_depo(db_session, depo, account, "500")

    ReversalService(db_session).delete_payment(result.entity_ids[0])
    db_session.commit()

    remaining = db_session.query(Pool).filter(Pool.active == True).one()
    assert remaining.payment_id == result.entity_ids[1]
    assert remaining.depo_limit == Decimal("200.00")
    assert db_session.get(Depo, depo.id).balance == Decimal("200.00")
    assert db_session.get(Trip, first.id).paid == Decimal("0.00")
    assert db_session.get(Trip, first.id).status == TripStatus.OPEN.value
    assert db_session.get(Trip, second.id).paid == Decimal("200.00")
    assert db_session.get(Account, account.id).balance == Decimal("700.00")
    assert LedgerService(db_session).find_drift(LedgerKind.POOL, depo.id) == []


def test_bank_recovery_deletion_restores_dues_and_collections(db_session, factory):
    account = factory.account("1000")
    customer = factory.customer(previous_dues="100")
    older = factory.trip("T-1", start_date=date(2024, 1, 1), customer_id=customer.id, total_amount="300")
    newer = factory.trip("T-2", start_date=date(2024, 1, 2), customer_id=customer.id, total_amount="200")
    result = TransactionRecorder(db_session).record_recovery(RecoveryCreate(
        customer_id=customer.id, amount=Decimal("450"), account_head="bank", account_id=account.id
    ))
    db_session.commit()

    ReversalService(db_session).delete_recovery(result.entity_id)
    db_session.commit()

    assert db_session.get(Customer, customer.id).previous_dues == Decimal("100.00")
    assert db_session.get(Trip, older.id).amount_collected == Decimal("0.00")
    assert db_session.get(Trip, newer.id).amount_collected == Decimal("0.00")
    assert db_session.get(Account, account.id).balance == Decimal("1000.00")
    assert db_session.query(Settlement).filter(Settlement.active == True).count() == 0


def test_depot_recovery_deletion_reopens_trip(db_session, factory):
    depo = factory.depo()
    customer = factory.customer()
    trip = factory.trip("T-1", depos=[(depo.id, 300)], customer_id=customer.id, total_amount="300")
    result = TransactionRecorder(db_session).record_recovery(RecoveryCreate(
        customer_id=customer.id, amount=Decimal("300"), account_head="depo", depo_id=depo.id
    ))
    db_session.commit()
    assert db_session.get(Trip, trip.id).status == TripStatus.COMPLETED.value

    ReversalService(db_session).delete_recovery(result.entity_id)
    db_session.commit()

    restored = db_session.get(Trip, trip.id)
    assert restored.status == TripStatus.OPEN.value
    assert restored.paid == Decimal("0.00")
    assert restored.amount_collected == Decimal("0.00")
    assert db_session.query(TripDepo).filter(TripDepo.trip_id == trip.id).one().paid_amount == Decimal("0.00")
    assert db_session.get(Depo, depo.id).balance == Decimal("0.00")


def test_deleting_twice_is_a_conflict(db_session, factory):
    category = factory.category()
    factory.cash("100")
    result = TransactionRecorder(db_session).record_expense(ExpenseCreate(
        category_id=category.id, amount=Decimal("10"), expense_date=date.today(),
        account_head="cash_in_hand"
    ))
    db_session.commit()
    service = ReversalService(db_session)
    service.delete_expense(result.entity_id)
    db_session.commit()

    with pytest.raises(ConflictError):
        service.delete_expense(result.entity_id)
    with pytest.raises(ConflictError):
        service.reverse(result.transaction_id)
    assert cash_balance(db_session) == Decimal("100.00")


def test_missing_records_are_not_found(db_session):
    service = ReversalService(db_session)
    with pytest.raises(NotFoundError):
        service.reverse(404)
    with pytest.raises(NotFoundError):
        service.delete_payment(404)


def test_reverse_transaction_goes_through_its_record(db_session, factory):
    account = factory.account("1000")
    depo = factory.depo()
    trip = factory.trip("T-1", depos=[(depo.id, 300)])
    result = pay_depo(db_session, depo, account, "300")

    ReversalService(db_session).reverse_transaction(result.transaction_id)
    db_session.commit()

    assert db_session.get(Payment, result.entity_id).active is False
    assert db_session.get(Trip, trip.id).paid == Decimal("0.00")
    assert db_session.get(Depo, depo.id).balance == Decimal("0.00")


def test_reverse_transaction_without_a_record(db_session, factory):
    account = factory.account("250")
    opening = db_session.query(Transaction).filter(Transaction.account_id == account.id).one()

    ReversalService(db_session).reverse_transaction(opening.id)
    db_session.commit()

    assert db_session.get(Account, account.id).balance == Decimal("0.00")


def test_vehicle_rent_reversal(db_session, factory):
    factory.cash("500")
    trip = factory.trip("T-1")
    result = TransactionRecorder(db_session).record_vehicle_rent(VehicleRentCreate(
        trip_id=trip.id, vehicle_id=1, distance_km=Decimal("10"), rent_per_km=Decimal("5"),
        total_rent=Decimal("50"), payment_source="cash"
    ))
    db_session.commit()
    assert cash_balance(db_session) == Decimal("450.00")

    ReversalService(db_session).delete_vehicle_rent(result.entity_id)
    db_session.commit()

    assert cash_balance(db_session) == Decimal("500.00")
    assert db_session.get(VehicleRent, result.entity_id).active is False


def test_cash_transfer_reversal_restores_both_sides(db_session, factory):
    account = factory.account("1000")
    factory.cash("300")
    result = TransactionRecorder(db_session).transfer_to_bank(CashTransferCreate(
        account_id=account.id, amount=Decimal("200")
    ))
    db_session.commit()

    ReversalService(db_session).delete_cash_transfer(result.entity_id)
    db_session.commit()

    assert cash_balance(db_session) == Decimal("300.00")
    assert db_session.get(Account, account.id).balance == Decimal("1000.00")
    assert all(not db_session.get(Transaction, tx_id).active for tx_id in result.transaction_ids)


def test_cash_receipt_deletion_rebuilds_cash(db_session, factory):
    category = factory.category()
    receipt = factory.cash("200")
    factory.cash("50")
    expense = TransactionRecorder(db_session).record_expense(ExpenseCreate(
        category_id=category.id, amount=Decimal("30"), expense_date=date.today(),
        account_head="cash_in_hand"
    ))
    db_session.commit()

    ReversalService(db_session).delete_cash_receipt(receipt.id)
    db_session.commit()

    assert db_session.get(CashInHand, receipt.id).active is False
    assert cash_balance(db_session) == Decimal("20.00")
    assert LedgerService(db_session).find_drift(LedgerKind.CASH) == []

    linked = db_session.get(Transaction, expense.transaction_id).cash_in_hand_id
    with pytest.raises(ValidationError):
        ReversalService(db_session).delete_cash_receipt(linked)
    with pytest.raises(ConflictError):
        ReversalService(db_session).delete_cash_receipt(receipt.id)


def test_opening_balance_row_cannot_be_deleted(db_session, factory):
    factory.cash("10")
    opening = db_session.query(CashInHand).filter(CashInHand.purpose == "Opening Balance").one()

    with pytest.raises(ValidationError):
        ReversalService(db_session).delete_cash_receipt(opening.id)


def test_pool_adjustment_deletion_walks_the_pool_forward(db_session, factory):
    depo = factory.depo()
    service = DepoService(db_session)
    adjustment = service.adjust_pool(depo.id, PoolAdjustmentCreate(debit=Decimal("500"), reason="Advance"))
    later = service.adjust_pool(depo.id, PoolAdjustmentCreate(credit=Decimal("120")))
    db_session.commit()
    assert later.depo_limit == Decimal("380.00")
    assert later.reason == "Manual adjustment"

    ReversalService(db_session).delete_pool_adjustment(adjustment.id)
    db_session.commit()

    assert db_session.get(Pool, later.id).depo_limit == Decimal("-120.00")
    assert db_session.get(Depo, depo.id).balance == Decimal("-120.00")


def test_pool_rows_owned_by_a_record_are_not_adjustments(db_session, factory):
    account = factory.account("1000")
    depo = factory.depo()
    trip = factory.trip("T-1", depos=[(depo.id, 300)], charge_pool=True)
    result = pay_depo(db_session, depo, account, "100")
    charge = db_session.query(Pool).filter(Pool.trip_id == trip.id).one()
    payment_row = db_session.query(Pool).filter(Pool.payment_id == result.entity_id).one()

    service = ReversalService(db_session)
    with pytest.raises(ValidationError):
        service.delete_pool_adjustment(charge.id)
    with pytest.raises(ValidationError):
        service.delete_pool_adjustment(payment_row.id)
    assert db_session.get(Depo, depo.id).balance == Decimal("-200.00")
