"""
Reversal Service
Soft-deletes money movements and undoes their effect on every ledger and
receivable they touched. Nothing is hard-deleted; every affected ledger is
rebuilt from its remaining active history.
"""
from sqlalchemy.orm import Session
from typing import Iterable, List, Optional, Set
import logging

from fuel_ledger.core.config import settings
from fuel_ledger.core.exceptions import ConflictError, NotFoundError, ValidationError
from fuel_ledger.models import (
    CashInHand, CashTransfer, Customer, Expense, LedgerKind, Payment, Pool, Recovery,
    Settlement, SettlementType, Transaction, Trip, TripDepo, VehicleExpense, VehicleRent
)
from fuel_ledger.services.allocation_service import AllocationService
from fuel_ledger.services.audit_service import AuditAction, AuditService
from fuel_ledger.services.ledger_service import LedgerService, ZERO, money
from fuel_ledger.services.trip_service import TripCompletionMonitor

logger = logging.getLogger(__name__)


class ReversalService:
    """Inverse path of the transaction recorder"""

    def __init__(self, db: Session):
        self.db = db
        self.ledger = LedgerService(db)
        self.allocation = AllocationService(db)
        self.monitor = TripCompletionMonitor(db)
        self.audit = AuditService(db)

    # ---------- ledger level ----------

    def reverse(self, transaction_id: int) -> Transaction:
        """
        Soft-delete a transaction and rebuild every ledger it moved.

        Bank and cash rows are rebuilt from history; pool rows linked to the
        transaction are removed and the pool walked forward from the earliest.
        """
        tx = self.db.query(Transaction).filter(Transaction.id == transaction_id).with_for_update().first()
        if not tx:
            raise NotFoundError("Transaction", transaction_id)
        if not tx.active:
            raise ConflictError(f"Transaction {transaction_id} is already reversed")

        tx.active = False
        self.db.flush()

        if tx.account_id is not None:
            self.ledger.recalculate(LedgerKind.BANK, tx.account_id)

        if tx.cash_in_hand_id is not None:
            cash = self.db.query(CashInHand).filter(CashInHand.id == tx.cash_in_hand_id).first()
            if cash is not None and cash.active:
                cash.active = False
                self.db.flush()
            self.ledger.recalculate(LedgerKind.CASH)

        pool_rows = self.db.query(Pool).filter(
            Pool.transaction_id == tx.id,
            Pool.active == True
        ).all()
        self.ledger.remove_pool_rows(pool_rows)

        self.audit.log(
            AuditAction.TRANSACTION_REVERSED, "Transaction", tx.id,
            f"Reversed '{tx.purpose}' debit={tx.debit} credit={tx.credit}"
        )
        logger.info(f"Reversed transaction {tx.id} ({tx.purpose})")
        return tx

    def reverse_transaction(self, transaction_id: int):
        """
        Reverse a transaction through the record that created it, so its
        receivables are restored along with the ledgers. Transactions with no
        owning record are reversed at ledger level only.
        """
        owners = (
            (Expense, Expense.transaction_id, self.delete_expense),
            (Payment, Payment.transaction_id, self.delete_payment),
            (Recovery, Recovery.transaction_id, self.delete_recovery),
            (VehicleRent, VehicleRent.transaction_id, self.delete_vehicle_rent),
            (VehicleExpense, VehicleExpense.transaction_id, self.delete_vehicle_expense),
            (CashTransfer, CashTransfer.bank_transaction_id, self.delete_cash_transfer),
            (CashTransfer, CashTransfer.cash_transaction_id, self.delete_cash_transfer),
        )
        for model, column, delete in owners:
            owner = self.db.query(model).filter(column == transaction_id, model.active == True).first()
            if owner is not None:
                return delete(owner.id)
        return self.reverse(transaction_id)

    def _reverse_if_active(self, transaction_id: Optional[int]):
        if transaction_id is None:
            return
        tx = self.db.query(Transaction).filter(Transaction.id == transaction_id).first()
        if tx is not None and tx.active:
            self.reverse(tx.id)

    def _reopen(self, trip_ids: Iterable[int]):
        for trip_id in trip_ids:
            self.monitor.reopen_if_unsettled(trip_id)

    def _unpay_trip_depo(self, trip_depo_id: Optional[int], amount) -> Optional[int]:
        """Take `amount` back off a trip-depo's paid amount. Returns its trip id."""
        if trip_depo_id is None:
            return None
        trip_depo = self.db.query(TripDepo).filter(TripDepo.id == trip_depo_id).with_for_update().first()
        if trip_depo is None:
            return None
        trip_depo.paid_amount = max(money(trip_depo.paid_amount) - money(amount), ZERO)
        self.db.flush()
        self.allocation.refresh_trip_paid(trip_depo.trip_id)
        return trip_depo.trip_id

    def _ensure_active(self, record, label: str, record_id: int):
        if record is None:
            raise NotFoundError(label, record_id)
        if not record.active:
            raise ConflictError(f"{label} {record_id} is already deleted")

    # ---------- entity level ----------

    def delete_expense(self, expense_id: int) -> Expense:
        expense = self.db.query(Expense).filter(Expense.id == expense_id).first()
        self._ensure_active(expense, "Expense", expense_id)

        expense.active = False
        self._reverse_if_active(expense.transaction_id)
        self.db.flush()
        logger.info(f"Deleted expense {expense.id}")
        return expense

    def delete_payment(self, payment_id: int) -> Payment:
        """Undo one depot payment share: ledgers, pool and the trip-depo it paid"""
        payment = self.db.query(Payment).filter(Payment.id == payment_id).first()
        self._ensure_active(payment, "Payment", payment_id)

        payment.active = False
        self._reverse_if_active(payment.transaction_id)

        # Pool rows without a transaction still belong to the payment
        self.ledger.remove_pool_rows(self.db.query(Pool).filter(
            Pool.payment_id == payment.id,
            Pool.active == True
        ).all())

        trip_id = self._unpay_trip_depo(payment.trip_depo_id, payment.amount)
        if trip_id is not None:
            self._reopen([trip_id])

        self.audit.log(AuditAction.DELETE, "Payment", payment.id, f"Deleted payment of {payment.amount}")
        logger.info(f"Deleted payment {payment.id}")
        return payment

    def delete_recovery(self, recovery_id: int) -> Recovery:
        """
        Undo a recovery completely: its bank/cash transaction or depot pool
        row, what it paid on trip-depos and client trips, and the previous
        dues it cleared.
        """
        recovery = self.db.query(Recovery).filter(Recovery.id == recovery_id).first()
        self._ensure_active(recovery, "Recovery", recovery_id)

        recovery.active = False
        if money(recovery.dues_applied) > 0:
            customer = self.db.query(Customer).filter(
                Customer.id == recovery.customer_id
            ).with_for_update().first()
            if customer is not None:
                customer.previous_dues = money(customer.previous_dues) + money(recovery.dues_applied)

        self._reverse_if_active(recovery.transaction_id)
        self.ledger.remove_pool_rows(self.db.query(Pool).filter(
            Pool.recovery_id == recovery.id,
            Pool.active == True
        ).all())

        touched: Set[int] = set()
        settlements: List[Settlement] = self.db.query(Settlement).filter(
            Settlement.recovery_id == recovery.id,
            Settlement.active == True
        ).all()
        for settlement in settlements:
            settlement.active = False
            if settlement.settlement_type == SettlementType.DIRECT_CLIENT_TO_CONTRACTOR.value:
                trip_id = self._unpay_trip_depo(settlement.trip_depo_id, settlement.amount)
            else:
                trip = self.db.query(Trip).filter(Trip.id == settlement.trip_id).with_for_update().first()
                trip_id = None
                if trip is not None:
                    trip.amount_collected = max(money(trip.amount_collected) - money(settlement.amount), ZERO)
                    trip_id = trip.id
            if trip_id is not None:
                touched.add(trip_id)
        self.db.flush()
        self._reopen(sorted(touched))

        self.audit.log(
            AuditAction.DELETE, "Recovery", recovery.id,
            f"Deleted recovery of {recovery.amount}", {"trip_ids": sorted(touched)}
        )
        logger.info(f"Deleted recovery {recovery.id}, restored {len(settlements)} settlements")
        return recovery

    def delete_vehicle_rent(self, rent_id: int) -> VehicleRent:
        rent = self.db.query(VehicleRent).filter(VehicleRent.id == rent_id).first()
        self._ensure_active(rent, "Vehicle rent", rent_id)

        rent.active = False
        self._reverse_if_active(rent.transaction_id)
        self.db.flush()
        logger.info(f"Deleted vehicle rent {rent.id}")
        return rent

    def delete_vehicle_expense(self, expense_id: int) -> VehicleExpense:
        expense = self.db.query(VehicleExpense).filter(VehicleExpense.id == expense_id).first()
        self._ensure_active(expense, "Vehicle expense", expense_id)

        expense.active = False
        self._reverse_if_active(expense.transaction_id)
        self.db.flush()
        logger.info(f"Deleted vehicle expense {expense.id}")
        return expense

    def delete_cash_transfer(self, transfer_id: int) -> CashTransfer:
        transfer = self.db.query(CashTransfer).filter(CashTransfer.id == transfer_id).first()
        self._ensure_active(transfer, "Cash transfer", transfer_id)

        transfer.active = False
        self._reverse_if_active(transfer.bank_transaction_id)
        self._reverse_if_active(transfer.cash_transaction_id)
        self.db.flush()
        logger.info(f"Deleted cash transfer {transfer.id}")
        return transfer

    def delete_cash_receipt(self, entry_id: int) -> CashInHand:
        """
        Remove a manual cash in hand row and rebuild the cash ledger.

        Rows written by a movement belong to its transaction and are removed
        by reversing that movement instead.
        """
        entry = self.db.query(CashInHand).filter(CashInHand.id == entry_id).with_for_update().first()
        self._ensure_active(entry, "Cash in hand entry", entry_id)

        linked = self.db.query(Transaction).filter(Transaction.cash_in_hand_id == entry.id).first()
        if linked is not None:
            raise ValidationError(
                f"Cash in hand entry {entry_id} belongs to transaction {linked.id}; reverse that instead"
            )
        if entry.purpose == settings.OPENING_BALANCE_PURPOSE and money(entry.credit) == ZERO:
            raise ValidationError("Opening balance rows are maintained by the cash ledger")

        entry.active = False
        self.db.flush()
        self.ledger.recalculate(LedgerKind.CASH)

        self.audit.log(AuditAction.DELETE, "CashInHand", entry.id, f"Deleted cash receipt of {entry.credit}")
        logger.info(f"Deleted cash in hand entry {entry.id}")
        return entry

    def delete_pool_adjustment(self, pool_id: int) -> Pool:
        """Remove a manual pool row and walk the depot's pool forward from it"""
        row = self.db.query(Pool).filter(Pool.id == pool_id).with_for_update().first()
        self._ensure_active(row, "Pool entry", pool_id)

        owner = next(
            (label for label, value in (
                ("payment", row.payment_id),
                ("recovery", row.recovery_id),
                ("trip", row.trip_id),
                ("transaction", row.transaction_id),
            ) if value is not None),
            None
        )
        if owner is not None:
            raise ValidationError(f"Pool entry {pool_id} belongs to a {owner}; delete that instead")

        self.ledger.remove_pool_rows([row])
        self.audit.log(
            AuditAction.DELETE, "Pool", row.id,
            f"Deleted pool adjustment debit={row.debit} credit={row.credit}", {"depo_id": row.depo_id}
        )
        logger.info(f"Deleted pool entry {row.id} of depo {row.depo_id}")
        return row
