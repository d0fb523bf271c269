"""
Transaction Recorder
Entry point for every money movement: expenses, depot payments, client
recoveries, vehicle rent, vehicle expenses, cash received into hand and
cash deposits.

A movement checks its funding source first, then allocates against open
receivables, writes ledger rows and transactions, and finally stores the
business record. The caller owns the unit of work.
"""
from pydantic import BaseModel, ValidationError as PydanticValidationError
from sqlalchemy.orm import Session
from typing import Dict, List, Optional, Tuple, Union
from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
import logging

from fuel_ledger.core.exceptions import InsufficientFundsError, NotFoundError, ValidationError
from fuel_ledger.models import (
    Account, CashTransfer, Customer, Depo, Expense, ExpenseCategory, FundingSource,
    LedgerKind, Payment, Recovery, Settlement, SettlementType, Transaction, Trip, TripDepo,
    TripStatus, VehicleExpense, VehicleRent
)
from fuel_ledger.schemas import (
    CashReceiptCreate, CashTransferCreate, DepoPaymentCreate, ExpenseCreate, RecordKind,
    RecoveryCreate, VehicleExpenseCreate, VehicleRentCreate
)
from fuel_ledger.services.allocation_service import AllocationService, allocate
from fuel_ledger.services.audit_service import AuditAction, AuditService
from fuel_ledger.services.ledger_service import LedgerService, ZERO, money
from fuel_ledger.services.trip_service import TripCompletionMonitor

logger = logging.getLogger(__name__)

CASH_IN_HAND = "Cash in Hand"

_FUNDING_ALIASES = {
    "bank": FundingSource.BANK,
    "account": FundingSource.BANK,
    "cash": FundingSource.CASH_IN_HAND,
    "cash_in_hand": FundingSource.CASH_IN_HAND,
    "depo": FundingSource.DEPO,
}


@dataclass
class Funding:
    """The single source a movement is paid from or received into"""
    source: FundingSource
    account: Optional[Account] = None
    depo: Optional[Depo] = None

    @property
    def name(self) -> str:
        if self.account is not None:
            return self.account.account_title
        if self.depo is not None:
            return self.depo.name
        return CASH_IN_HAND


@dataclass
class RecordResult:
    entity_id: int
    transaction_id: Optional[int] = None
    transaction_ids: List[int] = field(default_factory=list)
    ledger_entry_ids: List[int] = field(default_factory=list)
    entity_ids: List[int] = field(default_factory=list)
    unallocated: Decimal = ZERO


def occurred_on(day: Optional[date]) -> datetime:
    """Timestamp for a movement dated `day`: now for today, end of day for past days"""
    now = datetime.utcnow()
    if day is None or day >= now.date():
        return now
    return datetime.combine(day, time(23, 59, 59))


class TransactionRecorder:
    """Records money movements across the bank, cash and pool ledgers"""

    SCHEMAS = {
        RecordKind.EXPENSE: ExpenseCreate,
        RecordKind.PAYMENT_TO_DEPOT: DepoPaymentCreate,
        RecordKind.RECOVERY_FROM_CLIENT: RecoveryCreate,
        RecordKind.VEHICLE_RENT: VehicleRentCreate,
        RecordKind.VEHICLE_EXPENSE: VehicleExpenseCreate,
    }

    def __init__(self, db: Session):
        self.db = db
        self.ledger = LedgerService(db)
        self.allocation = AllocationService(db)
        self.monitor = TripCompletionMonitor(db)
        self.audit = AuditService(db)

    def record(self, kind: Union[RecordKind, str], payload: Union[BaseModel, Dict]) -> RecordResult:
        """Record one movement of the given kind"""
        try:
            kind = RecordKind(kind)
        except ValueError:
            raise ValidationError(f"Unknown movement kind '{kind}'")

        schema = self.SCHEMAS[kind]
        if not isinstance(payload, schema):
            try:
                payload = schema.model_validate(
                    payload if isinstance(payload, dict) else payload.model_dump()
                )
            except PydanticValidationError as e:
                first = e.errors()[0]
                field_name = ".".join(str(part) for part in first["loc"])
                raise ValidationError(f"{field_name}: {first['msg']}")

        handlers = {
            RecordKind.EXPENSE: self.record_expense,
            RecordKind.PAYMENT_TO_DEPOT: self.record_depo_payment,
            RecordKind.RECOVERY_FROM_CLIENT: self.record_recovery,
            RecordKind.VEHICLE_RENT: self.record_vehicle_rent,
            RecordKind.VEHICLE_EXPENSE: self.record_vehicle_expense,
        }
        return handlers[kind](payload)

    # ---------- funding ----------

    def resolve_funding(
        self,
        account_head: str,
        account_id: Optional[int] = None,
        depo_id: Optional[int] = None,
        allow_depo: bool = False
    ) -> Funding:
        """Validate that exactly one funding source is named and load it"""
        source = _FUNDING_ALIASES.get((account_head or "").strip().lower())
        if source is None or (source == FundingSource.DEPO and not allow_depo):
            allowed = "bank, cash_in_hand or depo" if allow_depo else "bank or cash_in_hand"
            raise ValidationError(f"Invalid account head '{account_head}'. Use {allowed}")

        if source == FundingSource.BANK:
            if not account_id:
                raise ValidationError("Account ID is required for bank payment")
            if depo_id:
                raise ValidationError("Specify exactly one funding source: bank account or depo, not both")
            account = self.db.query(Account).filter(
                Account.id == account_id,
                Account.active == True
            ).with_for_update().first()
            if not account:
                raise NotFoundError("Account", account_id)
            return Funding(source, account=account)

        if source == FundingSource.DEPO:
            if not depo_id:
                raise ValidationError("Depo ID is required when the client pays the depo directly")
            if account_id:
                raise ValidationError("Specify exactly one funding source: depo or bank account, not both")
            depo = self._get_depo(depo_id)
            return Funding(source, depo=depo)

        if account_id or depo_id:
            raise ValidationError("Cash in hand movements cannot name an account or depo")
        return Funding(source)

    def available_balance(self, funding: Funding) -> Decimal:
        if funding.source == FundingSource.BANK:
            return self.ledger.current_balance(LedgerKind.BANK, funding.account.id, lock=True)
        if funding.source == FundingSource.CASH_IN_HAND:
            return self.ledger.current_balance(LedgerKind.CASH, lock=True)
        return self.ledger.current_balance(LedgerKind.POOL, funding.depo.id, lock=True)

    def check_funds(self, funding: Funding, amount: Decimal):
        """Outgoing movements may not overdraw their source"""
        available = self.available_balance(funding)
        if available < amount:
            raise InsufficientFundsError(funding.name, available, amount)

    def _move(
        self,
        funding: Funding,
        purpose: str,
        occurred_at: datetime,
        debit=ZERO,
        credit=ZERO,
        trip_id: Optional[int] = None,
        payment_mode: Optional[str] = None,
        reference_no: Optional[str] = None
    ) -> Tuple[Transaction, List[int]]:
        """Write the bank or cash side of a movement and its Transaction"""
        if funding.source == FundingSource.BANK:
            tx = self.ledger.apply_entry(
                LedgerKind.BANK, funding.account.id,
                debit=debit, credit=credit, occurred_at=occurred_at,
                purpose=purpose, trip_id=trip_id,
                payment_mode=payment_mode or "Bank", reference_no=reference_no
            )
            return tx, [tx.id]

        self.ledger.ensure_day_boundary(occurred_at.date())
        cash = self.ledger.apply_entry(
            LedgerKind.CASH, None,
            debit=debit, credit=credit, occurred_at=occurred_at, purpose=purpose
        )
        tx = Transaction(
            cash_in_hand_id=cash.id,
            purpose=purpose,
            debit=money(debit),
            credit=money(credit),
            date=occurred_at,
            payment_mode="Cash",
            reference_no=reference_no,
            trip_id=trip_id
        )
        self.db.add(tx)
        self.db.flush()
        return tx, [cash.id]

    def _get_depo(self, depo_id: int) -> Depo:
        depo = self.db.query(Depo).filter(
            Depo.id == depo_id,
            Depo.active == True
        ).with_for_update().first()
        if not depo:
            raise NotFoundError("Depo", depo_id)
        return depo

    def _get_trip(self, trip_id: int) -> Trip:
        trip = self.db.query(Trip).filter(Trip.id == trip_id, Trip.active == True).first()
        if not trip:
            raise NotFoundError("Trip", trip_id)
        return trip

    def _check_customer_bought_from(self, customer: Customer, depo: Depo):
        """A customer may pay a depot directly only if their trips drew fuel from it"""
        rows = self.db.query(TripDepo.depo_id).join(Trip, Trip.id == TripDepo.trip_id).filter(
            Trip.customer_id == customer.id,
            Trip.active == True,
            Trip.status != TripStatus.CANCELLED.value,
            TripDepo.active == True
        ).distinct().all()
        depo_ids = {row.depo_id for row in rows}
        if depo_ids and depo.id not in depo_ids:
            raise ValidationError(
                f"{customer.name} has not purchased from {depo.name}. "
                "Select a dealer the customer has purchased from"
            )

    def _complete_trips(self, trip_ids):
        for trip_id in trip_ids:
            self.monitor.maybe_complete(trip_id)

    # ---------- movements ----------

    def record_expense(self, data: ExpenseCreate) -> RecordResult:
        """Office expense paid from cash in hand or a bank account"""
        category = self.db.query(ExpenseCategory).filter(
            ExpenseCategory.id == data.category_id,
            ExpenseCategory.active == True
        ).first()
        if not category:
            raise NotFoundError("Expense category", data.category_id)

        funding = self.resolve_funding(data.account_head, data.account_id)
        if funding.source == FundingSource.BANK and not data.payment_mode:
            raise ValidationError("Payment mode is required for bank expenses")

        amount = money(data.amount)
        self.check_funds(funding, amount)

        tx, entry_ids = self._move(
            funding, category.name, occurred_on(data.expense_date),
            debit=amount,
            payment_mode=data.payment_mode,
            reference_no=data.reference_no
        )

        expense = Expense(
            category_id=category.id,
            amount=amount,
            expense_date=data.expense_date,
            description=data.description,
            account_head=funding.source.value,
            account_id=funding.account.id if funding.account else None,
            payment_mode=tx.payment_mode,
            reference_no=data.reference_no,
            transaction_id=tx.id
        )
        self.db.add(expense)
        self.db.flush()

        self.audit.log(
            AuditAction.EXPENSE_RECORDED, "Expense", expense.id,
            f"{category.name} {amount} from {funding.name}",
            {"transaction_id": tx.id, "amount": amount}
        )
        logger.info(f"Recorded expense {expense.id}: {amount} from {funding.name}")
        return RecordResult(expense.id, tx.id, [tx.id], entry_ids, [expense.id])

    def record_depo_payment(self, data: DepoPaymentCreate) -> RecordResult:
        """
        Pay a depot, settling what trips owe it oldest first.

        Every trip-depo touched gets its own Transaction, Payment and pool
        row. An amount beyond all open obligations is still paid out and
        lands in the pool as an advance, but creates no receivable.
        """
        depo = self._get_depo(data.depo_id)
        funding = self.resolve_funding(data.account_head, data.account_id)
        amount = money(data.amount)
        self.check_funds(funding, amount)

        occurred_at = data.payment_date or datetime.utcnow()
        allocations, remainder = allocate(amount, self.allocation.open_trip_depos(depo.id))

        result = RecordResult(entity_id=0, unallocated=remainder)
        shares = [(a.receivable.source, a.applied) for a in allocations]
        if remainder > 0:
            shares.append((None, remainder))

        for trip_depo, applied in shares:
            trip = trip_depo.trip if trip_depo is not None else None
            purpose = (
                f"Payment to {depo.name} - {trip.trip_no}" if trip is not None
                else f"Advance payment to {depo.name}"
            )
            tx, entry_ids = self._move(
                funding, purpose, occurred_at,
                debit=applied,
                trip_id=trip.id if trip is not None else None,
                payment_mode=data.payment_mode,
                reference_no=data.reference_no
            )
            payment = Payment(
                depo_id=depo.id,
                trip_id=trip.id if trip is not None else None,
                trip_depo_id=trip_depo.id if trip_depo is not None else None,
                account_id=funding.account.id if funding.account else None,
                transaction_id=tx.id,
                amount=applied,
                payment_mode=tx.payment_mode,
                reference_no=data.reference_no,
                payment_date=occurred_at
            )
            self.db.add(payment)
            self.db.flush()

            pool = self.ledger.apply_entry(
                LedgerKind.POOL, depo.id,
                debit=applied, occurred_at=occurred_at,
                payment_id=payment.id, transaction_id=tx.id, reason=purpose
            )
            result.transaction_ids.append(tx.id)
            result.ledger_entry_ids.extend(entry_ids + [pool.id])
            result.entity_ids.append(payment.id)

        trip_ids = self.allocation.apply_to_trip_depos(allocations)
        self._complete_trips(trip_ids)

        result.entity_id = result.entity_ids[0]
        result.transaction_id = result.transaction_ids[0]
        self.audit.log(
            AuditAction.PAYMENT_MADE, "Depo", depo.id,
            f"Paid {amount} to {depo.name} from {funding.name}",
            {"payment_ids": result.entity_ids, "trip_ids": trip_ids, "unallocated": remainder}
        )
        logger.info(
            f"Paid {amount} to depo {depo.id} across {len(allocations)} trips, "
            f"{remainder} unallocated"
        )
        return result

    def record_recovery(self, data: RecoveryCreate) -> RecordResult:
        """
        Money recovered from a customer.

        Carried-over dues are cleared first; the rest is collected against the
        customer's trips oldest first. When the customer pays a depot
        directly, no bank or cash row is written: the depot's pool grows
        and the trip-depo obligations it settles are marked paid.
        """
        customer = self.db.query(Customer).filter(
            Customer.id == data.customer_id,
            Customer.active == True
        ).with_for_update().first()
        if not customer:
            raise NotFoundError("Customer", data.customer_id)

        funding = self.resolve_funding(data.account_head, data.account_id, data.depo_id, allow_depo=True)
        if funding.source == FundingSource.DEPO:
            self._check_customer_bought_from(customer, funding.depo)
        amount = money(data.amount)
        occurred_at = data.recovery_date or datetime.utcnow()

        dues_applied = min(amount, money(customer.previous_dues))
        if dues_applied > 0:
            customer.previous_dues = money(customer.previous_dues) - dues_applied
        trip_amount = amount - dues_applied

        oldest = self.allocation.oldest_open_trip(customer.id)
        recovery = Recovery(
            customer_id=customer.id,
            trip_id=oldest.id if oldest else None,
            amount=amount,
            dues_applied=dues_applied,
            funding_source=funding.source.value,
            account_id=funding.account.id if funding.account else None,
            depo_id=funding.depo.id if funding.depo else None,
            payment_mode=data.payment_mode,
            reference_no=data.reference_no,
            recovery_date=occurred_at,
            remarks=data.remarks
        )
        self.db.add(recovery)
        self.db.flush()

        result = RecordResult(entity_id=recovery.id, entity_ids=[recovery.id])
        purpose = f"Recovery from {customer.name}"
        touched_trips = []

        if funding.source == FundingSource.DEPO:
            depo = funding.depo
            depo_allocations, _ = allocate(amount, self.allocation.open_trip_depos(depo.id))
            for allocation in depo_allocations:
                self.db.add(Settlement(
                    recovery_id=recovery.id,
                    settlement_type=SettlementType.DIRECT_CLIENT_TO_CONTRACTOR.value,
                    trip_id=allocation.receivable.trip_id,
                    trip_depo_id=allocation.receivable.source.id,
                    depo_id=depo.id,
                    amount=allocation.applied
                ))
            pool = self.ledger.apply_entry(
                LedgerKind.POOL, depo.id,
                debit=amount, occurred_at=occurred_at,
                recovery_id=recovery.id,
                reason=f"{purpose} paid directly to {depo.name}"
            )
            result.ledger_entry_ids.append(pool.id)
            touched_trips.extend(self.allocation.apply_to_trip_depos(depo_allocations))
        else:
            tx, entry_ids = self._move(
                funding, purpose, occurred_at,
                credit=amount,
                trip_id=recovery.trip_id,
                payment_mode=data.payment_mode,
                reference_no=data.reference_no
            )
            recovery.transaction_id = tx.id
            result.transaction_id = tx.id
            result.transaction_ids.append(tx.id)
            result.ledger_entry_ids.extend(entry_ids)

        client_allocations, remainder = allocate(trip_amount, self.allocation.open_client_trips(customer.id))
        for allocation in client_allocations:
            self.db.add(Settlement(
                recovery_id=recovery.id,
                settlement_type=SettlementType.CLIENT_TRIP_COLLECTION.value,
                trip_id=allocation.receivable.trip_id,
                amount=allocation.applied
            ))
        for trip_id in self.allocation.apply_to_client_trips(client_allocations):
            if trip_id not in touched_trips:
                touched_trips.append(trip_id)
        self.db.flush()

        self._complete_trips(touched_trips)
        result.unallocated = remainder

        self.audit.log(
            AuditAction.RECOVERY_RECEIVED, "Recovery", recovery.id,
            f"{amount} from {customer.name} into {funding.name}",
            {"dues_applied": dues_applied, "trip_ids": touched_trips, "unallocated": remainder}
        )
        logger.info(
            f"Recovered {amount} from customer {customer.id} via {funding.source.value}, "
            f"{dues_applied} against previous dues"
        )
        return result

    def record_vehicle_rent(self, data: VehicleRentCreate) -> RecordResult:
        trip = self._get_trip(data.trip_id)
        funding = self.resolve_funding(data.payment_source, data.account_id)
        amount = money(data.total_rent)
        self.check_funds(funding, amount)

        tx, entry_ids = self._move(
            funding, f"Vehicle Rent Payment - {trip.trip_no}", datetime.utcnow(),
            debit=amount, trip_id=trip.id
        )
        rent = VehicleRent(
            trip_id=trip.id,
            vehicle_id=data.vehicle_id,
            distance_km=money(data.distance_km),
            rent_per_km=money(data.rent_per_km),
            total_rent=amount,
            payment_source=funding.source.value,
            account_id=funding.account.id if funding.account else None,
            transaction_id=tx.id
        )
        self.db.add(rent)
        self.db.flush()

        self.audit.log(
            AuditAction.VEHICLE_RENT_PAID, "VehicleRent", rent.id,
            f"Rent {amount} for trip {trip.trip_no}", {"transaction_id": tx.id}
        )
        return RecordResult(rent.id, tx.id, [tx.id], entry_ids, [rent.id])

    def record_vehicle_expense(self, data: VehicleExpenseCreate) -> RecordResult:
        trip = self._get_trip(data.trip_id) if data.trip_id else None
        funding = self.resolve_funding(data.account_head, data.account_id)
        amount = money(data.amount)
        self.check_funds(funding, amount)

        tx, entry_ids = self._move(
            funding, f"Vehicle Expense: {data.expense_type}", occurred_on(data.expense_date),
            debit=amount,
            trip_id=trip.id if trip else None,
            payment_mode=data.payment_mode,
            reference_no=data.reference_no
        )
        expense = VehicleExpense(
            vehicle_id=data.vehicle_id,
            trip_id=trip.id if trip else None,
            expense_date=data.expense_date,
            expense_type=data.expense_type,
            description=data.description,
            amount=amount,
            account_head=funding.source.value,
            account_id=funding.account.id if funding.account else None,
            payment_mode=tx.payment_mode,
            reference_no=data.reference_no,
            transaction_id=tx.id
        )
        self.db.add(expense)
        self.db.flush()

        self.audit.log(
            AuditAction.VEHICLE_EXPENSE_RECORDED, "VehicleExpense", expense.id,
            f"{data.expense_type} {amount} for vehicle {data.vehicle_id}", {"transaction_id": tx.id}
        )
        return RecordResult(expense.id, tx.id, [tx.id], entry_ids, [expense.id])

    def transfer_to_bank(self, data: CashTransferCreate) -> RecordResult:
        """Deposit cash in hand into a bank account"""
        account_funding = self.resolve_funding("bank", data.account_id)
        cash = Funding(FundingSource.CASH_IN_HAND)
        amount = money(data.amount)
        self.check_funds(cash, amount)

        occurred_at = data.transfer_date or datetime.utcnow()
        cash_tx, cash_ids = self._move(
            cash, f"Transfer to {account_funding.name}", occurred_at,
            debit=amount, reference_no=data.reference_no
        )
        bank_tx, bank_ids = self._move(
            account_funding, "Cash deposit from cash in hand", occurred_at,
            credit=amount, payment_mode="Cash Deposit", reference_no=data.reference_no
        )
        transfer = CashTransfer(
            account_id=account_funding.account.id,
            amount=amount,
            transfer_date=occurred_at,
            reference_no=data.reference_no,
            cash_transaction_id=cash_tx.id,
            bank_transaction_id=bank_tx.id
        )
        self.db.add(transfer)
        self.db.flush()

        self.audit.log(
            AuditAction.TRANSFER_COMPLETED, "CashTransfer", transfer.id,
            f"{amount} cash deposited into {account_funding.name}"
        )
        return RecordResult(
            transfer.id, bank_tx.id, [cash_tx.id, bank_tx.id], cash_ids + bank_ids, [transfer.id]
        )

    def receive_cash(self, data: CashReceiptCreate) -> RecordResult:
        """Cash received into hand outside any other movement"""
        amount = money(data.amount)
        occurred_at = data.received_at or datetime.utcnow()

        self.ledger.ensure_day_boundary(occurred_at.date())
        entry = self.ledger.apply_entry(
            LedgerKind.CASH, None,
            credit=amount, occurred_at=occurred_at, purpose=data.purpose or "Cash received"
        )

        self.audit.log(
            AuditAction.CASH_RECEIVED, "CashInHand", entry.id,
            f"{amount} received into {CASH_IN_HAND}", {"purpose": entry.purpose}
        )
        logger.info(f"Received {amount} into cash in hand (entry {entry.id})")
        return RecordResult(entry.id, ledger_entry_ids=[entry.id], entity_ids=[entry.id])
