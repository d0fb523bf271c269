"""
Ledger Service
Running balances for the three parallel ledgers: bank accounts, cash in hand
and the per-depot pool.

Each ledger is an ordered list of active rows for one owner. A row's stored
balance is the balance after that row, folding the rows in
(occurred_at, id) order with the sign strategy of its ledger kind:

    BANK, CASH   balance = previous - debit + credit
    POOL         balance = previous + debit - credit
"""
from sqlalchemy import and_, or_
from sqlalchemy.exc import OperationalError, ProgrammingError
from sqlalchemy.orm import Session
from typing import Callable, Dict, Iterable, List, Optional, Tuple
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal, ROUND_HALF_UP
import logging

from fuel_ledger.core.config import settings
from fuel_ledger.core.exceptions import NotFoundError, ValidationError, is_schema_mismatch
from fuel_ledger.models import Account, CashInHand, Depo, LedgerKind, Pool, Transaction
from fuel_ledger.schemas import naive_utc

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")
CENT = Decimal("0.01")


def money(value) -> Decimal:
    """Coerce a number to a two-place Decimal"""
    if value is None:
        return ZERO
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


# ==================== SIGN STRATEGIES ====================

def credit_increases(debit: Decimal, credit: Decimal) -> Decimal:
    return money(credit) - money(debit)


def debit_increases(debit: Decimal, credit: Decimal) -> Decimal:
    return money(debit) - money(credit)


@dataclass(frozen=True)
class LedgerDescriptor:
    """Where a ledger kind lives and how its rows fold into a balance"""
    kind: LedgerKind
    model: type
    owner_column: Optional[str]
    balance_column: str
    occurred_column: str
    delta: Callable[[Decimal, Decimal], Decimal]

    def column(self, name):
        return getattr(self.model, name)

    @property
    def occurred(self):
        return self.column(self.occurred_column)

    def balance_of(self, entry) -> Decimal:
        return money(getattr(entry, self.balance_column))

    def occurred_of(self, entry) -> datetime:
        return getattr(entry, self.occurred_column)


LEDGERS: Dict[LedgerKind, LedgerDescriptor] = {
    LedgerKind.BANK: LedgerDescriptor(
        LedgerKind.BANK, Transaction, "account_id", "balance", "date", credit_increases
    ),
    LedgerKind.CASH: LedgerDescriptor(
        LedgerKind.CASH, CashInHand, None, "balance", "occurred_at", credit_increases
    ),
    LedgerKind.POOL: LedgerDescriptor(
        LedgerKind.POOL, Pool, "depo_id", "depo_limit", "occurred_at", debit_increases
    ),
}


def parse_kind(kind) -> LedgerKind:
    if isinstance(kind, LedgerKind):
        return kind
    try:
        return LedgerKind(str(kind).upper())
    except ValueError:
        raise ValidationError(f"Unknown ledger kind '{kind}'. Use one of BANK, CASH, POOL")


class LedgerService:
    """Append, rebuild and read running-balance ledgers"""

    def __init__(self, db: Session):
        self.db = db

    # ---------- queries ----------

    def _active(self, ledger: LedgerDescriptor, owner_id: Optional[int]):
        query = self.db.query(ledger.model).filter(ledger.column("active") == True)
        if ledger.owner_column is not None:
            query = query.filter(ledger.column(ledger.owner_column) == owner_id)
        return query

    def _ascending(self, query, ledger: LedgerDescriptor):
        return query.order_by(ledger.occurred.asc(), ledger.model.id.asc())

    def _descending(self, query, ledger: LedgerDescriptor):
        return query.order_by(ledger.occurred.desc(), ledger.model.id.desc())

    def _before(self, ledger: LedgerDescriptor, entry):
        """Rows strictly earlier than `entry` in ledger order"""
        occurred = ledger.occurred_of(entry)
        return or_(
            ledger.occurred < occurred,
            and_(ledger.occurred == occurred, ledger.model.id < entry.id)
        )

    def latest_entry(self, kind, owner_id: Optional[int] = None, lock: bool = False):
        """Most recent active row by (occurred_at DESC, id DESC)"""
        ledger = LEDGERS[parse_kind(kind)]
        query = self._descending(self._active(ledger, owner_id), ledger)
        if lock:
            query = query.with_for_update()
        return query.first()

    def current_balance(self, kind, owner_id: Optional[int] = None, lock: bool = False) -> Decimal:
        ledger = LEDGERS[parse_kind(kind)]
        latest = self.latest_entry(ledger.kind, owner_id, lock=lock)
        return ledger.balance_of(latest) if latest is not None else ZERO

    def entries(
        self,
        kind,
        owner_id: Optional[int] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> List:
        """Active rows in ledger order. A store without the ledger table reads as empty."""
        ledger = LEDGERS[parse_kind(kind)]
        query = self._active(ledger, owner_id)
        if start is not None:
            query = query.filter(ledger.occurred >= start)
        if end is not None:
            query = query.filter(ledger.occurred < end)
        try:
            return self._ascending(query, ledger).all()
        except (OperationalError, ProgrammingError) as e:
            if not is_schema_mismatch(e):
                raise
            logger.warning(f"{ledger.kind.value} ledger unreadable, returning no rows: {e.orig}")
            self.db.rollback()
            return []

    # ---------- writes ----------

    def _check_amounts(self, debit: Decimal, credit: Decimal, allow_zero: bool):
        if debit < 0 or credit < 0:
            raise ValidationError("Debit and credit must not be negative")
        if debit > 0 and credit > 0:
            raise ValidationError("A ledger entry carries either a debit or a credit, not both")
        if debit == 0 and credit == 0 and not allow_zero:
            raise ValidationError("A ledger entry must move the balance")

    def apply_entry(
        self,
        kind,
        owner_id: Optional[int] = None,
        debit=ZERO,
        credit=ZERO,
        occurred_at: Optional[datetime] = None,
        allow_zero: bool = False,
        **fields
    ):
        """
        Append a row to an owner's ledger.

        The balance is carried from the latest active row. A row dated before
        that latest row cannot be appended in place, so the whole ledger is
        rebuilt after it is inserted.
        """
        ledger = LEDGERS[parse_kind(kind)]
        debit, credit = money(debit), money(credit)
        self._check_amounts(debit, credit, allow_zero)
        occurred_at = naive_utc(occurred_at) or datetime.utcnow()

        latest = self.latest_entry(ledger.kind, owner_id, lock=True)

        entry = ledger.model(**fields)
        if ledger.owner_column is not None:
            setattr(entry, ledger.owner_column, owner_id)
        entry.debit = debit
        entry.credit = credit
        setattr(entry, ledger.occurred_column, occurred_at)

        previous = ledger.balance_of(latest) if latest is not None else ZERO
        setattr(entry, ledger.balance_column, previous + ledger.delta(debit, credit))
        self.db.add(entry)
        self.db.flush()

        if latest is not None and occurred_at < ledger.occurred_of(latest):
            logger.info(
                f"Backdated {ledger.kind.value} entry {entry.id} for owner {owner_id}, rebuilding ledger"
            )
            self.recalculate(ledger.kind, owner_id)
        else:
            self._refresh_projection(ledger.kind, owner_id, ledger.balance_of(entry))

        return entry

    def recalculate(self, kind, owner_id: Optional[int] = None, start_id: Optional[int] = None) -> Decimal:
        """
        Rewrite every running balance of an owner's ledger from its active history.

        With `start_id` the walk begins at that row (which may itself be
        inactive), carrying the balance of the active row right before it.
        Returns the final balance.
        """
        ledger = LEDGERS[parse_kind(kind)]
        query = self._active(ledger, owner_id)
        running = ZERO

        if start_id is not None:
            start = self.db.query(ledger.model).filter(ledger.model.id == start_id).first()
            if start is None:
                raise NotFoundError(f"{ledger.kind.value} ledger entry", start_id)
            previous = self._descending(
                self._active(ledger, owner_id).filter(self._before(ledger, start)), ledger
            ).first()
            if previous is not None:
                running = ledger.balance_of(previous)
            query = query.filter(~self._before(ledger, start))

        rows = self._ascending(query, ledger).with_for_update().all()
        for row in rows:
            running += ledger.delta(row.debit, row.credit)
            if ledger.balance_of(row) != running:
                setattr(row, ledger.balance_column, running)

        self.db.flush()
        self._refresh_projection(ledger.kind, owner_id, running)
        logger.info(
            f"Recalculated {ledger.kind.value} ledger for owner {owner_id}: "
            f"{len(rows)} rows, balance {running}"
        )
        return running

    def remove_pool_rows(self, rows: Iterable[Pool]):
        """Deactivate pool rows and walk each depot's pool forward from its earliest removed row"""
        earliest = {}
        for row in rows:
            row.active = False
            current = earliest.get(row.depo_id)
            if current is None or (row.occurred_at, row.id) < (current.occurred_at, current.id):
                earliest[row.depo_id] = row
        self.db.flush()

        for depo_id, row in earliest.items():
            self.recalculate(LedgerKind.POOL, depo_id, start_id=row.id)

    def _refresh_projection(self, kind: LedgerKind, owner_id: Optional[int], balance: Decimal):
        """Copy the latest running balance onto the owner's cached balance column"""
        if kind == LedgerKind.BANK:
            owner = self.db.query(Account).filter(Account.id == owner_id).first()
        elif kind == LedgerKind.POOL:
            owner = self.db.query(Depo).filter(Depo.id == owner_id).first()
        else:
            return
        if owner is not None and money(owner.balance) != balance:
            owner.balance = balance
            self.db.flush()

    def ensure_day_boundary(self, day: Optional[date] = None) -> Optional[CashInHand]:
        """
        Make sure the cash ledger has a row on `day`.

        The first cash movement of a day is preceded by a zero-delta
        "Opening Balance" row at 00:00:00 carrying forward the last balance.
        Returns the inserted row, or None when the day already had one.
        """
        day = day or datetime.utcnow().date()
        ledger = LEDGERS[LedgerKind.CASH]
        day_start = datetime.combine(day, time.min)
        day_end = day_start + timedelta(days=1)

        existing = self._active(ledger, None).filter(
            CashInHand.occurred_at >= day_start,
            CashInHand.occurred_at < day_end
        ).first()
        if existing is not None:
            return None

        previous = self._descending(
            self._active(ledger, None).filter(CashInHand.occurred_at < day_start), ledger
        ).with_for_update().first()
        carried = ledger.balance_of(previous) if previous is not None else ZERO

        opening = CashInHand(
            debit=ZERO,
            credit=ZERO,
            balance=carried,
            purpose=settings.OPENING_BALANCE_PURPOSE,
            occurred_at=day_start
        )
        self.db.add(opening)
        self.db.flush()
        logger.info(f"Opened cash day {day.isoformat()} with balance {carried}")
        return opening

    def find_drift(self, kind, owner_id: Optional[int] = None) -> List[Tuple[int, Decimal, Decimal]]:
        """(id, stored, expected) for every row whose stored balance disagrees with a replay"""
        ledger = LEDGERS[parse_kind(kind)]
        running = ZERO
        drift = []
        for row in self._ascending(self._active(ledger, owner_id), ledger).all():
            running += ledger.delta(row.debit, row.credit)
            if ledger.balance_of(row) != running:
                drift.append((row.id, ledger.balance_of(row), running))
        return drift
