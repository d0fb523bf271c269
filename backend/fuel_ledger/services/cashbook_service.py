"""
Cash Book Service
Read side of the cash in hand ledger: balances and day views.
"""
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import date, datetime, time, timedelta
from decimal import Decimal
import logging

from fuel_ledger.models import CashInHand, LedgerKind
from fuel_ledger.services.ledger_service import LedgerService, ZERO, money

logger = logging.getLogger(__name__)


class CashBookService:
    """Service for cash in hand"""

    def __init__(self, db: Session):
        self.db = db
        self.ledger = LedgerService(db)

    def get_balance(self) -> Decimal:
        return self.ledger.current_balance(LedgerKind.CASH)

    def get_entries(self, start_date: Optional[date] = None, end_date: Optional[date] = None) -> List[CashInHand]:
        start = datetime.combine(start_date, time.min) if start_date else None
        end = datetime.combine(end_date, time.min) + timedelta(days=1) if end_date else None
        return self.ledger.entries(LedgerKind.CASH, None, start, end)

    def get_day(self, day: date) -> dict:
        """
        Movements of one calendar day with its opening and closing balance.

        The opening balance is the balance before the first row of the day,
        which the day's "Opening Balance" row normally carries.
        """
        entries = self.get_entries(day, day)
        day_start = datetime.combine(day, time.min)

        if entries:
            first = entries[0]
            opening = money(first.balance) - money(first.credit) + money(first.debit)
            closing = money(entries[-1].balance)
        else:
            previous = self.ledger.entries(LedgerKind.CASH, None, None, day_start)
            opening = money(previous[-1].balance) if previous else ZERO
            closing = opening

        return {
            "day": day,
            "opening_balance": opening,
            "closing_balance": closing,
            "total_debit": sum((money(e.debit) for e in entries), ZERO),
            "total_credit": sum((money(e.credit) for e in entries), ZERO),
            "entries": entries,
        }
