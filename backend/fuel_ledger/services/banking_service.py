"""
Banking Service - Banks, Bank Accounts and their ledgers
"""
from typing import Optional, List
from sqlalchemy.orm import Session, joinedload
from decimal import Decimal
from datetime import datetime
import logging

from fuel_ledger.core.exceptions import NotFoundError
from fuel_ledger.models import Account, Bank, LedgerKind, Transaction
from fuel_ledger.schemas import AccountCreate, BankCreate
from fuel_ledger.services.ledger_service import LedgerService, money

logger = logging.getLogger(__name__)


class BankService:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, bank_id: int) -> Optional[Bank]:
        return self.db.query(Bank).filter(Bank.id == bank_id, Bank.active == True).first()

    def create(self, bank_data: BankCreate) -> Bank:
        bank = Bank(name=bank_data.name)
        self.db.add(bank)
        self.db.flush()
        return bank


class BankAccountService:
    def __init__(self, db: Session):
        self.db = db
        self.ledger = LedgerService(db)

    def get_by_id(self, account_id: int) -> Optional[Account]:
        return self.db.query(Account).options(
            joinedload(Account.bank)
        ).filter(
            Account.id == account_id,
            Account.active == True
        ).first()

    def get_or_404(self, account_id: int) -> Account:
        account = self.get_by_id(account_id)
        if not account:
            raise NotFoundError("Account", account_id)
        return account

    def get_all(self) -> List[Account]:
        return self.db.query(Account).filter(Account.active == True).order_by(Account.account_title).all()

    def create(self, account_data: AccountCreate) -> Account:
        """Open an account. A positive opening balance is its first ledger row."""
        if account_data.bank_id is not None and not BankService(self.db).get_by_id(account_data.bank_id):
            raise NotFoundError("Bank", account_data.bank_id)

        opening_balance = money(account_data.opening_balance)
        account = Account(
            bank_id=account_data.bank_id,
            account_title=account_data.account_title,
            account_number=account_data.account_number,
            opening_balance=opening_balance,
            balance=Decimal("0.00")
        )
        self.db.add(account)
        self.db.flush()

        if opening_balance > 0:
            self.ledger.apply_entry(
                LedgerKind.BANK, account.id,
                credit=opening_balance,
                purpose="Opening Balance",
                payment_mode="Opening"
            )

        logger.info(f"Opened account {account.account_title} (id={account.id}) with {opening_balance}")
        return account

    def get_ledger(
        self,
        account_id: int,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None
    ) -> List[Transaction]:
        self.get_or_404(account_id)
        return self.ledger.entries(LedgerKind.BANK, account_id, start_date, end_date)

    def reconcile(self, account_id: int) -> dict:
        """Compare the cached balance with a full replay of the account's ledger"""
        account = self.get_or_404(account_id)
        drift = self.ledger.find_drift(LedgerKind.BANK, account_id)
        ledger_balance = self.ledger.current_balance(LedgerKind.BANK, account_id)
        return {
            "account_id": account.id,
            "balance": money(account.balance),
            "ledger_balance": ledger_balance,
            "is_reconciled": not drift and money(account.balance) == ledger_balance,
            "drifted_entries": [entry_id for entry_id, _, _ in drift],
        }
