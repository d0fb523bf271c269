"""
Banking API Routes
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import datetime

from fuel_ledger.core.database import get_db, unit_of_work
from fuel_ledger.schemas import (
    AccountCreate, AccountResponse, BankCreate, BankLedgerEntry, MessageResponse
)
from fuel_ledger.services.banking_service import BankAccountService, BankService

router = APIRouter(tags=["Banking"])


@router.post("/banks", response_model=MessageResponse)
async def create_bank(bank_data: BankCreate, db: Session = Depends(get_db)):
    with unit_of_work(db):
        bank = BankService(db).create(bank_data)
    return MessageResponse(message="Bank added successfully", id=bank.id)


@router.get("/accounts", response_model=List[AccountResponse])
async def list_accounts(db: Session = Depends(get_db)):
    return BankAccountService(db).get_all()


@router.post("/accounts", response_model=MessageResponse)
async def create_account(account_data: AccountCreate, db: Session = Depends(get_db)):
    """Open a bank account; the opening balance is posted to its ledger"""
    with unit_of_work(db):
        account = BankAccountService(db).create(account_data)
    return MessageResponse(message="Account added successfully", id=account.id)


@router.get("/accounts/{account_id}", response_model=AccountResponse)
async def get_account(account_id: int, db: Session = Depends(get_db)):
    return BankAccountService(db).get_or_404(account_id)


@router.get("/accounts/{account_id}/ledger", response_model=List[BankLedgerEntry])
async def get_account_ledger(
    account_id: int,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    db: Session = Depends(get_db)
):
    return BankAccountService(db).get_ledger(account_id, start_date, end_date)


@router.get("/accounts/{account_id}/reconcile")
async def reconcile_account(account_id: int, db: Session = Depends(get_db)):
    return BankAccountService(db).reconcile(account_id)
