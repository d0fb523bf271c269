"""
Cash in Hand API Routes
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import date

from fuel_ledger.core.database import get_db, unit_of_work
from fuel_ledger.schemas import (
    CashDayView, CashInHandEntry, CashReceiptCreate, CashTransferCreate, MessageResponse,
    RecordResponse
)
from fuel_ledger.services.cashbook_service import CashBookService
from fuel_ledger.services.reversal_service import ReversalService
from fuel_ledger.services.transaction_service import TransactionRecorder

router = APIRouter(prefix="/cash-in-hand", tags=["Cash in Hand"])


@router.get("", response_model=List[CashInHandEntry])
async def list_cash_in_hand(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    db: Session = Depends(get_db)
):
    """Active cash in hand rows in ledger order"""
    return CashBookService(db).get_entries(start_date, end_date)


@router.post("", response_model=RecordResponse)
async def add_cash_in_hand(receipt_data: CashReceiptCreate, db: Session = Depends(get_db)):
    """Record cash received into hand"""
    with unit_of_work(db):
        result = TransactionRecorder(db).receive_cash(receipt_data)
    return RecordResponse.from_result("Cash in hand added successfully", result)


@router.delete("/{entry_id}", response_model=MessageResponse)
async def delete_cash_in_hand(entry_id: int, db: Session = Depends(get_db)):
    with unit_of_work(db):
        ReversalService(db).delete_cash_receipt(entry_id)
    return MessageResponse(message="Cash in hand record deleted successfully", id=entry_id)


@router.get("/balance")
async def get_cash_balance(db: Session = Depends(get_db)):
    return {"balance": CashBookService(db).get_balance()}


@router.get("/day/{day}", response_model=CashDayView)
async def get_cash_day(day: date, db: Session = Depends(get_db)):
    """One day of cash movements with its opening and closing balance"""
    return CashBookService(db).get_day(day)


@router.post("/transfers", response_model=RecordResponse)
async def transfer_to_bank(transfer_data: CashTransferCreate, db: Session = Depends(get_db)):
    """Deposit cash in hand into a bank account"""
    with unit_of_work(db):
        result = TransactionRecorder(db).transfer_to_bank(transfer_data)
    return RecordResponse.from_result("Cash transferred to bank successfully", result)


@router.delete("/transfers/{transfer_id}", response_model=MessageResponse)
async def delete_transfer(transfer_id: int, db: Session = Depends(get_db)):
    with unit_of_work(db):
        ReversalService(db).delete_cash_transfer(transfer_id)
    return MessageResponse(message="Cash transfer deleted successfully", id=transfer_id)
