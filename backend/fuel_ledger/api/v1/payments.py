"""
Depot Payment API Routes
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from fuel_ledger.core.database import get_db, unit_of_work
from fuel_ledger.schemas import DepoPaymentCreate, MessageResponse, RecordKind, RecordResponse
from fuel_ledger.services.reversal_service import ReversalService
from fuel_ledger.services.transaction_service import TransactionRecorder

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post("", response_model=RecordResponse)
async def add_payment(payment_data: DepoPaymentCreate, db: Session = Depends(get_db)):
    """Pay a depot; the amount settles its oldest open trips first"""
    with unit_of_work(db):
        result = TransactionRecorder(db).record(RecordKind.PAYMENT_TO_DEPOT, payment_data)
    return RecordResponse.from_result("Payment added successfully", result)


@router.delete("/{payment_id}", response_model=MessageResponse)
async def delete_payment(payment_id: int, db: Session = Depends(get_db)):
    with unit_of_work(db):
        ReversalService(db).delete_payment(payment_id)
    return MessageResponse(message="Payment deleted and balances restored", id=payment_id)
