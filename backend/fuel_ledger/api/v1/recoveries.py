"""
Recoveries API Routes
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from fuel_ledger.core.database import get_db, unit_of_work
from fuel_ledger.schemas import MessageResponse, RecordKind, RecordResponse, RecoveryCreate
from fuel_ledger.services.reversal_service import ReversalService
from fuel_ledger.services.transaction_service import TransactionRecorder

router = APIRouter(prefix="/recoveries", tags=["Recoveries"])


@router.post("", response_model=RecordResponse)
async def add_recovery(recovery_data: RecoveryCreate, db: Session = Depends(get_db)):
    """Record money recovered from a customer into a bank account, cash in hand or a depo"""
    with unit_of_work(db):
        result = TransactionRecorder(db).record(RecordKind.RECOVERY_FROM_CLIENT, recovery_data)
    return RecordResponse.from_result("Recovery added successfully", result)


@router.delete("/{recovery_id}", response_model=MessageResponse)
async def delete_recovery(recovery_id: int, db: Session = Depends(get_db)):
    with unit_of_work(db):
        ReversalService(db).delete_recovery(recovery_id)
    return MessageResponse(message="Recovery deleted successfully", id=recovery_id)
