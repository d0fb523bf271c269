"""
Vehicle Expenses API Routes
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from fuel_ledger.core.database import get_db, unit_of_work
from fuel_ledger.schemas import MessageResponse, RecordKind, RecordResponse, VehicleExpenseCreate
from fuel_ledger.services.reversal_service import ReversalService
from fuel_ledger.services.transaction_service import TransactionRecorder

router = APIRouter(prefix="/vehicle-expenses", tags=["Vehicle Expenses"])


@router.post("", response_model=RecordResponse)
async def add_vehicle_expense(expense_data: VehicleExpenseCreate, db: Session = Depends(get_db)):
    with unit_of_work(db):
        result = TransactionRecorder(db).record(RecordKind.VEHICLE_EXPENSE, expense_data)
    return RecordResponse.from_result("Vehicle expense added successfully", result)


@router.delete("/{expense_id}", response_model=MessageResponse)
async def delete_vehicle_expense(expense_id: int, db: Session = Depends(get_db)):
    with unit_of_work(db):
        ReversalService(db).delete_vehicle_expense(expense_id)
    return MessageResponse(message="Vehicle expense deleted successfully", id=expense_id)
