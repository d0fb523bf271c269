"""
Vehicle Rent API Routes
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from fuel_ledger.core.database import get_db, unit_of_work
from fuel_ledger.schemas import MessageResponse, RecordKind, RecordResponse, VehicleRentCreate
from fuel_ledger.services.reversal_service import ReversalService
from fuel_ledger.services.transaction_service import TransactionRecorder

router = APIRouter(prefix="/vehicle-rent", tags=["Vehicle Rent"])


@router.post("", response_model=RecordResponse)
async def add_vehicle_rent(rent_data: VehicleRentCreate, db: Session = Depends(get_db)):
    with unit_of_work(db):
        result = TransactionRecorder(db).record(RecordKind.VEHICLE_RENT, rent_data)
    return RecordResponse.from_result("Vehicle rent added successfully", result)


@router.delete("/{rent_id}", response_model=MessageResponse)
async def delete_vehicle_rent(rent_id: int, db: Session = Depends(get_db)):
    with unit_of_work(db):
        ReversalService(db).delete_vehicle_rent(rent_id)
    return MessageResponse(message="Vehicle rent deleted and transactions reversed successfully", id=rent_id)
