"""
Trips API Routes
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from fuel_ledger.core.database import get_db, unit_of_work
from fuel_ledger.schemas import MessageResponse, PolSaleCreate, TripCreate
from fuel_ledger.services.trip_service import TripService

router = APIRouter(prefix="/trips", tags=["Trips"])


@router.post("", response_model=MessageResponse)
async def create_trip(trip_data: TripCreate, db: Session = Depends(get_db)):
    """Create a trip with the depots it owes and the fuel it carries"""
    with unit_of_work(db):
        trip = TripService(db).create(trip_data)
    return MessageResponse(message="Trip added successfully", id=trip.id)


@router.get("/{trip_id}")
async def get_trip(trip_id: int, db: Session = Depends(get_db)):
    return TripService(db).summary(trip_id)


@router.post("/{trip_id}/sales", response_model=MessageResponse)
async def add_sale(trip_id: int, sale_data: PolSaleCreate, db: Session = Depends(get_db)):
    with unit_of_work(db):
        sale = TripService(db).add_sale(trip_id, sale_data)
    return MessageResponse(message="Sale added successfully", id=sale.id)


@router.post("/{trip_id}/cancel", response_model=MessageResponse)
async def cancel_trip(trip_id: int, db: Session = Depends(get_db)):
    with unit_of_work(db):
        TripService(db).cancel(trip_id)
    return MessageResponse(message="Trip cancelled", id=trip_id)


@router.post("/{trip_id}/check-completion")
async def check_completion(trip_id: int, db: Session = Depends(get_db)):
    """Run the completion check on demand"""
    with unit_of_work(db):
        service = TripService(db)
        service.get_or_404(trip_id)
        completed = service.monitor.maybe_complete(trip_id)
        status = service.get_by_id(trip_id).status
    return {"message": "Trip completion checked", "id": trip_id, "completed": completed, "status": status}
