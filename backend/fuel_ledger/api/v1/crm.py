"""
Customer API Routes
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from fuel_ledger.core.database import get_db, unit_of_work
from fuel_ledger.schemas import CustomerCreate, MessageResponse
from fuel_ledger.services.crm_service import CustomerService

router = APIRouter(prefix="/customers", tags=["Customers"])


@router.post("", response_model=MessageResponse)
async def create_customer(customer_data: CustomerCreate, db: Session = Depends(get_db)):
    with unit_of_work(db):
        customer = CustomerService(db).create(customer_data)
    return MessageResponse(message="Customer added successfully", id=customer.id)


@router.get("/{customer_id}/balance")
async def get_customer_balance(customer_id: int, db: Session = Depends(get_db)):
    return CustomerService(db).get_balance(customer_id)
