from typing import Optional
from sqlalchemy.orm import Session
from sqlalchemy import func

from fuel_ledger.core.exceptions import NotFoundError
from fuel_ledger.models import Customer, Trip, TripStatus
from fuel_ledger.schemas import CustomerCreate
from fuel_ledger.services.ledger_service import money


class CustomerService:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, customer_id: int) -> Optional[Customer]:
        return self.db.query(Customer).filter(
            Customer.id == customer_id,
            Customer.active == True
        ).first()

    def create(self, customer_data: CustomerCreate) -> Customer:
        customer = Customer(
            name=customer_data.name,
            phone_no=customer_data.phone_no,
            previous_dues=money(customer_data.previous_dues)
        )
        self.db.add(customer)
        self.db.flush()
        return customer

    def get_balance(self, customer_id: int) -> dict:
        """What the customer still owes: carried-over dues plus open trips"""
        customer = self.get_by_id(customer_id)
        if not customer:
            raise NotFoundError("Customer", customer_id)

        billed, collected = self.db.query(
            func.coalesce(func.sum(Trip.total_amount), 0),
            func.coalesce(func.sum(Trip.amount_collected), 0)
        ).filter(
            Trip.customer_id == customer_id,
            Trip.active == True,
            Trip.status != TripStatus.CANCELLED.value
        ).one()

        outstanding = money(billed) - money(collected)
        return {
            "customer_id": customer.id,
            "previous_dues": money(customer.previous_dues),
            "total_billed": money(billed),
            "total_collected": money(collected),
            "balance_due": money(customer.previous_dues) + outstanding,
        }
