"""
Trip Services
Trips, their depot obligations and fuel, and the monitor that closes them.
"""
from sqlalchemy import func
from sqlalchemy.orm import Session
from typing import Optional
from datetime import datetime
import logging

from fuel_ledger.core.exceptions import ConflictError, NotFoundError, ValidationError
from fuel_ledger.models import (
    Customer, Depo, LedgerKind, PolSale, Pool, Trip, TripDepo, TripProduct, TripStatus
)
from fuel_ledger.schemas import PolSaleCreate, TripCreate
from fuel_ledger.services.audit_service import AuditAction, AuditService
from fuel_ledger.services.ledger_service import LedgerService, ZERO, money

logger = logging.getLogger(__name__)


class TripCompletionMonitor:
    """Closes a trip once every depot is paid and all its fuel is sold"""

    def __init__(self, db: Session):
        self.db = db

    def is_fully_paid(self, trip_id: int) -> bool:
        total_count = self.db.query(func.count(TripDepo.id)).filter(
            TripDepo.trip_id == trip_id,
            TripDepo.active == True
        ).scalar()
        unpaid_count = self.db.query(func.count(TripDepo.id)).filter(
            TripDepo.trip_id == trip_id,
            TripDepo.active == True,
            TripDepo.paid_amount < TripDepo.payable_amount
        ).scalar()
        return total_count > 0 and unpaid_count == 0

    def is_fuel_settled(self, trip_id: int) -> bool:
        total_fuel = money(self.db.query(func.coalesce(func.sum(TripProduct.quantity_ltr), 0)).filter(
            TripProduct.trip_id == trip_id,
            TripProduct.active == True
        ).scalar())
        sold_fuel = money(self.db.query(func.coalesce(func.sum(PolSale.fuel), 0)).filter(
            PolSale.trip_id == trip_id,
            PolSale.active == True
        ).scalar())
        return total_fuel == ZERO or sold_fuel >= total_fuel

    def maybe_complete(self, trip_id: int) -> bool:
        """
        Mark the trip Completed when it is settled. Returns True on transition.

        Best effort: failures are logged and never propagate to the caller's
        unit of work, which is protected by a savepoint.
        """
        try:
            with self.db.begin_nested():
                return self._complete_if_settled(trip_id)
        except Exception as e:
            logger.error(f"Trip completion check failed for trip {trip_id}: {e}", exc_info=True)
            return False

    def _complete_if_settled(self, trip_id: int) -> bool:
        trip = self.db.query(Trip).filter(Trip.id == trip_id, Trip.active == True).first()
        if trip is None:
            return False
        if trip.status in (TripStatus.COMPLETED.value, TripStatus.CANCELLED.value):
            return False
        if not (self.is_fully_paid(trip_id) and self.is_fuel_settled(trip_id)):
            return False

        trip.status = TripStatus.COMPLETED.value
        trip.completed_at = datetime.utcnow()
        self.db.flush()
        logger.info(f"Trip {trip.trip_no} (id={trip.id}) completed")
        return True

    def reopen_if_unsettled(self, trip_id: int) -> bool:
        """A reversal that un-pays a completed trip puts it back to Open"""
        trip = self.db.query(Trip).filter(Trip.id == trip_id).first()
        if trip is None or trip.status != TripStatus.COMPLETED.value:
            return False
        if self.is_fully_paid(trip_id):
            return False
        trip.status = TripStatus.OPEN.value
        trip.completed_at = None
        self.db.flush()
        logger.info(f"Trip {trip.trip_no} (id={trip.id}) reopened after reversal")
        return True


class TripService:
    """Service for trips and what they owe"""

    def __init__(self, db: Session):
        self.db = db
        self.ledger = LedgerService(db)
        self.monitor = TripCompletionMonitor(db)
        self.audit = AuditService(db)

    def get_by_id(self, trip_id: int) -> Optional[Trip]:
        return self.db.query(Trip).filter(Trip.id == trip_id, Trip.active == True).first()

    def get_or_404(self, trip_id: int) -> Trip:
        trip = self.get_by_id(trip_id)
        if not trip:
            raise NotFoundError("Trip", trip_id)
        return trip

    def create(self, data: TripCreate) -> Trip:
        """
        Create a trip with its depot obligations and fuel.

        Fuel taken on credit is charged to each depot's pool unless
        `charge_pool` is off (e.g. when importing trips already in the pool).
        """
        if data.customer_id is not None:
            customer = self.db.query(Customer).filter(
                Customer.id == data.customer_id, Customer.active == True
            ).first()
            if not customer:
                raise NotFoundError("Customer", data.customer_id)

        trip = Trip(
            trip_no=data.trip_no,
            customer_id=data.customer_id,
            vehicle_id=data.vehicle_id,
            start_date=data.start_date,
            total_amount=money(data.total_amount),
            status=TripStatus.OPEN.value
        )
        self.db.add(trip)
        self.db.flush()

        for line in data.depos:
            depo = self.db.query(Depo).filter(Depo.id == line.depo_id, Depo.active == True).first()
            if not depo:
                raise NotFoundError("Depo", line.depo_id)
            self.db.add(TripDepo(
                trip_id=trip.id,
                depo_id=depo.id,
                payable_amount=money(line.payable_amount),
                paid_amount=ZERO
            ))
            if data.charge_pool and line.payable_amount > 0:
                self.ledger.apply_entry(
                    LedgerKind.POOL, depo.id,
                    credit=line.payable_amount,
                    trip_id=trip.id,
                    reason=f"Fuel on credit - {trip.trip_no}"
                )

        for product in data.products:
            self.db.add(TripProduct(
                trip_id=trip.id,
                fuel_type=product.fuel_type,
                quantity_ltr=money(product.quantity_ltr)
            ))

        self.db.flush()
        logger.info(f"Created trip {trip.trip_no} (id={trip.id}) with {len(data.depos)} depos")
        return trip

    def add_sale(self, trip_id: int, data: PolSaleCreate) -> PolSale:
        """Record fuel sold out of a trip; may close the trip"""
        trip = self.get_or_404(trip_id)
        if trip.status == TripStatus.CANCELLED.value:
            raise ValidationError(f"Trip {trip.trip_no} is cancelled")

        sale = PolSale(trip_id=trip.id, fuel=money(data.fuel), sale_date=data.sale_date)
        self.db.add(sale)
        self.db.flush()

        self.monitor.maybe_complete(trip.id)
        return sale

    def cancel(self, trip_id: int) -> Trip:
        """
        Cancel a trip nothing has been paid against, taking its fuel-on-credit
        charges back out of the depot pools.
        """
        trip = self.get_or_404(trip_id)
        if trip.status == TripStatus.COMPLETED.value:
            raise ValidationError(f"Trip {trip.trip_no} is already completed")
        if trip.status == TripStatus.CANCELLED.value:
            raise ConflictError(f"Trip {trip.trip_no} is already cancelled")
        if any(d.active and money(d.paid_amount) > 0 for d in trip.depos):
            raise ConflictError(f"Trip {trip.trip_no} has depot payments. Delete them before cancelling")
        if money(trip.amount_collected) > 0:
            raise ConflictError(f"Trip {trip.trip_no} has recoveries. Delete them before cancelling")

        charges = self.db.query(Pool).filter(
            Pool.trip_id == trip.id,
            Pool.active == True,
            Pool.payment_id.is_(None),
            Pool.recovery_id.is_(None)
        ).all()
        trip.status = TripStatus.CANCELLED.value
        self.db.flush()
        self.ledger.remove_pool_rows(charges)

        self.audit.log(
            AuditAction.TRIP_CANCELLED, "Trip", trip.id,
            f"Cancelled trip {trip.trip_no}", {"pool_rows_removed": [row.id for row in charges]}
        )
        logger.info(f"Cancelled trip {trip.trip_no} (id={trip.id}), removed {len(charges)} pool charges")
        return trip

    def summary(self, trip_id: int) -> dict:
        trip = self.get_or_404(trip_id)
        depos = [d for d in trip.depos if d.active]
        return {
            "id": trip.id,
            "trip_no": trip.trip_no,
            "status": trip.status,
            "start_date": trip.start_date.isoformat(),
            "customer_id": trip.customer_id,
            "total_amount": money(trip.total_amount),
            "amount_collected": money(trip.amount_collected),
            "paid": money(trip.paid),
            "completed_at": trip.completed_at.isoformat() if trip.completed_at else None,
            "depos": [
                {
                    "id": d.id,
                    "depo_id": d.depo_id,
                    "payable_amount": money(d.payable_amount),
                    "paid_amount": money(d.paid_amount),
                    "remaining": money(d.payable_amount) - money(d.paid_amount),
                }
                for d in depos
            ],
        }
