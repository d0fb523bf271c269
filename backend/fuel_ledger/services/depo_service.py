"""
Depo Service - Depots and their pool ledger
"""
from typing import Optional, List
from sqlalchemy import func
from sqlalchemy.orm import Session
from decimal import Decimal
import logging

from fuel_ledger.core.exceptions import ConflictError, NotFoundError
from fuel_ledger.models import Depo, LedgerKind, Pool
from fuel_ledger.schemas import DepoCreate, PoolAdjustmentCreate
from fuel_ledger.services.audit_service import AuditAction, AuditService
from fuel_ledger.services.ledger_service import LedgerService, money

logger = logging.getLogger(__name__)


class DepoService:
    def __init__(self, db: Session):
        self.db = db
        self.ledger = LedgerService(db)
        self.audit = AuditService(db)

    def get_by_id(self, depo_id: int) -> Optional[Depo]:
        return self.db.query(Depo).filter(Depo.id == depo_id, Depo.active == True).first()

    def get_or_404(self, depo_id: int) -> Depo:
        depo = self.get_by_id(depo_id)
        if not depo:
            raise NotFoundError("Depo", depo_id)
        return depo

    def create(self, depo_data: DepoCreate) -> Depo:
        """
        Register a depot. A non-zero starting balance becomes the seed row of
        its pool: a debit when the depot holds our money, a credit when we owe it.
        """
        name = depo_data.name.strip()
        duplicate = self.db.query(Depo).filter(
            func.lower(func.trim(Depo.name)) == name.lower(),
            Depo.active == True
        ).first()
        if duplicate:
            raise ConflictError(
                f'A dealer with the name "{name}" already exists. Please use a different name.'
            )

        depo = Depo(
            name=name,
            phone_no=depo_data.phone_no,
            address=depo_data.address,
            balance=Decimal("0.00")
        )
        self.db.add(depo)
        self.db.flush()

        seed = money(depo_data.balance)
        if seed != 0:
            self.ledger.apply_entry(
                LedgerKind.POOL, depo.id,
                debit=seed if seed > 0 else 0,
                credit=-seed if seed < 0 else 0,
                reason="Opening Balance"
            )

        logger.info(f"Added depo {depo.name} (id={depo.id}) with pool seed {seed}")
        return depo

    def get_pool(self, depo_id: int) -> List[Pool]:
        self.get_or_404(depo_id)
        return self.ledger.entries(LedgerKind.POOL, depo_id)

    def adjust_pool(self, depo_id: int, data: PoolAdjustmentCreate) -> Pool:
        """
        Manual pool row: a debit puts money with the depot, a credit draws on it.
        Exactly one of the two must be set.
        """
        depo = self.get_or_404(depo_id)
        entry = self.ledger.apply_entry(
            LedgerKind.POOL, depo.id,
            debit=data.debit, credit=data.credit,
            reason=data.reason or "Manual adjustment"
        )
        self.audit.log(
            AuditAction.POOL_ADJUSTED, "Pool", entry.id,
            f"{depo.name} pool adjusted debit={entry.debit} credit={entry.credit}", {"depo_id": depo.id}
        )
        logger.info(f"Adjusted pool of depo {depo.id}: balance {entry.depo_limit}")
        return entry
