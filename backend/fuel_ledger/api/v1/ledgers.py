"""
Ledger maintenance API Routes
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from fuel_ledger.core.config import settings
from fuel_ledger.core.database import get_db, unit_of_work
from fuel_ledger.models import LedgerKind
from fuel_ledger.schemas import MessageResponse, RecalculateResponse
from fuel_ledger.services.audit_service import AuditAction, AuditService
from fuel_ledger.services.ledger_service import LedgerService, parse_kind
from fuel_ledger.services.reversal_service import ReversalService

router = APIRouter(tags=["Ledgers"])


def _owner(kind: LedgerKind, owner_id: int):
    # The cash ledger has a single owner
    return None if kind == LedgerKind.CASH else owner_id


@router.delete("/transactions/{transaction_id}", response_model=MessageResponse)
async def reverse_transaction(transaction_id: int, db: Session = Depends(get_db)):
    """Reverse a transaction together with the record that created it"""
    with unit_of_work(db):
        ReversalService(db).reverse_transaction(transaction_id)
    return MessageResponse(message="Transaction reversed successfully", id=transaction_id)


@router.post("/ledgers/{kind}/{owner_id}/recalculate", response_model=RecalculateResponse)
async def recalculate_ledger(kind: str, owner_id: int, db: Session = Depends(get_db)):
    """Rebuild every running balance of one ledger from its active history"""
    ledger_kind = parse_kind(kind)
    with unit_of_work(db):
        balance = LedgerService(db).recalculate(ledger_kind, _owner(ledger_kind, owner_id))
        AuditService(db).log(
            AuditAction.LEDGER_RECALCULATED, f"{ledger_kind.value}Ledger", owner_id,
            f"Rebuilt to {balance}"
        )
    return RecalculateResponse(
        message="Ledger recalculated successfully",
        ledger_kind=ledger_kind.value,
        owner_id=owner_id,
        balance=balance
    )


@router.get("/ledgers/{kind}/{owner_id}/drift")
async def ledger_drift(kind: str, owner_id: int, db: Session = Depends(get_db)):
    """Rows whose stored balance disagrees with a replay of the ledger"""
    ledger_kind = parse_kind(kind)
    drift = LedgerService(db).find_drift(ledger_kind, _owner(ledger_kind, owner_id))
    return {
        "ledger_kind": ledger_kind.value,
        "owner_id": owner_id if ledger_kind != LedgerKind.CASH else settings.CASH_LEDGER_OWNER_ID,
        "consistent": not drift,
        "entries": [
            {"id": entry_id, "stored": stored, "expected": expected}
            for entry_id, stored, expected in drift
        ],
    }
