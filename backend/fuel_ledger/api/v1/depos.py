"""
Depos API Routes
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List

from fuel_ledger.core.database import get_db, unit_of_work
from fuel_ledger.schemas import (
    DepoCreate, DepoResponse, MessageResponse, PoolAdjustmentCreate, PoolEntry
)
from fuel_ledger.services.depo_service import DepoService
from fuel_ledger.services.reversal_service import ReversalService

router = APIRouter(prefix="/depos", tags=["Depos"])


@router.post("", response_model=MessageResponse)
async def add_depo(depo_data: DepoCreate, db: Session = Depends(get_db)):
    with unit_of_work(db):
        depo = DepoService(db).create(depo_data)
    return MessageResponse(message="Depo added successfully", id=depo.id)


@router.get("/{depo_id}", response_model=DepoResponse)
async def get_depo(depo_id: int, db: Session = Depends(get_db)):
    return DepoService(db).get_or_404(depo_id)


@router.get("/{depo_id}/pool", response_model=List[PoolEntry])
async def get_depo_pool(depo_id: int, db: Session = Depends(get_db)):
    """Pool history of a depot, oldest first"""
    return DepoService(db).get_pool(depo_id)


@router.post("/{depo_id}/pool", response_model=MessageResponse)
async def add_pool(depo_id: int, pool_data: PoolAdjustmentCreate, db: Session = Depends(get_db)):
    """Manual pool entry: debit to put money with the depot, credit to draw on it"""
    with unit_of_work(db):
        entry = DepoService(db).adjust_pool(depo_id, pool_data)
    return MessageResponse(message="Pool added successfully", id=entry.id)


@router.delete("/pool/{pool_id}", response_model=MessageResponse)
async def delete_pool(pool_id: int, db: Session = Depends(get_db)):
    with unit_of_work(db):
        ReversalService(db).delete_pool_adjustment(pool_id)
    return MessageResponse(message="Pool deleted successfully", id=pool_id)
