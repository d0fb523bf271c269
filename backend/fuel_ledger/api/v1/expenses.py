"""
Expenses API Routes
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from datetime import date

from fuel_ledger.core.database import get_db, unit_of_work
from fuel_ledger.schemas import (
    ExpenseCategoryCreate, ExpenseCreate, MessageResponse, RecordKind, RecordResponse
)
from fuel_ledger.services.expense_service import ExpenseService
from fuel_ledger.services.reversal_service import ReversalService
from fuel_ledger.services.transaction_service import TransactionRecorder

router = APIRouter(prefix="/expenses", tags=["Expenses"])


@router.get("")
async def list_expenses(
    start_date: date = None,
    end_date: date = None,
    db: Session = Depends(get_db)
):
    """List active expenses"""
    expenses = ExpenseService(db).get_all(start_date, end_date)
    return [
        {
            'id': exp.id,
            'category_id': exp.category_id,
            'category': exp.category.name if exp.category else None,
            'amount': float(exp.amount),
            'expense_date': exp.expense_date.isoformat(),
            'account_head': exp.account_head,
            'account_id': exp.account_id,
            'payment_mode': exp.payment_mode,
            'reference_no': exp.reference_no,
            'description': exp.description,
            'transaction_id': exp.transaction_id,
        }
        for exp in expenses
    ]


@router.get("/categories")
async def list_categories(db: Session = Depends(get_db)):
    return [{"id": c.id, "name": c.name} for c in ExpenseService(db).get_categories()]


@router.post("/categories", response_model=MessageResponse)
async def create_category(data: ExpenseCategoryCreate, db: Session = Depends(get_db)):
    with unit_of_work(db):
        category = ExpenseService(db).create_category(data)
    return MessageResponse(message="Expense category added successfully", id=category.id)


@router.post("", response_model=RecordResponse)
async def add_expense(expense_data: ExpenseCreate, db: Session = Depends(get_db)):
    """Record an expense paid from cash in hand or a bank account"""
    with unit_of_work(db):
        result = TransactionRecorder(db).record(RecordKind.EXPENSE, expense_data)
    return RecordResponse.from_result("Expense added successfully", result)


@router.delete("/{expense_id}", response_model=MessageResponse)
async def delete_expense(expense_id: int, db: Session = Depends(get_db)):
    """Soft-delete an expense and give the money back to its source"""
    with unit_of_work(db):
        ReversalService(db).delete_expense(expense_id)
    return MessageResponse(message="Expense deleted successfully", id=expense_id)
