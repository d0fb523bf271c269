from typing import Optional, List
from sqlalchemy.orm import Session
from datetime import date

from fuel_ledger.core.exceptions import ConflictError
from fuel_ledger.models import Expense, ExpenseCategory
from fuel_ledger.schemas import ExpenseCategoryCreate


class ExpenseService:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, expense_id: int) -> Optional[Expense]:
        return self.db.query(Expense).filter(Expense.id == expense_id).first()

    def get_all(self, start_date: date = None, end_date: date = None, include_inactive: bool = False) -> List[Expense]:
        query = self.db.query(Expense)
        if not include_inactive:
            query = query.filter(Expense.active == True)
        if start_date:
            query = query.filter(Expense.expense_date >= start_date)
        if end_date:
            query = query.filter(Expense.expense_date <= end_date)
        return query.order_by(Expense.expense_date.desc(), Expense.id.desc()).all()

    def create_category(self, data: ExpenseCategoryCreate) -> ExpenseCategory:
        existing = self.db.query(ExpenseCategory).filter(
            ExpenseCategory.name == data.name,
            ExpenseCategory.active == True
        ).first()
        if existing:
            raise ConflictError(f"Expense category '{data.name}' already exists")
        category = ExpenseCategory(name=data.name)
        self.db.add(category)
        self.db.flush()
        return category

    def get_categories(self) -> List[ExpenseCategory]:
        return self.db.query(ExpenseCategory).filter(
            ExpenseCategory.active == True
        ).order_by(ExpenseCategory.name).all()
