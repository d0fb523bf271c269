"""
Pydantic Schemas for API Validation
"""
from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import Any, Dict, List, Optional
from datetime import datetime, date, timezone
from decimal import Decimal
from enum import Enum


# ==================== ENUMS ====================

class RecordKind(str, Enum):
    EXPENSE = "EXPENSE"
    PAYMENT_TO_DEPOT = "PAYMENT_TO_DEPOT"
    RECOVERY_FROM_CLIENT = "RECOVERY_FROM_CLIENT"
    VEHICLE_RENT = "VEHICLE_RENT"
    VEHICLE_EXPENSE = "VEHICLE_EXPENSE"


def naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Ledger timestamps are stored as naive UTC"""
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


# ==================== SETUP SCHEMAS ====================

class BankCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)


class AccountCreate(BaseModel):
    account_title: str = Field(..., min_length=1, max_length=255)
    bank_id: Optional[int] = None
    account_number: Optional[str] = Field(None, max_length=50)
    opening_balance: Decimal = Field(default=Decimal("0.00"), ge=0)


class AccountResponse(BaseModel):
    id: int
    account_title: str
    bank_id: Optional[int] = None
    account_number: Optional[str] = None
    opening_balance: Decimal
    balance: Decimal

    model_config = ConfigDict(from_attributes=True)


class DepoCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    phone_no: Optional[str] = Field(None, pattern=r"^[0-9]{11,}$")
    address: Optional[str] = None
    balance: Decimal = Decimal("0.00")


class DepoResponse(BaseModel):
    id: int
    name: str
    phone_no: Optional[str] = None
    address: Optional[str] = None
    balance: Decimal

    model_config = ConfigDict(from_attributes=True)


class CustomerCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    phone_no: Optional[str] = None
    previous_dues: Decimal = Field(default=Decimal("0.00"), ge=0)


class TripDepoLine(BaseModel):
    depo_id: int
    payable_amount: Decimal = Field(..., ge=0)


class TripProductLine(BaseModel):
    fuel_type: Optional[str] = None
    quantity_ltr: Decimal = Field(..., ge=0)


class TripCreate(BaseModel):
    trip_no: str = Field(..., min_length=1, max_length=50)
    start_date: date
    customer_id: Optional[int] = None
    vehicle_id: Optional[int] = None
    total_amount: Decimal = Field(default=Decimal("0.00"), ge=0)
    depos: List[TripDepoLine] = []
    products: List[TripProductLine] = []
    charge_pool: bool = True


class PolSaleCreate(BaseModel):
    fuel: Decimal = Field(..., gt=0)
    sale_date: Optional[date] = None


class ExpenseCategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)


# ==================== MONEY MOVEMENT SCHEMAS ====================

class ExpenseCreate(BaseModel):
    category_id: int
    amount: Decimal = Field(..., gt=0)
    expense_date: date
    account_head: str = Field(..., description="cash_in_hand or bank")
    account_id: Optional[int] = None
    payment_mode: Optional[str] = None
    reference_no: Optional[str] = None
    description: Optional[str] = None


class DepoPaymentCreate(BaseModel):
    depo_id: int
    amount: Decimal = Field(..., gt=0)
    account_head: str = Field(..., description="cash_in_hand or bank")
    account_id: Optional[int] = None
    payment_mode: Optional[str] = None
    reference_no: Optional[str] = None
    payment_date: Optional[datetime] = None

    @field_validator("payment_date")
    @classmethod
    def payment_date_as_utc(cls, v):
        return naive_utc(v)


class RecoveryCreate(BaseModel):
    customer_id: int
    amount: Decimal = Field(..., gt=0)
    account_head: str = Field(..., description="bank (or account), cash_in_hand or depo")
    account_id: Optional[int] = None
    depo_id: Optional[int] = None
    payment_mode: Optional[str] = None
    reference_no: Optional[str] = None
    recovery_date: Optional[datetime] = None
    remarks: Optional[str] = None

    @field_validator("recovery_date")
    @classmethod
    def recovery_date_as_utc(cls, v):
        return naive_utc(v)


class VehicleRentCreate(BaseModel):
    trip_id: int
    vehicle_id: int
    distance_km: Decimal = Field(..., gt=0)
    rent_per_km: Decimal = Field(..., gt=0)
    total_rent: Decimal = Field(..., gt=0)
    payment_source: str = Field(..., description="cash or bank")
    account_id: Optional[int] = None

    @field_validator("account_id", mode="before")
    @classmethod
    def blank_account_is_none(cls, v):
        return None if v == "" else v


class VehicleExpenseCreate(BaseModel):
    vehicle_id: int
    expense_date: date
    expense_type: str = Field(..., min_length=1, max_length=100)
    amount: Decimal = Field(..., gt=0)
    account_head: str = Field(..., description="cash_in_hand or account")
    trip_id: Optional[int] = None
    account_id: Optional[int] = None
    payment_mode: Optional[str] = None
    reference_no: Optional[str] = None
    description: Optional[str] = None


class CashTransferCreate(BaseModel):
    account_id: int
    amount: Decimal = Field(..., gt=0)
    reference_no: Optional[str] = None
    transfer_date: Optional[datetime] = None

    @field_validator("transfer_date")
    @classmethod
    def transfer_date_as_utc(cls, v):
        return naive_utc(v)


class CashReceiptCreate(BaseModel):
    amount: Decimal = Field(..., gt=0)
    purpose: Optional[str] = Field(None, max_length=255)
    received_at: Optional[datetime] = None

    @field_validator("received_at")
    @classmethod
    def received_at_as_utc(cls, v):
        return naive_utc(v)


class PoolAdjustmentCreate(BaseModel):
    debit: Decimal = Field(default=Decimal("0.00"), ge=0)
    credit: Decimal = Field(default=Decimal("0.00"), ge=0)
    reason: Optional[str] = Field(None, max_length=255)


# ==================== LEDGER VIEWS ====================

class CashInHandEntry(BaseModel):
    id: int
    debit: Decimal
    credit: Decimal
    balance: Decimal
    purpose: Optional[str] = None
    occurred_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BankLedgerEntry(BaseModel):
    id: int
    account_id: Optional[int] = None
    purpose: str
    debit: Decimal
    credit: Decimal
    balance: Optional[Decimal] = None
    date: datetime
    payment_mode: Optional[str] = None
    reference_no: Optional[str] = None
    trip_id: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


class PoolEntry(BaseModel):
    id: int
    depo_id: int
    trip_id: Optional[int] = None
    payment_id: Optional[int] = None
    recovery_id: Optional[int] = None
    transaction_id: Optional[int] = None
    debit: Decimal
    credit: Decimal
    depo_limit: Decimal
    reason: Optional[str] = None
    occurred_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CashDayView(BaseModel):
    day: date
    opening_balance: Decimal
    closing_balance: Decimal
    total_debit: Decimal
    total_credit: Decimal
    entries: List[CashInHandEntry]


class RecalculateResponse(BaseModel):
    message: str
    ledger_kind: str
    owner_id: Optional[int] = None
    balance: Decimal


# ==================== COMMON SCHEMAS ====================

class MessageResponse(BaseModel):
    message: str
    id: Optional[int] = None


class RecordResponse(MessageResponse):
    transaction_id: Optional[int] = None
    transaction_ids: List[int] = []
    ledger_entry_ids: List[int] = []
    ids: List[int] = []
    unallocated: Decimal = Decimal("0.00")

    @classmethod
    def from_result(cls, message: str, result) -> "RecordResponse":
        return cls(
            message=message,
            id=result.entity_id,
            transaction_id=result.transaction_id,
            transaction_ids=result.transaction_ids,
            ledger_entry_ids=result.ledger_entry_ids,
            ids=result.entity_ids,
            unallocated=result.unallocated
        )


class ErrorResponse(BaseModel):
    message: str
    error: str
    details: Optional[Dict[str, Any]] = None


ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid request or insufficient funds"},
    404: {"model": ErrorResponse, "description": "Record not found"},
    409: {"model": ErrorResponse, "description": "Record already exists or is already deleted"},
    500: {"model": ErrorResponse, "description": "Server or schema error"},
}
