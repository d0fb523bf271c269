# Services Package
from fuel_ledger.services.ledger_service import LedgerService
from fuel_ledger.services.allocation_service import AllocationService, allocate
from fuel_ledger.services.trip_service import TripService, TripCompletionMonitor
from fuel_ledger.services.transaction_service import TransactionRecorder, RecordResult
from fuel_ledger.services.reversal_service import ReversalService
from fuel_ledger.services.banking_service import BankService, BankAccountService
from fuel_ledger.services.depo_service import DepoService
from fuel_ledger.services.crm_service import CustomerService
from fuel_ledger.services.cashbook_service import CashBookService
from fuel_ledger.services.expense_service import ExpenseService
from fuel_ledger.services.audit_service import AuditService, AuditAction

__all__ = [
    'LedgerService',
    'AllocationService',
    'allocate',
    'TripService',
    'TripCompletionMonitor',
    'TransactionRecorder',
    'RecordResult',
    'ReversalService',
    'BankService',
    'BankAccountService',
    'DepoService',
    'CustomerService',
    'CashBookService',
    'ExpenseService',
    'AuditService',
    'AuditAction',
]
