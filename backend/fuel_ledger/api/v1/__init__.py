# API v1 Package
from fuel_ledger.api.v1 import (
    banking, cashbook, crm, depos, expenses, ledgers, payments, recoveries, trips,
    vehicle_expenses, vehicle_rent
)

__all__ = [
    'banking',
    'cashbook',
    'crm',
    'depos',
    'expenses',
    'ledgers',
    'payments',
    'recoveries',
    'trips',
    'vehicle_expenses',
    'vehicle_rent',
]
