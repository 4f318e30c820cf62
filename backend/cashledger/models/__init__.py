from .tenancy import Company, Branch, PointOfSale
from .auth import User
from .catalog import Tax, Product, ProductVariant
from .cash import CashSession, CashSessionStatus
from .ledger import (
    LedgerTransaction,
    TransactionLine,
    DocumentSequence,
    LedgerEvent,
    TransactionType,
    TransactionStatus,
    PaymentMethod,
)

__all__ = [
    'Company', 'Branch', 'PointOfSale',
    'User',
    'Tax', 'Product', 'ProductVariant',
    'CashSession', 'CashSessionStatus',
    'LedgerTransaction', 'TransactionLine', 'DocumentSequence', 'LedgerEvent',
    'TransactionType', 'TransactionStatus', 'PaymentMethod',
]
