from .auth import User, SessionToken
from .customers import Customer
from .documents import SequenceCounter, Invoice, InvoiceItem, QuotationCategory
from .payments import Payment
from .ledger import PaymentLedger, StartingBalance, LedgerTransaction
from .settings import CompanySettings

__all__ = [
    'User', 'SessionToken',
    'Customer',
    'SequenceCounter', 'Invoice', 'InvoiceItem', 'QuotationCategory',
    'Payment',
    'PaymentLedger', 'StartingBalance', 'LedgerTransaction',
    'CompanySettings',
]
