from .auth import User, SessionToken
from .customers import Customer
from .catalog import Supplier, Product
from .purchases import Purchase
from .documents import SequenceCounter
from .invoices import (
    SalesInvoice,
    FreightInvoice,
    TransportInvoice,
    DubaiTransportInvoice,
    DubaiClearanceInvoice,
)
from .payments import (
    SalesPayment,
    FreightPayment,
    TransportPayment,
    DubaiTransportPayment,
    DubaiClearancePayment,
)
from .ledger import DailyLedger, LedgerEntry

__all__ = [
    'User', 'SessionToken',
    'Customer', 'Supplier', 'Product',
    'Purchase',
    'SequenceCounter',
    'SalesInvoice', 'FreightInvoice', 'TransportInvoice',
    'DubaiTransportInvoice', 'DubaiClearanceInvoice',
    'SalesPayment', 'FreightPayment', 'TransportPayment',
    'DubaiTransportPayment', 'DubaiClearancePayment',
    'DailyLedger', 'LedgerEntry',
]
