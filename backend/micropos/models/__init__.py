from .tenancy import Organization, Warehouse
from .catalog import Category, Product, ProductBarcode
from .partners import Partner
from .invoices import Invoice, InvoiceItem
from .inventory import StockMovement
from .cash import CashSession, CashTransaction
from .expenses import Expense
from .sync import OutboxEntry, DocumentSequence

__all__ = [
    'Organization', 'Warehouse',
    'Category', 'Product', 'ProductBarcode',
    'Partner',
    'Invoice', 'InvoiceItem',
    'StockMovement',
    'CashSession', 'CashTransaction',
    'Expense',
    'OutboxEntry', 'DocumentSequence',
]
