from .catalog import Product, Customer
from .stock import CurrentStock, StockMovement
from .tickets import Ticket, TicketLine
from .promotions import Coupon, Discount
from .cash import CashSession
from .documents import DocumentSequence

__all__ = [
    'Product', 'Customer',
    'CurrentStock', 'StockMovement',
    'Ticket', 'TicketLine',
    'Coupon', 'Discount',
    'CashSession',
    'DocumentSequence',
]
