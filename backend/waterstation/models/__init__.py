from .catalog import Item
from .stock import StockHistoryEntry
from .customers import Customer
from .sales import Sale, SaleLine
from .auth import User, SessionToken, LoginHistory

__all__ = [
    'Item', 'StockHistoryEntry',
    'Customer',
    'Sale', 'SaleLine',
    'User', 'SessionToken', 'LoginHistory',
]
