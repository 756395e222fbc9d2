from .tenancy import Organization, Branch
from .users import User
from .inventory import Item, OpeningStock, ClosingStock, Restocking, Sale, WasteSpoilage

__all__ = [
    'Organization', 'Branch',
    'User',
    'Item', 'OpeningStock', 'ClosingStock', 'Restocking', 'Sale', 'WasteSpoilage',
]
