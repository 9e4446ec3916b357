from .catalog import Product
from .stock import StockEntry
from .assets import AssetUnit
from .rentals import Rental, rental_assets
from .sales import Sale, SaleItem
from .documents import ActivityLog, DocumentSequence

__all__ = [
    'Product',
    'StockEntry',
    'AssetUnit',
    'Rental', 'rental_assets',
    'Sale', 'SaleItem',
    'ActivityLog', 'DocumentSequence',
]
