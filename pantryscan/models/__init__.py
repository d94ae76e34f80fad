from .device import Device
from .location import Location
from .notification import Notification
from .product import Product, ProductCategory
from .scan_log import ScanLogEntry
from .stock import StockEntry

__all__ = [
    "Device",
    "Location",
    "Notification",
    "Product",
    "ProductCategory",
    "ScanLogEntry",
    "StockEntry",
]
