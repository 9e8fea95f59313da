from .catalog import Product, Client
from .sales import Order, OrderItem
from .entries import MerchandiseEntry, MerchandiseEntryItem
from .documents import CoreReturnEvent, DocumentSequence

__all__ = [
    'Product', 'Client',
    'Order', 'OrderItem',
    'MerchandiseEntry', 'MerchandiseEntryItem',
    'CoreReturnEvent', 'DocumentSequence',
]
