from .merchants import MerchantsRepo
from .products import ProductsRepo, SaveProductInput
from .receipts import CreateReceiptInput, ReceiptFilters, ReceiptsRepo, matches_filters
from .sync_queue import SyncQueue

__all__ = [
    'MerchantsRepo',
    'ProductsRepo', 'SaveProductInput',
    'ReceiptsRepo', 'CreateReceiptInput', 'ReceiptFilters', 'matches_filters',
    'SyncQueue',
]
