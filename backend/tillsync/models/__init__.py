from .tenancy import Merchant, UserMerchant, MerchantCounter
from .auth import User, SessionToken
from .catalog import Product
from .receipts import Receipt, ReceiptItem, SyncEvent, RECEIPT_STATUSES, PAYMENT_METHODS, SYNC_EVENT_TYPES

__all__ = [
    'Merchant', 'UserMerchant', 'MerchantCounter',
    'User', 'SessionToken',
    'Product',
    'Receipt', 'ReceiptItem', 'SyncEvent',
    'RECEIPT_STATUSES', 'PAYMENT_METHODS', 'SYNC_EVENT_TYPES',
]
