from .client import ApiClient
from .merchants import MerchantsApi
from .products import ProductsApi
from .receipts import CreateReceiptResult, ReceiptsApi

__all__ = ['ApiClient', 'MerchantsApi', 'ProductsApi', 'ReceiptsApi', 'CreateReceiptResult']
