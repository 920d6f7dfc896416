from .base import StoreEngine
from .kv_engine import KeyValueStoreEngine
from .local_store import LocalStore, build_engine, select_engine_name
from .seed import SEED_MERCHANTS, SEED_PRODUCTS, SEED_VERSION, SEED_VERSION_KEY
from .sql_engine import SqlStoreEngine

__all__ = [
    'StoreEngine', 'SqlStoreEngine', 'KeyValueStoreEngine',
    'LocalStore', 'build_engine', 'select_engine_name',
    'SEED_MERCHANTS', 'SEED_PRODUCTS', 'SEED_VERSION', 'SEED_VERSION_KEY',
]
