"""
Offline-first POS client core.

Local store (SQL or key-value engine), repositories, receipt issuance with
offline fallback, the background sync manager and the REST client for the
tillsync backend.
"""

from .app import TillClient, create_client
from .config import ClientConfig
from .logging_utils import configure_logging

__all__ = ['TillClient', 'create_client', 'ClientConfig', 'configure_logging']
