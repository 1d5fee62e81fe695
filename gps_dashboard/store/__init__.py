"""
Data store access: PostgREST client, row filters and the shared client instance.
"""

from gps_dashboard.store.api import StoreAPI
from gps_dashboard.store.client import get_store_client
from gps_dashboard.store.filters import (
    NIL_UUID,
    Filter,
    contains,
    eq,
    in_,
    is_null,
    match_all,
    neq,
)

__all__ = [
    'StoreAPI',
    'get_store_client',
    'NIL_UUID',
    'Filter',
    'contains',
    'eq',
    'in_',
    'is_null',
    'match_all',
    'neq',
]
