"""Client backends the pool can manage."""

from .base import MISSING_RESOURCE_CODES, ClientBackend, is_missing_resource_error
from .postgres import POSTGRES_BACKEND
from .supabase import SUPABASE_BACKEND

__all__ = [
    "ClientBackend",
    "MISSING_RESOURCE_CODES",
    "POSTGRES_BACKEND",
    "SUPABASE_BACKEND",
    "is_missing_resource_error",
]
