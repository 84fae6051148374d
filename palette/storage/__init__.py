"""
Palette Storage Module

Run persistence and credit accounting collaborators.
"""

from .run_repository import RunRepository, InMemoryRunRepository, SupabaseRunRepository
from .credits import CreditLedger, InMemoryCreditLedger, SupabaseCreditLedger
from .supabase_client import get_supabase_client

__all__ = [
    'RunRepository',
    'InMemoryRunRepository',
    'SupabaseRunRepository',
    'CreditLedger',
    'InMemoryCreditLedger',
    'SupabaseCreditLedger',
    'get_supabase_client',
]
