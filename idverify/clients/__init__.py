"""Clients for external collaborators"""
from .account_store import AccountStore, ImagingApiAccountStore, InMemoryAccountStore

__all__ = [
    'AccountStore',
    'ImagingApiAccountStore',
    'InMemoryAccountStore'
]
