"""Listing marketplace — listings, categories, and lifecycle enforcement.

Members post listings under a known category and expertise tag; other
members respond; the creator resolves or withdraws. Reputation counters
are synchronised by the service layer, not here.
"""

from guildhall.market.categories import CategoryRegistry
from guildhall.market.listing_state_machine import ListingStateMachine
from guildhall.market.listing_store import ListingStore

__all__ = ["CategoryRegistry", "ListingStateMachine", "ListingStore"]
