"""Core data models for the marketplace directory."""

from guildhall.models.listing import ExpertiseType, Listing, ListingStatus
from guildhall.models.profile import Profile, ProfileStats

__all__ = [
    "ExpertiseType",
    "Listing",
    "ListingStatus",
    "Profile",
    "ProfileStats",
]
