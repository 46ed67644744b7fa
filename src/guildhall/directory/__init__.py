"""Member directory — profiles indexed by expertise and location status."""

from guildhall.directory.profile_directory import ProfileDirectory

__all__ = ["ProfileDirectory"]
