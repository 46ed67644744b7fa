"""Policy loading and typed access to marketplace configuration."""

from guildhall.policy.resolver import PolicyResolver

__all__ = ["PolicyResolver"]
