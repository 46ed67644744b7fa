"""Policy resolver — loads marketplace_policy.json and exposes every
runtime decision as a typed method call.

No magic. No defaults. If a value is missing from the config, it fails loud.
"""

from __future__ import annotations

import json
from datetime import timedelta
from pathlib import Path
from typing import Any


POLICY_FILE = "marketplace_policy.json"


class PolicyResolver:
    """Loads and resolves marketplace policy.

    Usage:
        resolver = PolicyResolver.from_config_dir(Path("config"))
        duration = resolver.listing_duration()
        admins = resolver.admin_ids()
    """

    def __init__(self, policy: dict[str, Any]) -> None:
        self._policy = policy
        self._validate()

    @classmethod
    def from_config_dir(cls, config_dir: Path) -> PolicyResolver:
        """Load from the canonical config directory."""
        return cls(_load_json(config_dir / POLICY_FILE))

    def _validate(self) -> None:
        if "version" not in self._policy:
            raise ValueError(f"{POLICY_FILE} missing version")
        if self.listing_duration() <= timedelta(0):
            raise ValueError("listing.duration_days must be positive")
        if self.bio_max_length() < 0:
            raise ValueError("profile.bio_max_length must be non-negative")

    @property
    def version(self) -> str:
        return self._policy["version"]

    # ------------------------------------------------------------------
    # Listings
    # ------------------------------------------------------------------

    def listing_duration(self) -> timedelta:
        """How long a listing stays respondable after creation."""
        return timedelta(days=self._policy["listing"]["duration_days"])

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    def bio_max_length(self) -> int:
        """Maximum bio length in characters."""
        return int(self._policy["profile"]["bio_max_length"])

    # ------------------------------------------------------------------
    # Categories and administration
    # ------------------------------------------------------------------

    def default_categories(self) -> list[str]:
        """Category names seeded into a fresh registry."""
        return list(self._policy["categories"]["default"])

    def admin_ids(self) -> frozenset[str]:
        """Member ids allowed to add and remove categories."""
        return frozenset(self._policy["admins"])


def _load_json(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)
