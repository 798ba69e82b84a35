"""
Stale-cache fallback policy

When a live fetch fails, the client asks the policy whether an existing
(possibly expired) cache entry may be served in its place. Only upstream
and empty-result failures are ever answered from cache.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional

from ..exceptions import ConfigurationError, is_fallback_eligible
from .cache import CacheEntry

logger = logging.getLogger(__name__)


class FallbackPolicy(Enum):
    """What to do when a fetch fails."""
    USE_STALE_IF_PRESENT = "use_stale_if_present"  # Serve the last good payload
    REJECT = "reject"  # Always propagate the error

    @classmethod
    def from_name(cls, name: str) -> "FallbackPolicy":
        try:
            return cls(name)
        except ValueError as e:
            raise ConfigurationError(
                f"Unknown fallback policy: {name}",
                details={"allowed": [policy.value for policy in cls]},
            ) from e

    def resolve(self, error: Exception, stale_entry: Optional[CacheEntry]) -> CacheEntry:
        """Return the entry to serve instead of the error, or re-raise it."""
        if self is FallbackPolicy.REJECT or stale_entry is None or not is_fallback_eligible(error):
            raise error

        provider, dataset, _ = stale_entry.key
        logger.warning(f"Serving stale {provider}/{dataset} after failure: {error}")
        return stale_entry
