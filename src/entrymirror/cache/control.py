"""Cache control records."""

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional


@dataclass
class CacheControl:
    """Freshness bookkeeping for one cached entry.

    A record exists exactly as long as its entry is cached.

    Attributes:
        cached_at: Epoch seconds of the last ``put`` of the entry
        stale: True once the entry has been marked as needing a refresh
    """

    cached_at: float = field(default_factory=time.time)
    stale: bool = False

    def age(self, now: Optional[float] = None) -> float:
        """Seconds since the entry was last cached."""
        if now is None:
            now = time.time()
        return max(0.0, now - self.cached_at)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cached_at": datetime.fromtimestamp(self.cached_at, timezone.utc).isoformat(),
            "age_seconds": int(self.age()),
            "stale": self.stale,
        }
