# ==============================================================================
# Rollup Store Abstract Base Class
# ==============================================================================
"""
Read side of the daily rollups.

Counters are written by the session store inside its transactions; this
interface only exposes what the query layer needs.
"""

from abc import ABC, abstractmethod
from datetime import date

from visitortrack.core.models import DailyAggregate


class RollupStore(ABC):
    """Per-day aggregate counters and top-N maps."""

    @abstractmethod
    def get_day(self, day: date) -> DailyAggregate:
        """Aggregate for one day (all zeros if nothing was recorded)."""
        ...

    @abstractmethod
    def list_days(self) -> list[date]:
        """Every day with recorded data, ascending."""
        ...
