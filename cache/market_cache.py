"""
Latest-value cache for upstream topics.

Holds one slot per cached topic plus the timestamp of the last live update.
Every write replaces the whole slot; readers get a consistent copy.
"""

import copy
import threading
from typing import Any, Dict, Optional


# Snapshot keys and their values before anything has been received
INITIAL_STATE: Dict[str, Any] = {
    "contactDetails": None,
    "referanceDetails": None,
    "liveRates": {},
    "workerPublishCoin": None,
    "lastUpdate": None,
}


class MarketCache:
    """
    Thread-safe store of the latest known value per slot.

    The relay's dispatch step is the only writer; the snapshot endpoint and
    newly connected subscribers read it.
    """

    def __init__(self, initial_state: Optional[Dict[str, Any]] = None):
        """
        Initialize the cache.

        Args:
            initial_state: Slot names and starting values (default: INITIAL_STATE)
        """
        self._lock = threading.Lock()
        self._slots: Dict[str, Any] = copy.deepcopy(
            INITIAL_STATE if initial_state is None else initial_state
        )

    def update(self, slot: str, value: Any, timestamp: Optional[str] = None) -> None:
        """
        Replace a slot's value.

        Args:
            slot: Slot name
            value: New value (replaces the old one, no merge)
            timestamp: If given, stored as lastUpdate in the same write
        """
        with self._lock:
            self._slots[slot] = value
            if timestamp is not None:
                self._slots["lastUpdate"] = timestamp

    def get(self, slot: str) -> Any:
        with self._lock:
            return self._slots.get(slot)

    @property
    def last_update(self) -> Optional[str]:
        return self.get("lastUpdate")

    def snapshot(self) -> Dict[str, Any]:
        """Return a copy of every slot as of now."""
        with self._lock:
            return dict(self._slots)
