"""
Refresh Leases
==============

In-process leases that keep at most one refresh of a given feed in flight.
"""

import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Dict, Generator, List

from ..utils.exceptions import RefreshInProgressError

logger = logging.getLogger(__name__)


class FeedRefreshLock:
    """Per-feed lease table guarded by a threading lock."""

    def __init__(self):
        self._lock = threading.Lock()
        self._leases: Dict[str, datetime] = {}

    def try_acquire(self, feed_id: str) -> bool:
        """
        Take the lease for a feed.

        Returns:
            True if the lease was taken, False if a refresh is already running
        """
        with self._lock:
            if feed_id in self._leases:
                logger.debug(f"Refresh lease busy for feed {feed_id}")
                return False
            self._leases[feed_id] = datetime.now(timezone.utc)
            return True

    def release(self, feed_id: str) -> None:
        with self._lock:
            self._leases.pop(feed_id, None)

    def is_refreshing(self, feed_id: str) -> bool:
        with self._lock:
            return feed_id in self._leases

    def refreshing_ids(self) -> List[str]:
        with self._lock:
            return sorted(self._leases)

    @contextmanager
    def hold(self, feed_id: str) -> Generator[None, None, None]:
        """
        Hold the lease for the duration of a block.

        Raises:
            RefreshInProgressError: Another refresh of this feed is running
        """
        if not self.try_acquire(feed_id):
            raise RefreshInProgressError(feed_id)
        try:
            yield
        finally:
            self.release(feed_id)
