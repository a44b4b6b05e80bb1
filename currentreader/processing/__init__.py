"""
CurrentReader Processing Module
===============================

Reconciliation of normalized batches with the stored catalog, and the
refresh leases that serialize refreshes of the same feed.
"""

from .reconciler import Reconciler, reconcile_articles, reconcile_feed, sort_articles
from .refresh_lock import FeedRefreshLock

__all__ = [
    'Reconciler',
    'reconcile_articles',
    'reconcile_feed',
    'sort_articles',
    'FeedRefreshLock',
]
