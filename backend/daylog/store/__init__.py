"""
Daylog Backend — Entry Store Package
======================================

What:  The persistence and live-query layer.

    - EntryStore:      insert(), list_all(), subscribe(), snapshots()
    - ChangeNotifier:  bounded, coalescing fan-out of snapshots
    - Subscription:    handle returned by subscribe(); call it to unsubscribe
"""

from daylog.store.entry_store import EntryStore
from daylog.store.notifier import ChangeNotifier, Snapshot, Subscription

__all__ = ["ChangeNotifier", "EntryStore", "Snapshot", "Subscription"]
