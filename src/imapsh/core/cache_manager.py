"""
Message metadata cache for imapsh.

Keeps envelope, body structure and flags for every message already fetched,
partitioned by mailbox identity, so listing and viewing the same messages
again costs no round trip to the server.
"""

import threading
from typing import Dict, Iterable, List, Tuple

from ..data.models.message import MailboxIdentity, MessageMetadata
from ..utils.logging_setup import get_logger

logger = get_logger(__name__)


class NotCached(KeyError):
    """Raised when metadata is read for a message that was never fetched."""
    pass


class MetadataCache:
    """
    Process-lifetime metadata cache.

    The partition key is taken from the transport on every access, so
    selecting another folder, or reselecting one whose UIDVALIDITY changed,
    starts a fresh partition without any explicit invalidation. Entries
    are never refreshed implicitly: callers decide when data is stale.

    The transport must provide `identity()`, `fetch_metadata_batch(ids)`
    and `fetch_flags_batch(ids)`.
    """

    def __init__(self, transport):
        """
        Initialize the cache.

        Args:
            transport: Connected IMAP transport used to fill missing entries.
        """
        self.transport = transport
        self.logger = logger
        self._partitions: Dict[MailboxIdentity, Dict[int, MessageMetadata]] = {}
        self._locks: Dict[MailboxIdentity, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _partition(self) -> Tuple[MailboxIdentity, Dict[int, MessageMetadata]]:
        """Return the active partition key and its entries, creating them if needed."""
        key = self.transport.identity()
        entries = self._partitions.get(key)
        if entries is None:
            entries = self._partitions.setdefault(key, {})
            self.logger.debug(f"Started cache partition {key}")
        return key, entries

    def _lock_for(self, key: MailboxIdentity) -> threading.Lock:
        # At most one batch fetch in flight per partition
        with self._locks_guard:
            return self._locks.setdefault(key, threading.Lock())

    def ensure_populated(self, ids: Iterable[int]) -> int:
        """
        Fetch metadata for every id not yet in the active partition.

        Missing ids are requested in one batch; ids already cached are left
        as they are. Nothing is inserted unless the whole batch succeeds.

        Args:
            ids: Message UIDs that are about to be rendered.

        Returns:
            int: Number of messages fetched from the server.
        """
        key, entries = self._partition()
        with self._lock_for(key):
            missing: List[int] = sorted({uid for uid in ids if uid not in entries})
            if not missing:
                return 0

            self.logger.debug(f"Fetching metadata for {len(missing)} messages in {key.folder}")
            fetched = self.transport.fetch_metadata_batch(missing)
            entries.update({uid: fetched[uid] for uid in missing})
            return len(missing)

    def get(self, uid: int) -> MessageMetadata:
        """
        Get cached metadata for a message.

        Args:
            uid: Message UID.

        Returns:
            MessageMetadata: Cached envelope, structure and flags.

        Raises:
            NotCached: If ensure_populated was not called for this UID.
        """
        _, entries = self._partition()
        try:
            return entries[uid]
        except KeyError:
            raise NotCached(uid) from None

    def refresh_flags(self, ids: Iterable[int]) -> int:
        """
        Re-fetch flags for cached messages and replace them in place.

        Envelope and body structure are untouched. UIDs that are not cached
        are skipped; they will be fetched whole when next rendered.

        Args:
            ids: Message UIDs whose flags may have changed.

        Returns:
            int: Number of cache entries updated.
        """
        key, entries = self._partition()
        with self._lock_for(key):
            cached = sorted({uid for uid in ids if uid in entries})
            if not cached:
                return 0

            flags = self.transport.fetch_flags_batch(cached)
            updated = 0
            for uid, new_flags in flags.items():
                meta = entries.get(uid)
                if meta is not None:
                    meta.flags = frozenset(new_flags)
                    updated += 1
            self.logger.debug(f"Refreshed flags for {updated} messages in {key.folder}")
            return updated

    def invalidate(self) -> None:
        """Drop every entry of the active partition."""
        key = self.transport.identity()
        with self._lock_for(key):
            dropped = self._partitions.pop(key, {})
        self.logger.info(f"Invalidated cache for {key.folder} ({len(dropped)} messages)")

    def __contains__(self, uid: int) -> bool:
        _, entries = self._partition()
        return uid in entries

    def __len__(self) -> int:
        _, entries = self._partition()
        return len(entries)
