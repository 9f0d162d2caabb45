"""
Secret Identity Index.

Two-key index over secret records: UUID -> record and
(usage type, usage ID) -> UUID. Both maps are only ever changed together
under the index lock, so readers never see a record in one and not the other.

Author: VirtSecret Team
Date: 2026-10-18
"""

import threading
from typing import Dict, Optional, Tuple

from .exceptions import IndexKeyError
from .models import SecretRecord, UsageType, canonical_uuid


def usage_key_label(usage_type: UsageType, usage_id: str) -> str:
    """Human readable form of a usage key for error messages."""
    return f"{usage_type.label}:{usage_id}"


class IdentityIndex:
    """
    UUID and usage lookup for secret records.

    Attributes:
        _by_uuid: UUID -> record, in definition order
        _by_usage: (usage type, usage ID) -> UUID
        _lock: Re-entrant lock, shareable with the registry
    """

    NOT_FOUND = "not-found"
    DUPLICATE_UUID = "duplicate-uuid"
    DUPLICATE_USAGE = "duplicate-usage"

    def __init__(self, lock: Optional[threading.RLock] = None):
        self._by_uuid: Dict[str, SecretRecord] = {}
        self._by_usage: Dict[Tuple[UsageType, str], str] = {}
        self._lock = lock or threading.RLock()

    def insert(self, record: SecretRecord) -> None:
        """Add a record under both keys.

        Raises:
            IndexKeyError: If the UUID or usage key is already taken; the
                index is left unchanged
        """
        with self._lock:
            if record.uuid in self._by_uuid:
                raise IndexKeyError(record.uuid, self.DUPLICATE_UUID, existing_uuid=record.uuid)

            usage_key = record.usage_key
            if usage_key is not None and usage_key in self._by_usage:
                raise IndexKeyError(
                    usage_key_label(*usage_key),
                    self.DUPLICATE_USAGE,
                    existing_uuid=self._by_usage[usage_key],
                )

            self._by_uuid[record.uuid] = record
            if usage_key is not None:
                self._by_usage[usage_key] = record.uuid

    def find_by_uuid(self, uuid: str) -> SecretRecord:
        """Find a record by UUID (any accepted UUID spelling).

        Raises:
            IndexKeyError: If no record has this UUID
        """
        try:
            key = canonical_uuid(uuid)
        except ValueError:
            raise IndexKeyError(str(uuid), self.NOT_FOUND) from None

        with self._lock:
            record = self._by_uuid.get(key)
        if record is None:
            raise IndexKeyError(key, self.NOT_FOUND)
        return record

    def find_by_usage(self, usage_type: UsageType, usage_id: str) -> SecretRecord:
        """Find a record by usage pair.

        Raises:
            IndexKeyError: If no record has this usage pair
        """
        with self._lock:
            uuid = self._by_usage.get((usage_type, usage_id))
            record = self._by_uuid.get(uuid) if uuid is not None else None
        if record is None:
            raise IndexKeyError(usage_key_label(usage_type, usage_id), self.NOT_FOUND)
        return record

    def remove(self, uuid: str) -> SecretRecord:
        """Remove a record from both maps.

        Raises:
            IndexKeyError: If no record has this UUID
        """
        with self._lock:
            record = self._by_uuid.pop(uuid, None)
            if record is None:
                raise IndexKeyError(uuid, self.NOT_FOUND)
            usage_key = record.usage_key
            if usage_key is not None and self._by_usage.get(usage_key) == uuid:
                del self._by_usage[usage_key]
            return record

    def list_all(self) -> Tuple[str, ...]:
        """Point-in-time snapshot of all UUIDs in definition order."""
        with self._lock:
            return tuple(self._by_uuid)

    def records(self) -> Tuple[SecretRecord, ...]:
        """Point-in-time snapshot of all records in definition order."""
        with self._lock:
            return tuple(self._by_uuid.values())

    def count(self) -> int:
        with self._lock:
            return len(self._by_uuid)

    def __contains__(self, uuid: str) -> bool:
        with self._lock:
            return uuid in self._by_uuid
