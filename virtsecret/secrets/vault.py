"""
Secret Value Vault.

Holds secret payload bytes, keyed by record UUID, apart from all metadata.
Values are kept in private ``bytearray`` buffers that are zeroed in place
before they are dropped, whether replaced by a new value or released with
their record.

Author: VirtSecret Team
Date: 2026-10-18
"""

import ctypes
import logging
import threading
from typing import Callable, Dict, Optional

from .exceptions import SecureClearError, VaultEntryMissing

logger = logging.getLogger(__name__)


ReleaseHook = Callable[[str, bytearray], None]


def secure_zero(buffer: bytearray) -> None:
    """
    Overwrite a buffer with zeros in place.

    Goes through ``ctypes.memset`` on the buffer's own memory rather than
    rebinding, so the original bytes are overwritten and not just
    unreferenced.

    Raises:
        SecureClearError: If the buffer still holds nonzero bytes afterwards
    """
    size = len(buffer)
    if size:
        view = (ctypes.c_char * size).from_buffer(buffer)
        try:
            ctypes.memset(ctypes.addressof(view), 0, size)
        finally:
            del view
    if any(buffer):
        raise SecureClearError("<buffer>", "buffer not zeroed after memset")


class ValueVault:
    """
    Payload store for secret values.

    A UUID has one of three states: unregistered (no record owns it),
    registered without value, or registered with a value.

    Attributes:
        on_release: Optional hook called with (uuid, buffer) after a buffer
            is zeroed and before it is dropped
    """

    def __init__(self, lock: Optional[threading.RLock] = None):
        self._entries: Dict[str, Optional[bytearray]] = {}
        self._lock = lock or threading.RLock()
        self.on_release: Optional[ReleaseHook] = None

    def register(self, uuid: str) -> None:
        """Open an empty slot for a newly defined record."""
        with self._lock:
            self._entries.setdefault(uuid, None)

    def set_value(self, uuid: str, value: bytes) -> None:
        """
        Store a value, zeroing any previous one first.

        Raises:
            VaultEntryMissing: If no record owns the UUID
            SecureClearError: If the previous value could not be zeroed; the
                new value is not installed
        """
        with self._lock:
            if uuid not in self._entries:
                raise VaultEntryMissing(uuid, VaultEntryMissing.UNKNOWN_RECORD)
            previous = self._entries[uuid]
            if previous is not None:
                self._release(uuid, previous)
            self._entries[uuid] = bytearray(value)

    def copy_value(self, uuid: str) -> Optional[bytearray]:
        """
        Return a private copy of the stored value, or None if unset.

        The caller owns the copy and must ``secure_zero`` it when done.
        """
        with self._lock:
            buffer = self._entries.get(uuid)
            return bytearray(buffer) if buffer is not None else None

    def get_value(self, uuid: str) -> bytes:
        """
        Return a copy of the stored value.

        Raises:
            VaultEntryMissing: If no record owns the UUID, or no value was set
        """
        with self._lock:
            if uuid not in self._entries:
                raise VaultEntryMissing(uuid, VaultEntryMissing.UNKNOWN_RECORD)
            buffer = self._entries[uuid]
            if buffer is None:
                raise VaultEntryMissing(uuid, VaultEntryMissing.VALUE_UNSET)
            return bytes(buffer)

    def has_value(self, uuid: str) -> bool:
        with self._lock:
            return self._entries.get(uuid) is not None

    def clear(self, uuid: str) -> bool:
        """
        Zero and drop the value of a UUID and close its slot.

        Returns:
            True if the UUID had a slot

        Raises:
            SecureClearError: If zeroing failed; the slot is kept
        """
        with self._lock:
            if uuid not in self._entries:
                return False
            buffer = self._entries[uuid]
            if buffer is not None:
                self._release(uuid, buffer)
            del self._entries[uuid]
            logger.debug(f"Cleared vault slot for secret {uuid}")
            return True

    def _release(self, uuid: str, buffer: bytearray) -> None:
        try:
            secure_zero(buffer)
        except SecureClearError as e:
            raise SecureClearError(uuid, e.reason) from None
        if self.on_release is not None:
            self.on_release(uuid, buffer)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
