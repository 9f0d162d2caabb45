"""
Secret Persistence.

Storage backends for persistent (non-ephemeral) secrets. Descriptor and
value are stored separately; ephemeral secrets never reach a backend.

The directory backend uses the same layout as the hypervisor's secret
driver: ``<uuid>.xml`` holds the descriptor and ``<uuid>.base64`` the value.

Author: VirtSecret Team
Date: 2026-10-18
"""

import base64
import binascii
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple, Union

from .exceptions import MalformedDescriptorError, StorageError
from .models import SecretDefinition, canonical_uuid
from .vault import secure_zero
from .xml_codec import parse_secret_xml, render_secret_xml

logger = logging.getLogger(__name__)


StoredSecret = Tuple[SecretDefinition, Optional[bytes]]


class SecretStorage(ABC):
    """
    Abstract base class for secret storage backends.

    Implementations must be safe to call from several threads.
    """

    @abstractmethod
    def save_definition(self, definition: SecretDefinition) -> None:
        """
        Persist a secret descriptor.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    def save_value(self, uuid: str, value: bytes) -> None:
        """
        Persist a secret value, replacing any previous one.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    def delete(self, uuid: str) -> bool:
        """
        Remove a secret's descriptor and value.

        Returns:
            True if anything was removed

        Raises:
            StorageError: If the removal fails
        """
        pass

    @abstractmethod
    def load_all(self) -> Iterator[StoredSecret]:
        """
        Yield every stored secret with its value (None if unset).

        Raises:
            StorageError: If the storage cannot be read
        """
        pass


class MemorySecretStorage(SecretStorage):
    """
    Process-local storage.

    Lets persistent secrets outlive a connection within one process. Values
    are kept as ``bytearray`` and zeroed on replace and delete.

    A UUID can be stored only once: a connection that did not see another
    connection's secret at open cannot define the same UUID over it. Usage
    collisions across connections are only detected at the next open.
    """

    def __init__(self):
        self._definitions: Dict[str, SecretDefinition] = {}
        self._values: Dict[str, bytearray] = {}
        self._lock = threading.Lock()

    def save_definition(self, definition: SecretDefinition) -> None:
        with self._lock:
            if definition.uuid in self._definitions:
                raise StorageError(f"Secret {definition.uuid} is already stored")
            self._definitions[definition.uuid] = definition

    def save_value(self, uuid: str, value: bytes) -> None:
        with self._lock:
            previous = self._values.get(uuid)
            self._values[uuid] = bytearray(value)
            if previous is not None:
                secure_zero(previous)

    def delete(self, uuid: str) -> bool:
        with self._lock:
            removed = self._definitions.pop(uuid, None) is not None
            value = self._values.pop(uuid, None)
            if value is not None:
                secure_zero(value)
                removed = True
            return removed

    def load_all(self) -> Iterator[StoredSecret]:
        with self._lock:
            snapshot: List[StoredSecret] = [
                (definition, bytes(self._values[uuid]) if uuid in self._values else None)
                for uuid, definition in self._definitions.items()
            ]
        return iter(snapshot)


class DirectorySecretStorage(SecretStorage):
    """
    File-per-secret storage in a private directory.

    Files are written to a temporary name and renamed into place, with
    mode 0600; the directory is created with mode 0700. An existing
    descriptor is never overwritten. That check holds per backend instance,
    not across processes sharing the directory.
    """

    DESCRIPTOR_SUFFIX = ".xml"
    VALUE_SUFFIX = ".base64"

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._lock = threading.Lock()
        try:
            self.path.mkdir(mode=0o700, parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create secret directory {self.path}: {e}") from e

    def _descriptor_path(self, uuid: str) -> Path:
        return self.path / f"{uuid}{self.DESCRIPTOR_SUFFIX}"

    def _value_path(self, uuid: str) -> Path:
        return self.path / f"{uuid}{self.VALUE_SUFFIX}"

    def _write_atomic(self, target: Path, data: bytes) -> None:
        fd, tmp_name = tempfile.mkstemp(dir=self.path, prefix=f".{target.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, target)
        except OSError as e:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise StorageError(f"Cannot write {target}: {e}") from e

    def save_definition(self, definition: SecretDefinition) -> None:
        xml = render_secret_xml(definition)
        target = self._descriptor_path(definition.uuid)
        with self._lock:
            if target.exists():
                raise StorageError(f"Secret {definition.uuid} is already stored in {self.path}")
            self._write_atomic(target, xml.encode("utf-8"))
        logger.debug(f"Saved descriptor for secret {definition.uuid}")

    def save_value(self, uuid: str, value: bytes) -> None:
        encoded = base64.b64encode(value)
        with self._lock:
            self._write_atomic(self._value_path(uuid), encoded)
        logger.debug(f"Saved value for secret {uuid}")

    def delete(self, uuid: str) -> bool:
        removed = False
        with self._lock:
            for path in (self._value_path(uuid), self._descriptor_path(uuid)):
                try:
                    path.unlink()
                    removed = True
                except FileNotFoundError:
                    continue
                except OSError as e:
                    raise StorageError(f"Cannot remove {path}: {e}") from e
        return removed

    def load_all(self) -> Iterator[StoredSecret]:
        """
        Yield stored secrets, skipping unreadable or inconsistent entries.

        A descriptor whose file name does not match its <uuid>, or that is
        ephemeral, is skipped with a warning, as is a corrupt value file.
        """
        with self._lock:
            try:
                descriptor_paths = sorted(self.path.glob(f"*{self.DESCRIPTOR_SUFFIX}"))
            except OSError as e:
                raise StorageError(f"Cannot list {self.path}: {e}") from e

            loaded: List[StoredSecret] = []
            for descriptor_path in descriptor_paths:
                entry = self._load_one(descriptor_path)
                if entry is not None:
                    loaded.append(entry)

        logger.info(f"Loaded {len(loaded)} persistent secrets from {self.path}")
        return iter(loaded)

    def _load_one(self, descriptor_path: Path) -> Optional[StoredSecret]:
        stem = descriptor_path.name[: -len(self.DESCRIPTOR_SUFFIX)]
        try:
            expected_uuid = canonical_uuid(stem)
            definition = parse_secret_xml(descriptor_path.read_text(encoding="utf-8"))
        except (ValueError, OSError, MalformedDescriptorError) as e:
            logger.warning(f"Skipping secret descriptor {descriptor_path.name}: {e}")
            return None

        if definition.uuid != expected_uuid:
            logger.warning(
                f"Skipping secret descriptor {descriptor_path.name}: "
                f"file name does not match UUID {definition.uuid}"
            )
            return None
        if definition.ephemeral:
            logger.warning(f"Skipping ephemeral secret {definition.uuid} found in storage")
            return None

        value_path = self._value_path(definition.uuid)
        if not value_path.exists():
            return definition, None
        try:
            value = base64.b64decode(value_path.read_bytes(), validate=True)
        except (OSError, binascii.Error) as e:
            logger.warning(f"Ignoring unreadable value for secret {definition.uuid}: {e}")
            return definition, None
        return definition, value


# Process-wide memory storage
_process_storage: Optional[MemorySecretStorage] = None
_process_storage_lock = threading.Lock()


def get_process_storage() -> MemorySecretStorage:
    """
    Get the memory storage shared by every connection in this process.

    Returns:
        MemorySecretStorage instance
    """
    global _process_storage
    with _process_storage_lock:
        if _process_storage is None:
            _process_storage = MemorySecretStorage()
        return _process_storage


def reset_process_storage() -> None:
    """Drop the process-wide memory storage (for testing)."""
    global _process_storage
    with _process_storage_lock:
        _process_storage = None


def create_storage(storage_type: str, path: Optional[str] = None) -> SecretStorage:
    """
    Build a storage backend from configuration values.

    Args:
        storage_type: "memory" (the process-wide instance) or "file"
        path: Directory for "file" storage

    Raises:
        ValueError: If the type is unknown or "file" has no path
    """
    if storage_type == "memory":
        return get_process_storage()
    if storage_type == "file":
        if not path:
            raise ValueError("file storage requires a path")
        return DirectorySecretStorage(path)
    raise ValueError(f"Unknown storage type: {storage_type}")
