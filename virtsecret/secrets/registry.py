"""
Secret Registry.

Public facade over the identity index, record store and value vault, and the
client-side ``SecretHandle`` it hands out.

Records and handles have separate lifetimes: a handle is a reference to a
record plus its own ``freed`` flag, and a record turns undefined when it is
destroyed. Operations on a freed handle, or on a handle whose record was
undefined, raise ``StaleHandleError``.

Author: VirtSecret Team
Date: 2026-10-18
"""

import logging
import threading
import time
from functools import wraps
from typing import Any, Callable, List, Optional, Union

from .exceptions import (
    ConnectionClosedError,
    DuplicateSecretError,
    IndexKeyError,
    InvalidFlagsError,
    InvalidValueError,
    OperationDeniedError,
    SecretError,
    SecretNotFoundError,
    SecureClearError,
    StaleHandleError,
    StorageError,
    ValueNotSetError,
    VaultEntryMissing,
)
from .identity_index import IdentityIndex
from .metrics import SecretMetrics
from .models import SecretDefinition, SecretEvent, SecretRecord, UsageType
from .persistence import SecretStorage
from .record_store import SecretRecordStore
from .vault import ValueVault, secure_zero

logger = logging.getLogger(__name__)


DEFAULT_MAX_VALUE_SIZE = 64 * 1024

EventSink = Callable[[str, SecretEvent], None]
SecretValueInput = Union[bytes, bytearray, memoryview, str]


def _tracked(operation: str):
    """Record duration and error metrics for a registry operation."""
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(self: "SecretRegistry", *args, **kwargs) -> Any:
            start = time.perf_counter()
            try:
                return func(self, *args, **kwargs)
            except SecretError as e:
                if self.metrics is not None:
                    self.metrics.track_error(operation, e.error_code)
                raise
            finally:
                if self.metrics is not None:
                    self.metrics.track_operation(operation, time.perf_counter() - start)
        return wrapper
    return decorator


def _check_flags(operation: str, flags: int) -> None:
    if isinstance(flags, bool) or not isinstance(flags, int) or flags != 0:
        raise InvalidFlagsError(operation, flags)


class SecretHandle:
    """
    Client reference to a secret.

    Freeing a handle never affects the secret; undefining the secret
    invalidates every handle that refers to it.

    Attributes:
        connection: Owning connection, if the registry has one
    """

    def __init__(self, registry: "SecretRegistry", record: SecretRecord):
        self._registry = registry
        self._record = record
        self._freed = False
        self.connection = registry.owner

    def _live_record(self) -> SecretRecord:
        if self._freed:
            raise StaleHandleError(self._record.uuid, reason="freed")
        if not self._record.defined:
            raise StaleHandleError(self._record.uuid)
        return self._record

    @property
    def uuid(self) -> str:
        """Canonical UUID string."""
        return self._live_record().uuid

    @property
    def usage_type(self) -> UsageType:
        return self._live_record().usage_type

    @property
    def usage_id(self) -> Optional[str]:
        return self._live_record().usage_id

    def xml_desc(self, flags: int = 0) -> str:
        """Render the secret's XML descriptor."""
        return self._registry.xml_desc(self._live_record(), flags=flags)

    def set_value(self, value: SecretValueInput, flags: int = 0) -> None:
        """Store the secret value; str values are encoded as UTF-8."""
        self._registry.set_value(self._live_record(), value, flags=flags)

    def get_value(self, flags: int = 0) -> bytes:
        """Return the secret value."""
        return self._registry.get_value(self._live_record(), flags=flags)

    def undefine(self) -> None:
        """Remove the secret from the registry and its storage."""
        self._registry.undefine(self._live_record())

    def free(self) -> None:
        """Release this handle. Idempotent; the secret is untouched."""
        self._freed = True

    @property
    def is_valid(self) -> bool:
        """False once the handle is freed or its secret undefined."""
        return not self._freed and self._record.defined

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SecretHandle):
            return NotImplemented
        return self._record is other._record

    def __hash__(self) -> int:
        return id(self._record)

    def __repr__(self) -> str:
        state = "freed" if self._freed else ("defined" if self._record.defined else "undefined")
        return f"<SecretHandle {self._record.uuid} {state}>"


class SecretRegistry:
    """
    Secret registry bound to one connection context.

    Define runs create and index insert as one unit; undefine runs storage
    removal, secure clear, index removal and destroy as one unit. Both hold
    the registry lock, which the index and vault share.

    Attributes:
        metrics: Optional Prometheus metrics
        owner: Connection handed to handles as ``handle.connection``
    """

    def __init__(
        self,
        storage: Optional[SecretStorage] = None,
        read_only: bool = False,
        max_value_size: int = DEFAULT_MAX_VALUE_SIZE,
        metrics: Optional[SecretMetrics] = None,
        event_sink: Optional[EventSink] = None,
        owner: Any = None,
    ):
        """Initialize the registry.

        Args:
            storage: Backend for persistent secrets (None keeps everything in memory)
            read_only: Deny mutations and value reads
            max_value_size: Largest accepted value in bytes
            metrics: Metrics collector
            event_sink: Called with (uuid, event) after lifecycle changes
            owner: Owning connection
        """
        self._lock = threading.RLock()
        self._index = IdentityIndex(lock=self._lock)
        self._vault = ValueVault(lock=self._lock)
        self._records = SecretRecordStore()
        self._storage = storage
        self._read_only = read_only
        self._max_value_size = max_value_size
        self._event_sink = event_sink
        self._closed = False
        self.metrics = metrics
        self.owner = owner

    @property
    def vault(self) -> ValueVault:
        return self._vault

    @property
    def read_only(self) -> bool:
        return self._read_only

    @property
    def closed(self) -> bool:
        return self._closed

    # Guards

    def _check_open(self) -> None:
        if self._closed:
            raise ConnectionClosedError()

    def _check_privileged(self, operation: str) -> None:
        if self._read_only:
            raise OperationDeniedError(operation)

    def _require_defined(self, record: SecretRecord) -> None:
        if not record.defined:
            raise StaleHandleError(record.uuid)

    def _persist(self, record: SecretRecord) -> bool:
        return self._storage is not None and not record.ephemeral

    def _emit(self, uuid: str, event: SecretEvent) -> None:
        if self._event_sink is not None:
            self._event_sink(uuid, event)

    def _update_gauges(self) -> None:
        if self.metrics is None:
            return
        records = self._index.records()
        ephemeral = sum(1 for r in records if r.ephemeral)
        self.metrics.update_defined(ephemeral, len(records) - ephemeral)

    def _coerce_value(self, value: SecretValueInput):
        if isinstance(value, str):
            value = value.encode("utf-8")
        elif not isinstance(value, (bytes, bytearray, memoryview)):
            raise InvalidValueError(f"expected bytes, got {type(value).__name__}")
        size = memoryview(value).nbytes
        if size > self._max_value_size:
            raise InvalidValueError(f"{size} bytes exceeds limit of {self._max_value_size}")
        return value

    # Enumeration

    @_tracked("count_secrets")
    def count_secrets(self) -> int:
        """Number of defined secrets."""
        self._check_open()
        return self._index.count()

    @_tracked("list_secret_uuids")
    def list_secret_uuids(self) -> List[str]:
        """UUIDs of all defined secrets, as one consistent snapshot."""
        self._check_open()
        return list(self._index.list_all())

    # Lookup and define

    def _handle(self, record: SecretRecord) -> SecretHandle:
        return SecretHandle(self, record)

    @_tracked("lookup_by_uuid")
    def lookup_by_uuid(self, uuid: str) -> SecretHandle:
        """
        Look up a secret by UUID.

        Raises:
            SecretNotFoundError: If no secret has this UUID
        """
        self._check_open()
        try:
            return self._handle(self._index.find_by_uuid(uuid))
        except IndexKeyError as e:
            raise SecretNotFoundError(e.key) from None

    @_tracked("lookup_by_usage")
    def lookup_by_usage(self, usage_type: Union[UsageType, int, str], usage_id: str) -> SecretHandle:
        """
        Look up a secret by usage type and usage ID.

        Raises:
            SecretNotFoundError: If no secret has this usage pair
        """
        self._check_open()
        try:
            usage = UsageType.parse(usage_type)
        except ValueError:
            raise SecretNotFoundError(f"{usage_type}:{usage_id}") from None
        try:
            return self._handle(self._index.find_by_usage(usage, usage_id))
        except IndexKeyError as e:
            raise SecretNotFoundError(e.key) from None

    @_tracked("define_xml")
    def define_xml(self, xml: str, flags: int = 0) -> SecretHandle:
        """
        Define a secret from an XML descriptor.

        Args:
            xml: Secret XML descriptor
            flags: Reserved, must be 0

        Returns:
            Handle to the new secret

        Raises:
            InvalidFlagsError: If flags is nonzero
            MalformedDescriptorError: If the descriptor is invalid
            DuplicateSecretError: If the UUID or usage pair is taken
            StorageError: If a persistent secret cannot be saved
        """
        self._check_open()
        self._check_privileged("define_xml")
        _check_flags("define_xml", flags)

        return self._define(self._records.create(xml))

    def _define(self, record: SecretRecord, value: Optional[SecretValueInput] = None) -> SecretHandle:
        self._register(record, persist=True, value=value)
        logger.info(
            f"Defined secret {record.uuid} "
            f"(usage={record.usage_type.label}, ephemeral={record.ephemeral})"
        )
        self._update_gauges()
        self._emit(record.uuid, SecretEvent.DEFINED)
        return self._handle(record)

    def _register(self, record: SecretRecord, persist: bool, value: Optional[bytes] = None) -> None:
        """Insert a record in index and vault, or leave no trace of it."""
        with self._lock:
            try:
                self._index.insert(record)
            except IndexKeyError as e:
                self._records.destroy(record)
                raise DuplicateSecretError(e.key, e.existing_uuid) from None

            self._vault.register(record.uuid)
            record.defined = True
            stored = False
            try:
                if persist and self._persist(record):
                    self._storage.save_definition(record.definition)
                    stored = True
                    if value is not None:
                        self._storage.save_value(record.uuid, value)
                if value is not None:
                    self._vault.set_value(record.uuid, value)
            except SecretError:
                try:
                    if stored:
                        self._storage.delete(record.uuid)
                finally:
                    self._discard(record)
                raise

    def _discard(self, record: SecretRecord, delete_stored: bool = False) -> None:
        """
        Secure-clear, unindex and destroy a record.

        The stored copy, if requested, is deleted only after the value was
        cleared. If that delete fails the record stays defined with an empty
        value slot, so undefine can be retried.
        """
        self._vault.clear(record.uuid)
        if delete_stored and self._persist(record):
            try:
                self._storage.delete(record.uuid)
            except StorageError:
                self._vault.register(record.uuid)
                raise
        self._index.remove(record.uuid)
        self._records.destroy(record)

    def load_persistent(self) -> int:
        """
        Load persistent secrets from storage into the registry.

        Entries that collide with an already defined secret are skipped.

        Returns:
            Number of secrets loaded
        """
        self._check_open()
        if self._storage is None:
            return 0

        loaded = 0
        for definition, value in self._storage.load_all():
            record = self._records.from_definition(definition)
            try:
                self._register(record, persist=False, value=value)
            except DuplicateSecretError as e:
                logger.warning(f"Skipping stored secret {definition.uuid}: {e.message}")
                continue
            loaded += 1

        self._update_gauges()
        logger.info(f"Loaded {loaded} persistent secrets")
        return loaded

    @_tracked("define")
    def define(self, definition: SecretDefinition, value: Optional[SecretValueInput] = None) -> SecretHandle:
        """
        Define a secret from an already validated definition.

        Same contract as define_xml; an initial value is stored together
        with the definition.
        """
        self._check_open()
        self._check_privileged("define")
        if value is not None:
            value = self._coerce_value(value)
        return self._define(self._records.from_definition(definition), value)

    # Per-secret operations

    @_tracked("xml_desc")
    def xml_desc(self, record: SecretRecord, flags: int = 0) -> str:
        """
        Render a secret's descriptor.

        Private secrets never reveal whether a value is set.
        """
        self._check_open()
        _check_flags("xml_desc", flags)
        with self._lock:
            self._require_defined(record)
            value_set = self._vault.has_value(record.uuid)
        return self._records.render(record, value_set=value_set)

    @_tracked("set_value")
    def set_value(self, record: SecretRecord, value: SecretValueInput, flags: int = 0) -> None:
        """
        Store a secret value, replacing any previous one.

        Raises:
            StaleHandleError: If the secret was undefined
            InvalidValueError: If the value is not bytes or is too large
            StorageError: If a persistent value cannot be saved
            SecureClearError: If the old value could not be zeroed; the old
                value stays in place
        """
        self._check_open()
        self._check_privileged("set_value")
        _check_flags("set_value", flags)
        value = self._coerce_value(value)

        with self._lock:
            self._require_defined(record)
            persist = self._persist(record)
            previous = self._vault.copy_value(record.uuid) if persist else None
            try:
                if persist:
                    self._storage.save_value(record.uuid, value)
                try:
                    self._vault.set_value(record.uuid, value)
                except VaultEntryMissing as e:
                    logger.error(f"Defined secret {record.uuid} has no vault slot ({e.reason})")
                    raise StaleHandleError(record.uuid) from None
                except SecureClearError:
                    # old value is still installed; put its stored copy back
                    if previous is not None:
                        self._storage.save_value(record.uuid, previous)
                    raise
            finally:
                if previous is not None:
                    secure_zero(previous)

        logger.info(f"Set value of secret {record.uuid}")
        self._emit(record.uuid, SecretEvent.VALUE_CHANGED)

    @_tracked("get_value")
    def get_value(self, record: SecretRecord, flags: int = 0) -> bytes:
        """
        Return a secret value.

        Raises:
            StaleHandleError: If the secret was undefined
            ValueNotSetError: If no value was ever set
            OperationDeniedError: On a read-only registry
        """
        self._check_open()
        self._check_privileged("get_value")
        _check_flags("get_value", flags)

        with self._lock:
            self._require_defined(record)
            try:
                return self._vault.get_value(record.uuid)
            except VaultEntryMissing as e:
                logger.debug(f"No value for secret {record.uuid}: {e.reason}")
                if e.reason == VaultEntryMissing.VALUE_UNSET:
                    raise ValueNotSetError(record.uuid) from None
                raise StaleHandleError(record.uuid) from None

    @_tracked("undefine")
    def undefine(self, record: SecretRecord) -> None:
        """
        Remove a secret, its stored copy and its in-memory value.

        The value buffer is zeroed first, then the stored copy is deleted,
        then the record is released. If zeroing fails nothing is changed.

        Raises:
            StaleHandleError: If the secret was already undefined
            SecureClearError: If the value could not be cleared
            StorageError: If the stored copy cannot be removed; the secret
                stays defined without an in-memory value
        """
        self._check_open()
        self._check_privileged("undefine")

        with self._lock:
            self._require_defined(record)
            self._discard(record, delete_stored=True)

        logger.info(f"Undefined secret {record.uuid}")
        self._update_gauges()
        self._emit(record.uuid, SecretEvent.UNDEFINED)

    # Teardown

    def close(self) -> None:
        """
        Discard every in-memory record and value.

        Ephemeral secrets are gone for good; persistent ones remain in
        storage. Clearing is attempted for every record; the first
        SecureClearError is raised after all others were tried.
        """
        if self._closed:
            return

        first_error: Optional[SecureClearError] = None
        discarded = 0
        with self._lock:
            for record in self._index.records():
                try:
                    self._discard(record)
                except SecureClearError as e:
                    logger.error(f"Failed to clear secret {record.uuid} on close: {e.message}")
                    if first_error is None:
                        first_error = e
                    continue
                discarded += 1
            self._closed = first_error is None

        self._update_gauges()
        logger.info(f"Closed secret registry, discarded {discarded} in-memory secrets")
        if first_error is not None:
            raise first_error
