"""
VirtSecret Connection.

A connection context owns exactly one secret registry for its lifetime:
the registry is built and loaded from storage when the connection opens,
and every in-memory secret is securely cleared when it closes.

Author: VirtSecret Team
Date: 2026-10-18
"""

import logging
import threading
import uuid as uuidlib
from typing import Callable, List, Optional, Union

from .core.config_manager import VirtSecretConfig
from .core.logging_config import clear_correlation_id, log_with_context, set_correlation_id
from .secrets.metrics import SecretMetrics
from .secrets.models import SecretEvent, UsageType
from .secrets.persistence import SecretStorage, create_storage
from .secrets.registry import SecretHandle, SecretRegistry

logger = logging.getLogger(__name__)


EventCallback = Callable[["Connection", str, SecretEvent], None]


class Connection:
    """
    Connection context for secret operations.

    Usage:
        with Connection.open() as conn:
            secret = conn.define_secret_xml(xml)
            secret.set_value(b"passphrase")

    Attributes:
        id: Connection identifier, used as logging correlation ID
        config: Effective configuration
        metrics: Per-connection Prometheus metrics, or None if disabled
    """

    def __init__(
        self,
        config: Optional[VirtSecretConfig] = None,
        storage: Optional[SecretStorage] = None,
        read_only: Optional[bool] = None,
    ):
        """
        Build the connection and its registry.

        Args:
            config: Configuration (defaults if None)
            storage: Storage backend overriding the configured one, e.g. a
                MemorySecretStorage shared by several connections
            read_only: Overrides config.read_only
        """
        self.id = str(uuidlib.uuid4())
        self.config = config or VirtSecretConfig()
        if read_only is None:
            read_only = self.config.read_only

        if storage is None:
            storage = create_storage(self.config.storage.type, self.config.storage.path)
        self._storage = storage

        self.metrics = SecretMetrics() if self.config.metrics.enabled else None
        self._callbacks: List[EventCallback] = []
        self._callbacks_lock = threading.Lock()

        self._registry = SecretRegistry(
            storage=storage,
            read_only=read_only,
            max_value_size=self.config.max_value_size,
            metrics=self.metrics,
            event_sink=self._dispatch_event,
            owner=self,
        )

    @classmethod
    def open(
        cls,
        config: Optional[VirtSecretConfig] = None,
        storage: Optional[SecretStorage] = None,
        read_only: Optional[bool] = None,
    ) -> "Connection":
        """Create a connection and load persistent secrets from storage."""
        conn = cls(config=config, storage=storage, read_only=read_only)
        set_correlation_id(conn.id)
        try:
            loaded = conn._registry.load_persistent()
            log_with_context(
                logger, logging.INFO, "Opened secret connection",
                connection=conn.id, read_only=conn.read_only, secrets_loaded=loaded,
            )
        except Exception:
            conn._registry.close()
            raise
        finally:
            clear_correlation_id()
        return conn

    @property
    def registry(self) -> SecretRegistry:
        return self._registry

    @property
    def read_only(self) -> bool:
        return self._registry.read_only

    def is_alive(self) -> bool:
        return not self._registry.closed

    def close(self) -> None:
        """
        Close the connection.

        Ephemeral secrets are discarded and every in-memory value is zeroed.
        Idempotent.
        """
        if self._registry.closed:
            return
        self._registry.close()
        with self._callbacks_lock:
            self._callbacks.clear()
        log_with_context(logger, logging.INFO, "Closed secret connection", connection=self.id)

    def __enter__(self) -> "Connection":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # Secret operations

    def num_of_secrets(self) -> int:
        """Number of defined secrets."""
        return self._registry.count_secrets()

    def list_secrets(self) -> List[str]:
        """UUIDs of all defined secrets."""
        return self._registry.list_secret_uuids()

    def lookup_secret_by_uuid(self, uuid: str) -> SecretHandle:
        """Look up a secret by UUID; raises SecretNotFoundError."""
        return self._registry.lookup_by_uuid(uuid)

    def lookup_secret_by_usage(self, usage_type: Union[UsageType, int, str], usage_id: str) -> SecretHandle:
        """Look up a secret by usage pair; raises SecretNotFoundError."""
        return self._registry.lookup_by_usage(usage_type, usage_id)

    def define_secret_xml(self, xml: str, flags: int = 0) -> SecretHandle:
        """Define a secret from XML; flags must be 0."""
        return self._registry.define_xml(xml, flags=flags)

    # Events

    def register_event_callback(self, callback: EventCallback) -> None:
        """
        Register a secret lifecycle callback.

        Callbacks are invoked as ``callback(connection, uuid, event)`` on the
        thread that performed the operation, after the operation completed.
        """
        with self._callbacks_lock:
            self._callbacks.append(callback)

    def deregister_event_callback(self, callback: EventCallback) -> None:
        """Remove a previously registered callback; raises ValueError if unknown."""
        with self._callbacks_lock:
            self._callbacks.remove(callback)

    def _dispatch_event(self, uuid: str, event: SecretEvent) -> None:
        with self._callbacks_lock:
            callbacks = list(self._callbacks)
        for callback in callbacks:
            try:
                callback(self, uuid, event)
            except Exception as e:
                logger.error(f"Error in secret event callback for {uuid} ({event.value}): {e}", exc_info=True)

    def __repr__(self) -> str:
        state = "open" if self.is_alive() else "closed"
        return f"<Connection {self.id} {state}>"
