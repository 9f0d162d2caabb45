"""
Secret Registry.

Identity index, record store and value vault composed behind the
SecretRegistry facade, with pluggable persistence for non-ephemeral secrets.

Author: VirtSecret Team
Date: 2026-10-18
"""

from .registry import SecretRegistry, SecretHandle
from .models import (
    SecretDefinition,
    SecretEvent,
    SecretRecord,
    UsageType,
)
from .persistence import (
    SecretStorage,
    MemorySecretStorage,
    DirectorySecretStorage,
    create_storage,
    get_process_storage,
    reset_process_storage,
)
from .metrics import SecretMetrics
from .xml_codec import parse_secret_xml, render_secret_xml
from .exceptions import (
    SecretError,
    SecretNotFoundError,
    DuplicateSecretError,
    MalformedDescriptorError,
    StaleHandleError,
    ValueNotSetError,
    InvalidFlagsError,
    InvalidValueError,
    SecureClearError,
    OperationDeniedError,
    ConnectionClosedError,
    StorageError,
)

__all__ = [
    # Facade
    "SecretRegistry",
    "SecretHandle",
    # Models
    "SecretDefinition",
    "SecretEvent",
    "SecretRecord",
    "UsageType",
    # Persistence
    "SecretStorage",
    "MemorySecretStorage",
    "DirectorySecretStorage",
    "create_storage",
    "get_process_storage",
    "reset_process_storage",
    # Metrics
    "SecretMetrics",
    # XML
    "parse_secret_xml",
    "render_secret_xml",
    # Exceptions
    "SecretError",
    "SecretNotFoundError",
    "DuplicateSecretError",
    "MalformedDescriptorError",
    "StaleHandleError",
    "ValueNotSetError",
    "InvalidFlagsError",
    "InvalidValueError",
    "SecureClearError",
    "OperationDeniedError",
    "ConnectionClosedError",
    "StorageError",
]
