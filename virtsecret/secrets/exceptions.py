"""
Secret Exceptions.

Error taxonomy for the secret registry. Public errors carry an error code
that transport layers can map onto their own wire representation.

Internal errors (``IndexKeyError``, ``VaultEntryMissing``) are raised by the
index and vault components and translated by the registry facade.

Author: VirtSecret Team
Date: 2026-10-18
"""

from typing import Optional


class SecretError(Exception):
    """Base exception for secret registry errors."""

    def __init__(self, message: str, error_code: str = "InternalError"):
        """Initialize secret error.

        Args:
            message: Error message
            error_code: Stable error code
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code


class SecretNotFoundError(SecretError):
    """Raised when no secret matches a UUID or usage pair."""

    def __init__(self, key: str):
        """Initialize secret not found error.

        Args:
            key: UUID or usage key that was looked up
        """
        super().__init__(f"Secret '{key}' not found", error_code="SecretNotFound")
        self.key = key


class DuplicateSecretError(SecretError):
    """Raised when a definition collides on UUID or usage pair."""

    def __init__(self, key: str, existing_uuid: Optional[str] = None):
        """Initialize duplicate secret error.

        Args:
            key: Colliding key
            existing_uuid: UUID of the secret already holding the key
        """
        message = f"Secret '{key}' already defined"
        if existing_uuid:
            message = f"{message} by secret '{existing_uuid}'"
        super().__init__(message, error_code="Conflict")
        self.key = key
        self.existing_uuid = existing_uuid


class MalformedDescriptorError(SecretError):
    """Raised when a secret XML descriptor cannot be parsed or is incomplete."""

    def __init__(self, reason: str):
        """Initialize malformed descriptor error.

        Args:
            reason: Why the descriptor was rejected
        """
        super().__init__(f"Malformed secret descriptor: {reason}", error_code="BadParameter")
        self.reason = reason


class StaleHandleError(SecretError):
    """Raised when a handle refers to a secret that was undefined or freed."""

    def __init__(self, uuid: str, reason: str = "undefined"):
        super().__init__(f"Secret handle '{uuid}' is stale ({reason})", error_code="StaleHandle")
        self.uuid = uuid
        self.reason = reason


class ValueNotSetError(SecretError):
    """Raised when reading the value of a secret that never had one set."""

    def __init__(self, uuid: str):
        super().__init__(f"Secret '{uuid}' has no value", error_code="ValueNotSet")
        self.uuid = uuid


class InvalidFlagsError(SecretError):
    """Raised when reserved flags are nonzero."""

    def __init__(self, operation: str, flags):
        super().__init__(
            f"Unsupported flags {flags!r} for {operation}, must be 0",
            error_code="BadParameter",
        )
        self.operation = operation
        self.flags = flags


class InvalidValueError(SecretError):
    """Raised when a secret value is rejected."""

    def __init__(self, reason: str):
        super().__init__(f"Invalid secret value: {reason}", error_code="BadParameter")
        self.reason = reason


class SecureClearError(SecretError):
    """Raised when a value buffer could not be zeroed; the destroy is aborted."""

    def __init__(self, uuid: str, reason: str):
        super().__init__(
            f"Failed to clear value of secret '{uuid}': {reason}",
            error_code="InternalError",
        )
        self.uuid = uuid
        self.reason = reason


class OperationDeniedError(SecretError):
    """Raised when a read-only connection attempts a privileged operation."""

    def __init__(self, operation: str):
        super().__init__(
            f"Operation '{operation}' forbidden on read-only connection",
            error_code="Forbidden",
        )
        self.operation = operation


class ConnectionClosedError(SecretError):
    """Raised when using a connection after it was closed."""

    def __init__(self, message: str = "Connection is closed"):
        super().__init__(message, error_code="InvalidConnection")


class StorageError(SecretError):
    """Raised when the persistent storage backend fails."""

    def __init__(self, message: str):
        super().__init__(message, error_code="StorageError")


class IndexKeyError(Exception):
    """Internal: identity index lookup or insert failure."""

    def __init__(self, key: str, kind: str, existing_uuid: Optional[str] = None):
        super().__init__(f"{kind}: {key}")
        self.key = key
        self.kind = kind
        self.existing_uuid = existing_uuid


class VaultEntryMissing(Exception):
    """Internal: vault has no usable entry for a UUID.

    ``reason`` is ``"unknown-record"`` when no record owns the UUID and
    ``"value-unset"`` when the record exists but no value was ever stored.
    """

    UNKNOWN_RECORD = "unknown-record"
    VALUE_UNSET = "value-unset"

    def __init__(self, uuid: str, reason: str):
        super().__init__(f"{uuid}: {reason}")
        self.uuid = uuid
        self.reason = reason
