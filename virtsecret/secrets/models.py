"""
Secret Models.

Pydantic definition model parsed from secret XML descriptors, plus the
in-memory record owned by the registry.

Author: VirtSecret Team
Date: 2026-10-18
"""

import uuid as uuidlib
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class UsageType(int, Enum):
    """Secret usage types, numbered as in the hypervisor API."""

    NONE = 0
    VOLUME = 1
    CEPH = 2
    ISCSI = 3
    TLS = 4
    VTPM = 5

    @property
    def label(self) -> str:
        """Lowercase name used in XML descriptors."""
        return self.name.lower()

    @classmethod
    def parse(cls, value: Union["UsageType", int, str]) -> "UsageType":
        """Coerce an enum member, integer code or lowercase label.

        Raises:
            ValueError: If the value names no known usage type
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, bool):
            raise ValueError(f"Unknown usage type: {value!r}")
        if isinstance(value, int):
            return cls(value)
        if isinstance(value, str):
            try:
                return cls[value.strip().upper()]
            except KeyError:
                raise ValueError(f"Unknown usage type: {value!r}") from None
        raise ValueError(f"Unknown usage type: {value!r}")


# Element under <usage> carrying the usage ID for each type
USAGE_ID_ELEMENTS = {
    UsageType.VOLUME: "volume",
    UsageType.CEPH: "name",
    UsageType.ISCSI: "target",
    UsageType.TLS: "name",
    UsageType.VTPM: "name",
}


class SecretEvent(str, Enum):
    """Secret lifecycle events delivered to connection callbacks."""

    DEFINED = "defined"
    UNDEFINED = "undefined"
    VALUE_CHANGED = "value_changed"


def canonical_uuid(value: str) -> str:
    """Return the lowercase 8-4-4-4-12 form of a UUID string.

    Raises:
        ValueError: If the value is not a UUID
    """
    if not isinstance(value, str):
        raise ValueError(f"UUID must be a string, got {type(value).__name__}")
    return str(uuidlib.UUID(value.strip()))


class SecretDefinition(BaseModel):
    """Immutable secret metadata, as described by a secret XML descriptor.

    Attributes:
        uuid: Canonical UUID string
        usage_type: Usage classification
        usage_id: Identifier scoped to usage_type (None for NONE)
        description: Free-form description
        ephemeral: Never persisted; discarded when the connection closes
        private: Value presence is redacted from XML renderings
    """

    uuid: str = Field(default_factory=lambda: str(uuidlib.uuid4()))
    usage_type: UsageType = UsageType.NONE
    usage_id: Optional[str] = None
    description: Optional[str] = None
    ephemeral: bool = False
    private: bool = False

    model_config = ConfigDict(frozen=True)

    @field_validator("uuid", mode="before")
    @classmethod
    def validate_uuid(cls, v: str) -> str:
        """Normalize the UUID to its canonical form."""
        return canonical_uuid(v)

    @field_validator("usage_type", mode="before")
    @classmethod
    def validate_usage_type(cls, v):
        """Accept enum members, integer codes and labels."""
        return UsageType.parse(v)

    @model_validator(mode="after")
    def validate_usage_id(self) -> "SecretDefinition":
        """Require a usage ID for every usage type except NONE."""
        if self.usage_type == UsageType.NONE:
            if self.usage_id:
                raise ValueError("usage ID not allowed for usage type 'none'")
        elif not self.usage_id or not self.usage_id.strip():
            raise ValueError(f"usage ID required for usage type '{self.usage_type.label}'")
        return self

    @property
    def usage_key(self) -> Optional[Tuple[UsageType, str]]:
        """Secondary lookup key, or None when the secret has no usage."""
        if self.usage_type == UsageType.NONE:
            return None
        return (self.usage_type, self.usage_id)


@dataclass(eq=False)
class SecretRecord:
    """A secret known to a registry.

    Metadata lives in the frozen ``definition``; the value lives in the
    value vault. ``defined`` turns False once the record is destroyed, which
    invalidates every handle still pointing at it.
    """

    definition: SecretDefinition
    defined: bool = False

    @property
    def uuid(self) -> str:
        return self.definition.uuid

    @property
    def usage_type(self) -> UsageType:
        return self.definition.usage_type

    @property
    def usage_id(self) -> Optional[str]:
        return self.definition.usage_id

    @property
    def usage_key(self) -> Optional[Tuple[UsageType, str]]:
        return self.definition.usage_key

    @property
    def ephemeral(self) -> bool:
        return self.definition.ephemeral

    @property
    def private(self) -> bool:
        return self.definition.private
