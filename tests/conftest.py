"""
Shared fixtures for VirtSecret tests.
"""

from typing import Optional

import pytest

from virtsecret.secrets.persistence import reset_process_storage
from virtsecret.secrets.registry import SecretRegistry


@pytest.fixture(autouse=True)
def fresh_process_storage():
    """Give each test an empty process-wide memory storage."""
    reset_process_storage()
    yield
    reset_process_storage()


def secret_xml(
    usage_type: Optional[str] = "volume",
    usage_id: Optional[str] = "vol-1",
    uuid: Optional[str] = None,
    ephemeral: bool = False,
    private: bool = False,
    description: Optional[str] = None,
) -> str:
    """Build a secret XML descriptor."""
    id_tags = {"volume": "volume", "ceph": "name", "iscsi": "target", "tls": "name", "vtpm": "name"}
    parts = [
        f"<secret ephemeral='{'yes' if ephemeral else 'no'}' private='{'yes' if private else 'no'}'>"
    ]
    if uuid:
        parts.append(f"<uuid>{uuid}</uuid>")
    if description:
        parts.append(f"<description>{description}</description>")
    if usage_type and usage_type != "none":
        tag = id_tags[usage_type]
        parts.append(f"<usage type='{usage_type}'><{tag}>{usage_id}</{tag}></usage>")
    parts.append("</secret>")
    return "".join(parts)


@pytest.fixture
def make_xml():
    """Factory for secret XML descriptors."""
    return secret_xml


@pytest.fixture
def registry():
    """Create a fresh in-memory registry for each test."""
    reg = SecretRegistry()
    yield reg
    reg.close()
