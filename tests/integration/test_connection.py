"""
Integration tests for connections, persistence and lifecycle events.

Author: VirtSecret Team
Date: 2026-10-18
"""

import logging

import pytest

from virtsecret import Connection
from virtsecret.core.config_manager import VirtSecretConfig
from virtsecret.secrets import (
    ConnectionClosedError,
    MemorySecretStorage,
    OperationDeniedError,
    SecretEvent,
    SecretNotFoundError,
    StaleHandleError,
    StorageError,
    UsageType,
)


UUID = "c1f11a6d-8c5d-4a3e-ac7a-4e171c5e0d4a"


@pytest.fixture
def file_config(tmp_path):
    """Configuration with file-backed storage."""
    return VirtSecretConfig(storage={"type": "file", "path": str(tmp_path / "secrets")})


class TestSecretWorkflow:
    """End-to-end secret workflows."""

    def test_volume_secret_lifecycle(self, make_xml):
        """Test define, set, get, undefine and lookup of a volume secret."""
        with Connection.open() as conn:
            secret = conn.define_secret_xml(make_xml(usage_type="volume", usage_id="vol-1"))
            secret.set_value("s3cr3t")
            assert secret.get_value() == b"s3cr3t"

            secret.undefine()

            with pytest.raises(SecretNotFoundError):
                conn.lookup_secret_by_usage(UsageType.VOLUME, "vol-1")

    def test_connection_operations(self, make_xml):
        """Test connection-level enumeration and lookups."""
        with Connection.open() as conn:
            assert conn.num_of_secrets() == 0
            assert conn.list_secrets() == []

            secret = conn.define_secret_xml(make_xml(uuid=UUID, usage_type="iscsi", usage_id="iqn.2013-07.com.example:pool"))

            assert conn.num_of_secrets() == 1
            assert conn.list_secrets() == [UUID]
            assert conn.lookup_secret_by_uuid(UUID) == secret
            assert conn.lookup_secret_by_usage("iscsi", "iqn.2013-07.com.example:pool") == secret
            assert secret.connection is conn

    def test_operations_after_close(self, make_xml):
        """Test a closed connection rejects operations."""
        conn = Connection.open()
        secret = conn.define_secret_xml(make_xml())
        secret.set_value(b"x")

        conn.close()
        conn.close()

        assert not conn.is_alive()
        with pytest.raises(ConnectionClosedError):
            conn.num_of_secrets()
        with pytest.raises(ConnectionClosedError):
            conn.define_secret_xml(make_xml(usage_id="vol-2"))
        with pytest.raises(StaleHandleError):
            secret.get_value()

    def test_metrics_per_connection(self, make_xml):
        """Test each connection collects its own metrics."""
        with Connection.open() as first, Connection.open() as second:
            first.define_secret_xml(make_xml())

            sample = "secret_operations_total"
            assert first.metrics.registry.get_sample_value(sample, {"operation": "define_xml"}) == 1
            assert second.metrics.registry.get_sample_value(sample, {"operation": "define_xml"}) is None

    def test_metrics_disabled(self):
        """Test metrics can be turned off."""
        with Connection.open(VirtSecretConfig(metrics={"enabled": False})) as conn:
            assert conn.metrics is None
            assert conn.num_of_secrets() == 0


class TestPersistence:
    """Test secrets outliving a connection."""

    def test_reopen_file_storage(self, file_config, tmp_path, make_xml):
        """Test persistent secrets are reloaded from disk and ephemeral ones are not."""
        with Connection.open(file_config) as conn:
            conn.define_secret_xml(make_xml(uuid=UUID, usage_id="vol-1")).set_value(b"\x00disk-key\x00")
            conn.define_secret_xml(make_xml(usage_id="vol-2", ephemeral=True)).set_value(b"tmp")

        files = sorted(p.name for p in (tmp_path / "secrets").iterdir())
        assert files == [f"{UUID}.base64", f"{UUID}.xml"]

        with Connection.open(file_config) as conn:
            assert conn.list_secrets() == [UUID]
            assert conn.lookup_secret_by_usage("volume", "vol-1").get_value() == b"\x00disk-key\x00"
            with pytest.raises(SecretNotFoundError):
                conn.lookup_secret_by_usage("volume", "vol-2")

    def test_undefine_removes_files(self, file_config, tmp_path, make_xml):
        """Test undefine deletes the stored copy."""
        with Connection.open(file_config) as conn:
            secret = conn.define_secret_xml(make_xml(uuid=UUID))
            secret.set_value(b"x")
            secret.undefine()

        assert list((tmp_path / "secrets").iterdir()) == []
        with Connection.open(file_config) as conn:
            assert conn.num_of_secrets() == 0

    def test_default_storage_outlives_connection(self, make_xml):
        """Test persistent secrets survive in the process-wide default storage."""
        with Connection.open() as conn:
            conn.define_secret_xml(make_xml(uuid=UUID, usage_id="vol-1")).set_value(b"kept")
            conn.define_secret_xml(make_xml(usage_id="vol-2", ephemeral=True)).set_value(b"dropped")

        with Connection.open() as conn:
            assert conn.num_of_secrets() == 1
            assert conn.lookup_secret_by_usage("volume", "vol-1").get_value() == b"kept"
            with pytest.raises(SecretNotFoundError):
                conn.lookup_secret_by_usage("volume", "vol-2")

    def test_concurrent_connections_same_uuid(self, make_xml):
        """Test a connection cannot define over a secret stored by another."""
        with Connection.open() as first, Connection.open() as second:
            first.define_secret_xml(make_xml(uuid=UUID, usage_id="vol-1")).set_value(b"first")

            with pytest.raises(StorageError):
                second.define_secret_xml(make_xml(uuid=UUID, usage_id="vol-2"))
            assert second.num_of_secrets() == 0

        with Connection.open() as conn:
            assert conn.lookup_secret_by_uuid(UUID).get_value() == b"first"

    def test_shared_memory_storage(self, make_xml):
        """Test connections sharing a storage instance see stored secrets on open."""
        storage = MemorySecretStorage()
        with Connection.open(storage=storage) as conn:
            conn.define_secret_xml(make_xml(uuid=UUID)).set_value(b"shared")

        with Connection.open(storage=storage) as conn:
            assert conn.lookup_secret_by_uuid(UUID).get_value() == b"shared"

    def test_read_only_connection(self, make_xml):
        """Test read-only connections can look up but not change or read values."""
        storage = MemorySecretStorage()
        with Connection.open(storage=storage) as conn:
            conn.define_secret_xml(make_xml(uuid=UUID)).set_value(b"x")

        with Connection.open(storage=storage, read_only=True) as conn:
            assert conn.read_only
            secret = conn.lookup_secret_by_uuid(UUID)
            assert secret.usage_id == "vol-1"
            with pytest.raises(OperationDeniedError):
                secret.get_value()
            with pytest.raises(OperationDeniedError):
                secret.undefine()
            with pytest.raises(OperationDeniedError):
                conn.define_secret_xml(make_xml(usage_id="vol-2"))

    def test_read_only_from_config(self):
        """Test read-only mode from configuration."""
        with Connection.open(VirtSecretConfig(read_only=True)) as conn:
            assert conn.read_only


class TestEvents:
    """Test lifecycle event callbacks."""

    def test_callbacks(self, make_xml):
        """Test callbacks receive connection, UUID and event."""
        received = []

        def callback(conn, uuid, event):
            received.append((conn, uuid, event))

        with Connection.open() as conn:
            conn.register_event_callback(callback)
            secret = conn.define_secret_xml(make_xml(uuid=UUID))
            secret.set_value(b"x")
            secret.undefine()

        assert received == [
            (conn, UUID, SecretEvent.DEFINED),
            (conn, UUID, SecretEvent.VALUE_CHANGED),
            (conn, UUID, SecretEvent.UNDEFINED),
        ]

    def test_deregister(self, make_xml):
        """Test deregistered callbacks stop receiving events."""
        received = []

        def callback(conn, uuid, event):
            received.append(event)

        with Connection.open() as conn:
            conn.register_event_callback(callback)
            conn.deregister_event_callback(callback)
            conn.define_secret_xml(make_xml())
            with pytest.raises(ValueError):
                conn.deregister_event_callback(callback)

        assert received == []

    def test_failing_callback_is_logged(self, make_xml, caplog):
        """Test callback errors do not fail the operation."""
        def callback(conn, uuid, event):
            raise RuntimeError("boom")

        with Connection.open() as conn:
            conn.register_event_callback(callback)
            with caplog.at_level(logging.ERROR, logger="virtsecret.connection"):
                secret = conn.define_secret_xml(make_xml())

            assert secret.is_valid
            assert "Error in secret event callback" in caplog.text
