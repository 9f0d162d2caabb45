"""
Unit tests for the secret XML codec.

Author: VirtSecret Team
Date: 2026-10-18
"""

import pytest

from virtsecret.secrets.exceptions import MalformedDescriptorError
from virtsecret.secrets.models import SecretDefinition, UsageType
from virtsecret.secrets.xml_codec import parse_secret_xml, render_secret_xml


UUID = "c1f11a6d-8c5d-4a3e-ac7a-4e171c5e0d4a"


class TestParseSecretXml:
    """Test descriptor parsing."""

    def test_parse_volume_secret(self, make_xml):
        """Test parsing a volume secret."""
        definition = parse_secret_xml(make_xml(uuid=UUID, description="LUKS key"))
        assert definition.uuid == UUID
        assert definition.usage_type == UsageType.VOLUME
        assert definition.usage_id == "vol-1"
        assert definition.description == "LUKS key"
        assert definition.ephemeral is False
        assert definition.private is False

    @pytest.mark.parametrize("usage_type,expected", [
        ("ceph", UsageType.CEPH),
        ("iscsi", UsageType.ISCSI),
        ("tls", UsageType.TLS),
        ("vtpm", UsageType.VTPM),
    ])
    def test_parse_usage_types(self, make_xml, usage_type, expected):
        """Test each usage type reads its own ID element."""
        definition = parse_secret_xml(make_xml(usage_type=usage_type, usage_id="client.admin"))
        assert definition.usage_type == expected
        assert definition.usage_id == "client.admin"

    def test_parse_generates_uuid(self, make_xml):
        """Test a descriptor without <uuid> gets a canonical one."""
        definition = parse_secret_xml(make_xml())
        assert len(definition.uuid) == 36
        assert definition.uuid == definition.uuid.lower()
        assert definition.uuid.count("-") == 4

    def test_parse_normalizes_uuid(self, make_xml):
        """Test upper-case UUIDs are normalized."""
        definition = parse_secret_xml(make_xml(uuid=UUID.upper()))
        assert definition.uuid == UUID

    def test_parse_flags(self, make_xml):
        """Test ephemeral and private attributes."""
        definition = parse_secret_xml(make_xml(ephemeral=True, private=True))
        assert definition.ephemeral is True
        assert definition.private is True

    def test_parse_without_usage(self):
        """Test a secret without <usage> has usage type NONE."""
        definition = parse_secret_xml("<secret><description>plain</description></secret>")
        assert definition.usage_type == UsageType.NONE
        assert definition.usage_id is None
        assert definition.usage_key is None

    def test_parse_ignores_value_element(self):
        """Test a rendered <value> element is ignored."""
        definition = parse_secret_xml(f"<secret><uuid>{UUID}</uuid><value set='yes'/></secret>")
        assert definition.uuid == UUID

    @pytest.mark.parametrize("xml", [
        "",
        "   ",
        "<secret>",
        "<domain><uuid>x</uuid></domain>",
        "<secret ephemeral='maybe'/>",
        "<secret><uuid>not-a-uuid</uuid></secret>",
        "<secret><usage type='floppy'><name>x</name></usage></secret>",
        "<secret><usage><volume>x</volume></usage></secret>",
        "<secret><usage type='volume'></usage></secret>",
        "<secret><usage type='volume'><volume>  </volume></usage></secret>",
        "<secret><usage type='ceph'><volume>wrong-tag</volume></usage></secret>",
    ])
    def test_parse_malformed(self, xml):
        """Test malformed descriptors are rejected."""
        with pytest.raises(MalformedDescriptorError) as exc_info:
            parse_secret_xml(xml)
        assert exc_info.value.error_code == "BadParameter"


class TestRenderSecretXml:
    """Test descriptor rendering."""

    def test_render_round_trip(self):
        """Test a rendered descriptor parses back to the same definition."""
        definition = SecretDefinition(
            uuid=UUID,
            usage_type=UsageType.ISCSI,
            usage_id="iqn.2013-07.com.example:iscsi-pool",
            description="CHAP secret",
        )
        assert parse_secret_xml(render_secret_xml(definition)) == definition

    def test_render_value_indicator(self):
        """Test value presence is rendered for non-private secrets."""
        definition = SecretDefinition(uuid=UUID, usage_type="volume", usage_id="vol-1")
        assert 'set="yes"' in render_secret_xml(definition, value_set=True)
        assert 'set="no"' in render_secret_xml(definition, value_set=False)
        assert "<value" not in render_secret_xml(definition)

    def test_render_private_hides_value_indicator(self):
        """Test private secrets never reveal value presence."""
        definition = SecretDefinition(uuid=UUID, usage_type="volume", usage_id="vol-1", private=True)
        assert render_secret_xml(definition, value_set=True) == render_secret_xml(definition, value_set=False)
        assert "<value" not in render_secret_xml(definition, value_set=True)
        assert 'private="yes"' in render_secret_xml(definition)


class TestSecretDefinition:
    """Test definition validation."""

    def test_usage_id_required(self):
        """Test non-NONE usage types require a usage ID."""
        with pytest.raises(ValueError):
            SecretDefinition(usage_type=UsageType.VOLUME)

    def test_usage_id_rejected_for_none(self):
        """Test NONE usage type takes no usage ID."""
        with pytest.raises(ValueError):
            SecretDefinition(usage_type=UsageType.NONE, usage_id="x")

    def test_definition_is_frozen(self):
        """Test metadata is immutable after creation."""
        definition = SecretDefinition(usage_type="tls", usage_id="server")
        with pytest.raises(ValueError):
            definition.usage_id = "other"

    @pytest.mark.parametrize("value,expected", [
        (UsageType.CEPH, UsageType.CEPH),
        (2, UsageType.CEPH),
        ("ceph", UsageType.CEPH),
        ("CEPH", UsageType.CEPH),
    ])
    def test_usage_type_parse(self, value, expected):
        """Test usage type coercion."""
        assert UsageType.parse(value) == expected

    @pytest.mark.parametrize("value", [99, "floppy", True, None, 1.5])
    def test_usage_type_parse_invalid(self, value):
        """Test unknown usage types are rejected."""
        with pytest.raises(ValueError):
            UsageType.parse(value)
