"""
Secret XML Codec.

Parses and renders secret descriptors in the hypervisor's secret XML format:

    <secret ephemeral='no' private='yes'>
      <uuid>c1f11a6d-8c5d-4a3e-ac7a-4e171c5e0d4a</uuid>
      <description>LUKS passphrase for vol-1</description>
      <usage type='volume'>
        <volume>/var/lib/libvirt/images/vol-1.img</volume>
      </usage>
    </secret>

Author: VirtSecret Team
Date: 2026-10-18
"""

import xml.etree.ElementTree as ET
from typing import Any, Dict, Optional

from pydantic import ValidationError

from .exceptions import MalformedDescriptorError
from .models import USAGE_ID_ELEMENTS, SecretDefinition, UsageType


def _parse_yes_no(value: Optional[str], attribute: str) -> bool:
    """Parse a yes/no attribute; absent means no."""
    if value is None:
        return False
    value = value.strip().lower()
    if value == "yes":
        return True
    if value == "no":
        return False
    raise MalformedDescriptorError(f"attribute '{attribute}' must be 'yes' or 'no', got '{value}'")


def _child_text(parent: ET.Element, tag: str) -> Optional[str]:
    """Get stripped text of a direct child, or None if missing or empty."""
    elem = parent.find(tag)
    if elem is None or elem.text is None:
        return None
    text = elem.text.strip()
    return text or None


def parse_secret_xml(xml: str) -> SecretDefinition:
    """
    Parse a secret XML descriptor.

    A missing <uuid> gets a freshly generated one. A missing <usage> means
    usage type NONE. A rendered <value> element is accepted and ignored.

    Args:
        xml: Secret XML descriptor

    Returns:
        Parsed secret definition

    Raises:
        MalformedDescriptorError: If the XML is invalid, the usage type is
            unknown, or a required field is missing
    """
    if not isinstance(xml, str) or not xml.strip():
        raise MalformedDescriptorError("descriptor is empty")

    try:
        root = ET.fromstring(xml)
    except ET.ParseError as e:
        raise MalformedDescriptorError(f"invalid XML: {e}") from None

    if root.tag != "secret":
        raise MalformedDescriptorError(f"unexpected root element <{root.tag}>, expected <secret>")

    fields: Dict[str, Any] = {
        "ephemeral": _parse_yes_no(root.get("ephemeral"), "ephemeral"),
        "private": _parse_yes_no(root.get("private"), "private"),
    }

    uuid = _child_text(root, "uuid")
    if uuid is not None:
        fields["uuid"] = uuid

    description = _child_text(root, "description")
    if description is not None:
        fields["description"] = description

    usage = root.find("usage")
    if usage is not None:
        type_label = usage.get("type")
        if not type_label:
            raise MalformedDescriptorError("<usage> is missing its 'type' attribute")
        try:
            usage_type = UsageType.parse(type_label)
        except ValueError:
            raise MalformedDescriptorError(f"unknown usage type '{type_label}'") from None
        fields["usage_type"] = usage_type

        if usage_type != UsageType.NONE:
            id_tag = USAGE_ID_ELEMENTS[usage_type]
            usage_id = _child_text(usage, id_tag)
            if usage_id is None:
                raise MalformedDescriptorError(
                    f"usage type '{usage_type.label}' requires a <{id_tag}> element"
                )
            fields["usage_id"] = usage_id

    try:
        return SecretDefinition(**fields)
    except ValidationError as e:
        errors = "; ".join(err["msg"] for err in e.errors())
        raise MalformedDescriptorError(errors) from None


def render_secret_xml(definition: SecretDefinition, value_set: Optional[bool] = None) -> str:
    """
    Render a secret definition as XML.

    Args:
        definition: Secret definition
        value_set: Whether a value is stored; None omits the <value> element.
            Ignored for private secrets, whose value presence is never shown.

    Returns:
        XML string
    """
    root = ET.Element("secret", {
        "ephemeral": "yes" if definition.ephemeral else "no",
        "private": "yes" if definition.private else "no",
    })
    ET.SubElement(root, "uuid").text = definition.uuid
    if definition.description:
        ET.SubElement(root, "description").text = definition.description

    if definition.usage_type != UsageType.NONE:
        usage = ET.SubElement(root, "usage", {"type": definition.usage_type.label})
        ET.SubElement(usage, USAGE_ID_ELEMENTS[definition.usage_type]).text = definition.usage_id

    if value_set is not None and not definition.private:
        ET.SubElement(root, "value", {"set": "yes" if value_set else "no"})

    ET.indent(root, space="  ")
    return ET.tostring(root, encoding="unicode") + "\n"
