"""
Secret Record Store.

Builds secret records from XML descriptors and renders them back. Index
registration is left to the registry so that a failed insert never leaves
a half-defined record behind.

Author: VirtSecret Team
Date: 2026-10-18
"""

import logging
from typing import Optional

from .models import SecretDefinition, SecretRecord
from .xml_codec import parse_secret_xml, render_secret_xml

logger = logging.getLogger(__name__)


class SecretRecordStore:
    """Creates, renders and destroys secret records."""

    def create(self, xml: str) -> SecretRecord:
        """
        Parse a descriptor into a new, not yet defined record.

        Args:
            xml: Secret XML descriptor

        Returns:
            Record with ``defined`` False

        Raises:
            MalformedDescriptorError: If the descriptor is invalid
        """
        return self.from_definition(parse_secret_xml(xml))

    def from_definition(self, definition: SecretDefinition) -> SecretRecord:
        """Wrap an already validated definition in a new record."""
        return SecretRecord(definition=definition)

    def render(self, record: SecretRecord, value_set: Optional[bool] = None) -> str:
        """
        Render a record's descriptor.

        Args:
            record: Secret record
            value_set: Whether the vault holds a value for the record;
                never shown for private secrets

        Returns:
            XML descriptor
        """
        return render_secret_xml(record.definition, value_set=value_set)

    def destroy(self, record: SecretRecord) -> None:
        """Invalidate a record removed from (or never added to) the index."""
        record.defined = False
        logger.debug(f"Destroyed secret record {record.uuid}")
