"""Metadata URI store: one template shared by every batch."""

from __future__ import annotations

import logging

from sustaim.governance.access import AccessController
from sustaim.ledger.schema import Role

logger = logging.getLogger(__name__)

ID_PLACEHOLDER = "{id}"


class MetadataStore:
    """
    Holds the metadata URI template.

    Clients resolve a batch's metadata by replacing `{id}` in the template
    with the batch id as 64 lower-case hex characters, zero padded.
    """

    def __init__(self, access: AccessController, uri: str = "") -> None:
        self.access = access
        self._uri = uri

    @property
    def template(self) -> str:
        return self._uri

    def set_metadata_uri(self, caller: str, new_uri: str) -> None:
        self.access.check_role(caller, Role.ADMINISTRATOR)
        self._uri = new_uri
        logger.info("Metadata URI set to %r by %s", new_uri, caller)

    def uri(self, batch_id: int) -> str:
        return self._uri.replace(ID_PLACEHOLDER, format(batch_id, "064x"))

    def load(self, uri: str) -> None:
        self._uri = uri
