"""Association builder: idempotent contact -> company links.

HubSpot's v4 association PUT is idempotent, so re-running a sync re-creates
the same link without error or duplication. Missing identities are a
recorded skip, not an error: no remote call is made.
"""

from __future__ import annotations

import structlog

from src.crm_sync.sync.adapter import CRMAdapter
from src.crm_sync.sync.errors import AssociationFailedError, RemoteCallError
from src.crm_sync.sync.retry import ResilientClient
from src.crm_sync.sync.schemas import (
    CONTACT_TO_COMPANY,
    AssociationDescriptor,
    AssociationOutcome,
    DestinationIdentity,
    EntityType,
)

logger = structlog.get_logger(__name__)

SKIP_MISSING_CONTACT = "missing contact identity"
SKIP_MISSING_COMPANY = "missing company identity"
SKIP_NO_LOCATION = "location data unavailable"


class AssociationBuilder:
    """Creates typed contact-to-company associations in one CRM account.

    Args:
        crm: Destination CRM adapter.
        remote: ResilientClient wrapping the association call.
        descriptor: Association type. Defaults to the primary contact-to-company type.
    """

    def __init__(
        self,
        crm: CRMAdapter,
        remote: ResilientClient,
        descriptor: AssociationDescriptor = CONTACT_TO_COMPANY,
    ) -> None:
        self._crm = crm
        self._remote = remote
        self._descriptor = descriptor

    @staticmethod
    def skip_reasons(
        contact: DestinationIdentity | None,
        company: DestinationIdentity | None,
        relation_link: str | None,
    ) -> list[str]:
        reasons: list[str] = []
        if contact is None:
            reasons.append(SKIP_MISSING_CONTACT)
        if relation_link is None:
            reasons.append(SKIP_NO_LOCATION)
        elif company is None:
            reasons.append(SKIP_MISSING_COMPANY)
        return reasons

    async def associate(
        self,
        contact: DestinationIdentity | None,
        company: DestinationIdentity | None,
        *,
        relation_link: str | None = "",
    ) -> AssociationOutcome:
        """Link contact to company.

        Args:
            contact: Resolved contact, or None if it was not resolved.
            company: Resolved company, or None if it was not resolved.
            relation_link: Catalog link the company was looked up by. None means
                the source record carries no location data.

        Returns:
            CREATED, or SKIPPED when either identity is absent.

        Raises:
            AssociationFailedError: The remote call failed.
        """
        if contact is None or company is None:
            reasons = self.skip_reasons(contact, company, relation_link)
            logger.warning(
                "association.skipped",
                account=self._crm.name,
                contact_id=contact.id if contact else None,
                company_id=company.id if company else None,
                contact_key=contact.natural_key.value if contact else None,
                reasons=reasons,
            )
            return AssociationOutcome.SKIPPED

        try:
            await self._remote.invoke(
                self._crm.create_association,
                EntityType.CONTACT,
                contact.id,
                EntityType.COMPANY,
                company.id,
                self._descriptor,
                description="associations.create",
            )
        except RemoteCallError as exc:
            raise AssociationFailedError(contact.id, company.id, exc) from exc

        logger.info(
            "association.created",
            account=self._crm.name,
            contact_id=contact.id,
            company_id=company.id,
            association_type_id=self._descriptor.type_id,
        )
        return AssociationOutcome.CREATED
