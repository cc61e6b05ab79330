"""
Service layer for Party operations.

Manages vendors and customers.  Returns PartyInfo DTOs instead of ORM
entities.
"""

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from erp_kernel.domain.documents import BalanceDirection, PartyType
from erp_kernel.exceptions import PartyNotFoundError, ValidationFailedError
from erp_kernel.logging_config import get_logger
from erp_kernel.models.party import Party
from erp_kernel.services.base import BaseService

logger = get_logger("services.party")


@dataclass(frozen=True)
class PartyInfo:
    """Immutable DTO for party data."""

    id: UUID
    party_code: str
    party_type: PartyType
    name: str
    is_active: bool

    @property
    def balance_direction(self) -> BalanceDirection:
        return BalanceDirection.for_party_type(self.party_type)


class PartyService(BaseService[Party]):
    """
    Service for managing parties.

    The party type is fixed at creation: it decides whether the party's
    balance is payable or receivable.
    """

    def _to_dto(self, party: Party) -> PartyInfo:
        return PartyInfo(
            id=party.id,
            party_code=party.party_code,
            party_type=PartyType(party.party_type),
            name=party.name,
            is_active=party.is_active,
        )

    def _get_by_id(self, party_id: UUID) -> Party:
        party = self.session.get(Party, party_id)
        if party is None:
            raise PartyNotFoundError(str(party_id))
        return party

    def get_by_id(self, party_id: UUID) -> PartyInfo:
        """
        Get party by ID.

        Raises:
            PartyNotFoundError: If party doesn't exist.
        """
        return self._to_dto(self._get_by_id(party_id))

    def find_by_code(self, party_code: str) -> PartyInfo | None:
        stmt = select(Party).where(Party.party_code == party_code)
        party = self.session.execute(stmt).scalar_one_or_none()
        return self._to_dto(party) if party else None

    def list_by_type(self, party_type: PartyType, active_only: bool = True) -> list[PartyInfo]:
        stmt = select(Party).where(Party.party_type == party_type.value)
        if active_only:
            stmt = stmt.where(Party.is_active == True)  # noqa: E712
        stmt = stmt.order_by(Party.party_code)
        return [self._to_dto(p) for p in self.session.execute(stmt).scalars().all()]

    def create_party(
        self,
        party_code: str,
        party_type: PartyType,
        name: str,
        actor_id: UUID,
    ) -> PartyInfo:
        """
        Create a new party.

        Args:
            party_code: Unique identifier (e.g., "CUST-001", "VEND-ACME").
            party_type: VENDOR or CUSTOMER.
            name: Display name.
            actor_id: UUID of the actor creating the party.
        """
        if not party_code or not party_code.strip():
            raise ValidationFailedError("party_code", "must not be empty")
        party = Party(
            party_code=party_code,
            party_type=PartyType(party_type).value,
            name=name,
            is_active=True,
            created_by_id=actor_id,
        )
        self.session.add(party)
        self.session.flush()
        logger.info(
            "party_created",
            extra={"party_id": str(party.id), "party_code": party_code, "party_type": party.party_type},
        )
        return self._to_dto(party)

    def deactivate(self, party_id: UUID, actor_id: UUID) -> PartyInfo:
        party = self._get_by_id(party_id)
        party.is_active = False
        party.updated_by_id = actor_id
        self.session.flush()
        return self._to_dto(party)
