"""Ancestor resolution for activity references.

An activity points at exactly one entity (lead, contact, company or deal).
Before it is stored, the entity's parents are looked up once and copied onto
the activity row so that every downstream timeline can filter on its own id
column without joins.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from innopark.business.sales.models import SalesDeal
from innopark.core.errors import StorageError, ValidationError
from innopark.crm.models import REFERENCE_TYPES, CRMContact, CRMLead

# body keys consulted when the reference is not given explicitly, first hit wins
INFERRED_REFERENCE_KEYS = (
    ("deal_id", "deal"),
    ("contact_id", "contact"),
    ("lead_id", "lead"),
    ("company_id", "company"),
)


@dataclass(frozen=True, slots=True)
class ResolvedReference:
    lead_id: int | None = None
    company_id: int | None = None
    contact_id: int | None = None
    deal_id: int | None = None

    def as_columns(self) -> dict[str, int | None]:
        return {
            "lead_id": self.lead_id,
            "company_id": self.company_id,
            "contact_id": self.contact_id,
            "deal_id": self.deal_id,
        }


def infer_reference(payload: dict[str, Any]) -> tuple[str | None, int | None]:
    reference_type = payload.get("reference_type")
    reference_id = payload.get("reference_id")
    if reference_type and reference_id is not None:
        return reference_type, reference_id
    for key, inferred_type in INFERRED_REFERENCE_KEYS:
        if payload.get(key) is not None:
            return inferred_type, payload[key]
    return reference_type, reference_id


class ReferenceResolver:
    def resolve(self, session: Session, reference_type: str, reference_id: int) -> ResolvedReference:
        """Return the ancestor keys of the referenced entity.

        Issues at most one read. A referenced row that does not exist is not an
        error: only the key named by the reference itself is filled in.
        """
        if reference_type not in REFERENCE_TYPES:
            raise ValidationError(
                f"invalid reference type: {reference_type}",
                details={"allowed": list(REFERENCE_TYPES)},
            )

        if reference_type == "company":
            return ResolvedReference(company_id=reference_id)

        try:
            if reference_type == "deal":
                row = session.execute(
                    select(SalesDeal.company_id, SalesDeal.contact_id, SalesDeal.lead_id).where(
                        SalesDeal.id == reference_id
                    )
                ).first()
                if row is None:
                    return ResolvedReference(deal_id=reference_id)
                return ResolvedReference(
                    deal_id=reference_id,
                    company_id=row.company_id,
                    contact_id=row.contact_id,
                    lead_id=row.lead_id,
                )

            if reference_type == "lead":
                company_id = session.scalar(select(CRMLead.company_id).where(CRMLead.id == reference_id))
                return ResolvedReference(lead_id=reference_id, company_id=company_id)

            company_id = session.scalar(select(CRMContact.company_id).where(CRMContact.id == reference_id))
            return ResolvedReference(contact_id=reference_id, company_id=company_id)
        except SQLAlchemyError as exc:
            raise StorageError("failed to resolve activity reference", details=str(exc)) from exc


reference_resolver = ReferenceResolver()
