from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any

from pydantic import BaseModel
from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from innopark import events
from innopark.business.sales.documents import (
    DocumentTotals,
    calculate_totals,
    generate_number,
    normalize_deal_status,
    normalize_discount_type,
    normalize_unit,
    to_decimal,
    totals_from_sub_total,
)
from innopark.business.sales.models import SalesDeal, SalesDealContact, SalesDealItem, SalesOffer, SalesOfferItem
from innopark.business.sales.schemas import (
    DealContactLink,
    DealContactLinkUpdate,
    DealContactRead,
    DealCreate,
    DealDetailRead,
    DealRead,
    DealStageUpdate,
    DealUpdate,
    DocumentFilter,
    OfferCreate,
    OfferRead,
    OfferUpdate,
)
from innopark.core.auth import ActorUser
from innopark.core.config import get_settings
from innopark.core.database import transaction_scope
from innopark.core.errors import NotFoundError, StorageError, ValidationError
from innopark.crm.models import CRMContact, CRMLead
from innopark.crm.repositories import TenantRepository
from innopark.metrics import observe_document_number_collision


logger = logging.getLogger("innopark.sales")

_NON_NULL_HEADER_FIELDS = ("currency", "calculate_tax", "discount", "discount_type", "status")


def _visible_crm_row(session: Session, actor: ActorUser, model: type[Any], row_id: int, label: str) -> Any:
    try:
        row = session.get(model, row_id)
    except SQLAlchemyError as exc:
        raise StorageError(f"failed to load {label}", details=str(exc)) from exc
    if row is None or row.is_deleted or (row.company_id is not None and row.company_id != actor.company_id):
        raise NotFoundError(f"{label} not found")
    return row


@dataclass(frozen=True, slots=True)
class DocumentKind:
    name: str
    prefix: str
    model: type[Any]
    item_model: type[Any]
    number_attr: str
    date_attr: str
    read_schema: type[BaseModel]
    default_validity_days: int | None = None

    @property
    def number_column(self) -> Any:
        return getattr(self.model, self.number_attr)


DEAL_KIND = DocumentKind(
    name="deal",
    prefix="DEAL",
    model=SalesDeal,
    item_model=SalesDealItem,
    number_attr="deal_number",
    date_attr="deal_date",
    read_schema=DealRead,
)
OFFER_KIND = DocumentKind(
    name="offer",
    prefix="OFFER",
    model=SalesOffer,
    item_model=SalesOfferItem,
    number_attr="offer_number",
    date_attr="offer_date",
    read_schema=OfferRead,
    default_validity_days=30,
)


class DocumentRepository(TenantRepository):
    def __init__(self, model: type[Any]) -> None:
        self.model = model


class SalesDocumentService:
    """Header plus line items, numbered per kind and totalled from the items."""

    def __init__(self, kind: DocumentKind) -> None:
        self.kind = kind
        self.repository = DocumentRepository(kind.model)

    def list_documents(self, session: Session, actor: ActorUser, filters: DocumentFilter) -> list[Any]:
        model = self.kind.model
        stmt = self.repository.apply_scope_query(select(model), actor).options(selectinload(model.items))
        if filters.status and filters.status.strip().lower() != "all":
            stmt = stmt.where(func.lower(model.status) == filters.status.strip().lower())
        if filters.search:
            term = f"%{filters.search.strip()}%"
            columns = [self.kind.number_column, model.description]
            if hasattr(model, "title"):
                columns.append(model.title)
            stmt = stmt.where(or_(*(column.ilike(term) for column in columns)))
        if filters.lead_id is not None:
            stmt = stmt.where(model.lead_id == filters.lead_id)
        if filters.client_id is not None:
            stmt = stmt.where(model.client_id == filters.client_id)

        try:
            rows = session.scalars(stmt.order_by(model.created_at.desc(), model.id.desc())).all()
        except SQLAlchemyError as exc:
            raise StorageError(f"failed to list {self.kind.name}s", details=str(exc)) from exc
        return [self._to_read(row) for row in rows]

    def get_document(self, session: Session, actor: ActorUser, document_id: int) -> Any:
        return self._to_read(self._get(session, actor, document_id))

    def create_document(self, session: Session, actor: ActorUser, dto: DealCreate | OfferCreate) -> Any:
        header = self._new_header(actor, dto)
        self._check_references(session, actor, header)
        items = [item.model_dump() for item in dto.items]
        if items or (dto.sub_total is None and dto.total is None):
            totals = calculate_totals(items, header["discount"], header["discount_type"])
        else:
            manual_sub_total = dto.sub_total if dto.sub_total is not None else dto.total
            totals = totals_from_sub_total(manual_sub_total, header["discount"], header["discount_type"])

        max_attempts = get_settings().document_number_max_attempts
        for attempt in range(1, max_attempts + 1):
            try:
                number = generate_number(
                    session,
                    self.kind.number_column,
                    self.kind.prefix,
                    max_attempts=max_attempts,
                )
            except SQLAlchemyError as exc:
                raise StorageError(f"failed to number {self.kind.name}", details=str(exc)) from exc

            document = self.kind.model(**header, **totals.header_columns(), **{self.kind.number_attr: number})
            document.items = self._build_items(items, totals)
            try:
                with transaction_scope(session):
                    session.add(document)
            except IntegrityError as exc:
                # someone else committed this number between probe and insert
                if not self._number_taken(session, number):
                    raise StorageError(f"failed to create {self.kind.name}", details=str(exc)) from exc
                observe_document_number_collision(self.kind.prefix)
                logger.warning(
                    "document_number.retry",
                    extra={"prefix": self.kind.prefix, "document_number": number, "attempt": attempt},
                )
                continue
            except SQLAlchemyError as exc:
                raise StorageError(f"failed to create {self.kind.name}", details=str(exc)) from exc

            self._publish(f"sales.{self.kind.name}.created", actor, document, {"number": number})
            logger.info(
                f"{self.kind.name}.created",
                extra={
                    "entity_type": f"sales.{self.kind.name}",
                    "entity_id": document.id,
                    "document_number": number,
                    "company_id": actor.company_id,
                },
            )
            return self._to_read(document)

        raise StorageError(f"could not allocate a unique {self.kind.name} number")

    def update_document(
        self,
        session: Session,
        actor: ActorUser,
        document_id: int,
        dto: DealUpdate | OfferUpdate,
    ) -> Any:
        document = self._get(session, actor, document_id)
        changes = dto.model_dump(exclude_unset=True, exclude={"items"})
        items = [item.model_dump() for item in dto.items] if dto.items is not None else None
        for field_name in _NON_NULL_HEADER_FIELDS:
            if changes.get(field_name, "") is None:
                changes.pop(field_name)
        if not changes and items is None:
            raise ValidationError("No valid fields to update")

        if "status" in changes:
            changes["status"] = normalize_deal_status(changes["status"])
        if "discount_type" in changes:
            changes["discount_type"] = normalize_discount_type(changes["discount_type"])
        self._check_references(session, actor, changes)

        try:
            with transaction_scope(session):
                for field_name, value in changes.items():
                    setattr(document, field_name, value)

                if items is not None:
                    # replace-all: the old set is gone before the new one is written
                    document.items.clear()
                    session.flush()
                    totals = calculate_totals(items, document.discount, document.discount_type)
                    document.items.extend(self._build_items(items, totals))
                    self._apply_totals(document, totals)
                elif "discount" in changes or "discount_type" in changes:
                    if document.items:
                        totals = calculate_totals(
                            [self._item_values(item) for item in document.items],
                            document.discount,
                            document.discount_type,
                        )
                    else:
                        totals = totals_from_sub_total(document.sub_total, document.discount, document.discount_type)
                    self._apply_totals(document, totals)
        except SQLAlchemyError as exc:
            raise StorageError(f"failed to update {self.kind.name}", details=str(exc)) from exc

        self._publish(f"sales.{self.kind.name}.updated", actor, document, {"fields": sorted(changes)})
        return self._to_read(document)

    def delete_document(self, session: Session, actor: ActorUser, document_id: int) -> None:
        document = self._get(session, actor, document_id)
        document.is_deleted = True
        self._commit(session, f"failed to delete {self.kind.name}")
        self._publish(f"sales.{self.kind.name}.deleted", actor, document, {})

    def _new_header(self, actor: ActorUser, dto: DealCreate | OfferCreate) -> dict[str, Any]:
        header = dto.model_dump(exclude={"items", "sub_total", "total"})
        header["status"] = normalize_deal_status(header.get("status"))
        header["discount_type"] = normalize_discount_type(header.get("discount_type"))
        header["discount"] = to_decimal(header.get("discount"))
        header[self.kind.date_attr] = header.get(self.kind.date_attr) or date.today()
        if header.get("valid_till") is None and self.kind.default_validity_days is not None:
            header["valid_till"] = date.today() + timedelta(days=self.kind.default_validity_days)
        header["company_id"] = actor.company_id
        header["created_by"] = actor.user_id
        return header

    def _build_items(self, items: list[dict[str, Any]], totals: DocumentTotals) -> list[Any]:
        return [
            self.kind.item_model(
                item_name=item["item_name"],
                description=item.get("description"),
                quantity=to_decimal(item.get("quantity")),
                unit=normalize_unit(item.get("unit")),
                unit_price=to_decimal(item.get("unit_price")),
                tax=item.get("tax"),
                tax_rate=to_decimal(item.get("tax_rate")),
                file_path=item.get("file_path"),
                amount=amount,
            )
            for item, amount in zip(items, totals.line_amounts)
        ]

    @staticmethod
    def _check_references(session: Session, actor: ActorUser, values: dict[str, Any]) -> None:
        if values.get("lead_id") is not None:
            _visible_crm_row(session, actor, CRMLead, values["lead_id"], "lead")
        if values.get("contact_id") is not None:
            _visible_crm_row(session, actor, CRMContact, values["contact_id"], "contact")

    @staticmethod
    def _item_values(item: Any) -> dict[str, Any]:
        return {"amount": item.amount}

    @staticmethod
    def _apply_totals(document: Any, totals: DocumentTotals) -> None:
        for field_name, value in totals.header_columns().items():
            setattr(document, field_name, value)

    def _number_taken(self, session: Session, number: str) -> bool:
        column = self.kind.number_column
        try:
            return session.scalar(select(column).where(column == number)) is not None
        except SQLAlchemyError as exc:
            raise StorageError(f"failed to verify {self.kind.name} number", details=str(exc)) from exc

    def _get(self, session: Session, actor: ActorUser, document_id: int) -> Any:
        try:
            document = self.repository.get_visible(session, actor, document_id)
        except SQLAlchemyError as exc:
            raise StorageError(f"failed to load {self.kind.name}", details=str(exc)) from exc
        if document is None:
            raise NotFoundError(f"{self.kind.name} not found")
        return document

    @staticmethod
    def _commit(session: Session, message: str) -> None:
        try:
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise StorageError(message, details=str(exc)) from exc

    def _publish(self, event_type: str, actor: ActorUser, document: Any, extra: dict[str, Any]) -> None:
        events.publish(
            events.build_envelope(
                event_type,
                actor_user_id=actor.user_id,
                company_id=actor.company_id,
                payload={f"{self.kind.name}_id": document.id, **extra},
                correlation_id=actor.correlation_id,
            )
        )

    def _to_read(self, document: Any) -> Any:
        return self.kind.read_schema.model_validate(document)


class DealService(SalesDocumentService):
    def __init__(self) -> None:
        super().__init__(DEAL_KIND)

    def get_document(self, session: Session, actor: ActorUser, document_id: int) -> DealDetailRead:
        deal = self._get(session, actor, document_id)
        read = DealRead.model_validate(deal)
        return DealDetailRead(**read.model_dump(), linked_contacts=self._contacts(session, deal))

    def update_status(self, session: Session, actor: ActorUser, deal_id: int, status: str) -> DealRead:
        return self.update_document(session, actor, deal_id, DealUpdate(status=status))

    def update_stage(self, session: Session, actor: ActorUser, deal_id: int, dto: DealStageUpdate) -> DealRead:
        deal = self._get(session, actor, deal_id)
        deal.stage_id = dto.stage_id
        if dto.pipeline_id is not None:
            deal.pipeline_id = dto.pipeline_id
        self._commit(session, "failed to move deal")
        self._publish("sales.deal.stage_changed", actor, deal, {"stage_id": deal.stage_id, "pipeline_id": deal.pipeline_id})
        return DealRead.model_validate(deal)

    def list_contacts(self, session: Session, actor: ActorUser, deal_id: int) -> list[DealContactRead]:
        return self._contacts(session, self._get(session, actor, deal_id))

    def link_contact(
        self,
        session: Session,
        actor: ActorUser,
        deal_id: int,
        dto: DealContactLink,
    ) -> list[DealContactRead]:
        deal = self._get(session, actor, deal_id)
        self._get_contact(session, actor, dto.contact_id)
        try:
            with transaction_scope(session):
                if dto.is_primary:
                    self._clear_primary(session, deal.id, keep_contact_id=dto.contact_id)
                link = self._find_link(session, deal.id, dto.contact_id)
                if link is None:
                    link = SalesDealContact(deal_id=deal.id, contact_id=dto.contact_id)
                    session.add(link)
                link.is_primary = dto.is_primary
                link.role = dto.role
        except SQLAlchemyError as exc:
            raise StorageError("failed to link contact", details=str(exc)) from exc
        return self._contacts(session, deal)

    def update_contact_link(
        self,
        session: Session,
        actor: ActorUser,
        deal_id: int,
        contact_id: int,
        dto: DealContactLinkUpdate,
    ) -> list[DealContactRead]:
        deal = self._get(session, actor, deal_id)
        changes = dto.model_dump(exclude_unset=True)
        try:
            with transaction_scope(session):
                link = self._find_link(session, deal.id, contact_id)
                if link is None:
                    raise NotFoundError("contact is not linked to this deal")
                if changes.get("is_primary"):
                    self._clear_primary(session, deal.id, keep_contact_id=contact_id)
                if changes.get("is_primary") is not None:
                    link.is_primary = changes["is_primary"]
                if "role" in changes:
                    link.role = changes["role"]
        except SQLAlchemyError as exc:
            raise StorageError("failed to update contact link", details=str(exc)) from exc
        return self._contacts(session, deal)

    def unlink_contact(self, session: Session, actor: ActorUser, deal_id: int, contact_id: int) -> None:
        deal = self._get(session, actor, deal_id)
        link = self._find_link(session, deal.id, contact_id)
        if link is None:
            raise NotFoundError("contact is not linked to this deal")
        session.delete(link)
        self._commit(session, "failed to unlink contact")

    @staticmethod
    def _find_link(session: Session, deal_id: int, contact_id: int) -> SalesDealContact | None:
        return session.scalar(
            select(SalesDealContact).where(
                SalesDealContact.deal_id == deal_id,
                SalesDealContact.contact_id == contact_id,
            )
        )

    @staticmethod
    def _clear_primary(session: Session, deal_id: int, *, keep_contact_id: int) -> None:
        session.execute(
            update(SalesDealContact)
            .where(SalesDealContact.deal_id == deal_id, SalesDealContact.contact_id != keep_contact_id)
            .values(is_primary=False)
            .execution_options(synchronize_session=False)
        )

    @staticmethod
    def _get_contact(session: Session, actor: ActorUser, contact_id: int) -> CRMContact:
        return _visible_crm_row(session, actor, CRMContact, contact_id, "contact")

    @staticmethod
    def _contacts(session: Session, deal: SalesDeal) -> list[DealContactRead]:
        try:
            rows = session.execute(
                select(SalesDealContact, CRMContact)
                .join(CRMContact, CRMContact.id == SalesDealContact.contact_id)
                .where(SalesDealContact.deal_id == deal.id, CRMContact.is_deleted.is_(False))
                .order_by(SalesDealContact.is_primary.desc(), SalesDealContact.id.asc())
            ).all()
        except SQLAlchemyError as exc:
            raise StorageError("failed to load deal contacts", details=str(exc)) from exc

        contacts = [
            DealContactRead(
                contact_id=link.contact_id,
                name=contact.name,
                email=contact.email,
                phone=contact.phone,
                is_primary=link.is_primary,
                role=link.role,
            )
            for link, contact in rows
        ]
        if contacts or deal.contact_id is None:
            return contacts

        # no explicit links: the deal's own contact stands in as primary
        contact = session.get(CRMContact, deal.contact_id)
        if contact is None or contact.is_deleted:
            return []
        return [
            DealContactRead(
                contact_id=contact.id,
                name=contact.name,
                email=contact.email,
                phone=contact.phone,
                is_primary=True,
                role=None,
            )
        ]


deal_service = DealService()
offer_service = SalesDocumentService(OFFER_KIND)
