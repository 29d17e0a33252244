"""Numbering, totals and value normalisation shared by deals and offers."""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

from opentelemetry import trace
from sqlalchemy import func, select
from sqlalchemy.orm import InstrumentedAttribute, Session

from innopark.metrics import observe_document_number_collision, observe_document_number_fallback


logger = logging.getLogger("innopark.sales.documents")
tracer = trace.get_tracer("innopark.sales.documents")

VALID_UNITS = ("Pcs", "Kg", "Hours", "Days")
DOCUMENT_STATUSES = ("Draft", "Sent", "Accepted", "Declined", "Expired")
PERCENT = "%"
FLAT = "flat"

_UNIT_KEYWORDS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("pc", "piece"), "Pcs"),
    (("kg", "kilogram"), "Kg"),
    (("hour",), "Hours"),
    (("day",), "Days"),
)
_ZERO = Decimal("0")
_HUNDRED = Decimal("100")


def normalize_unit(unit: str | None) -> str:
    if not unit:
        return "Pcs"
    if unit in VALID_UNITS:
        return unit
    lowered = unit.strip().lower()
    for keywords, canonical in _UNIT_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return canonical
    return "Pcs"


def normalize_deal_status(status: str | None) -> str:
    lowered = (status or "").strip().lower()
    for candidate in DOCUMENT_STATUSES:
        if candidate.lower() == lowered:
            return candidate
    return "Draft"


def normalize_discount_type(discount_type: str | None) -> str:
    if discount_type is None or discount_type.strip() in {"", PERCENT}:
        return PERCENT
    return FLAT


def to_decimal(value: Any) -> Decimal:
    """Lenient numeric parse: anything unparseable counts as zero."""
    if value is None or isinstance(value, bool):
        return _ZERO
    try:
        parsed = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return _ZERO
    return parsed if parsed.is_finite() else _ZERO


@dataclass(frozen=True, slots=True)
class DocumentTotals:
    sub_total: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    total: Decimal
    line_amounts: tuple[Decimal, ...] = ()

    def header_columns(self) -> dict[str, Decimal]:
        return {
            "sub_total": self.sub_total,
            "discount_amount": self.discount_amount,
            "tax_amount": self.tax_amount,
            "total": self.total,
        }


def line_amount(item: Mapping[str, Any]) -> Decimal:
    # a zero or unparseable explicit amount falls back to the computed line
    explicit = to_decimal(item.get("amount"))
    if explicit != _ZERO:
        return explicit
    amount = to_decimal(item.get("quantity")) * to_decimal(item.get("unit_price"))
    tax_rate = to_decimal(item.get("tax_rate"))
    if tax_rate > 0:
        amount += amount * tax_rate / _HUNDRED
    return amount


def totals_from_sub_total(sub_total: Any, discount: Any, discount_type: str | None) -> DocumentTotals:
    base = to_decimal(sub_total)
    if normalize_discount_type(discount_type) == PERCENT:
        discount_amount = base * to_decimal(discount) / _HUNDRED
    else:
        discount_amount = to_decimal(discount)
    # tax only ever lives inside the line amounts
    return DocumentTotals(
        sub_total=base,
        discount_amount=discount_amount,
        tax_amount=_ZERO,
        total=base - discount_amount,
    )


def calculate_totals(
    items: Iterable[Mapping[str, Any]],
    discount: Any,
    discount_type: str | None,
) -> DocumentTotals:
    amounts = tuple(line_amount(item) for item in items)
    totals = totals_from_sub_total(sum(amounts, _ZERO), discount, discount_type)
    return DocumentTotals(
        sub_total=totals.sub_total,
        discount_amount=totals.discount_amount,
        tax_amount=totals.tax_amount,
        total=totals.total,
        line_amounts=amounts,
    )


def format_number(prefix: str, value: int) -> str:
    return f"{prefix}#{value:03d}"


def generate_number(
    session: Session,
    column: InstrumentedAttribute[str],
    prefix: str,
    *,
    max_attempts: int = 100,
    clock: Callable[[], float] = time.time,
) -> str:
    """Next free ``PREFIX#NNN`` number for ``column``.

    Starts one past the highest existing number (longest first, then
    lexically greatest) and probes forward on collision. When every probe is
    taken the number falls back to the last six digits of the millisecond
    clock.
    """
    pattern = re.compile(rf"^{re.escape(prefix)}#(\d+)$")
    with tracer.start_as_current_span("sales.generate_number") as span:
        span.set_attribute("document.prefix", prefix)
        latest = session.scalar(
            select(column)
            .where(column.like(f"{prefix}#%"))
            .order_by(func.length(column).desc(), column.desc())
            .limit(1)
        )
        match = pattern.match(latest) if latest else None
        candidate = int(match.group(1)) + 1 if match else 1

        for attempt in range(1, max_attempts + 1):
            number = format_number(prefix, candidate)
            taken = session.scalar(select(column).where(column == number).limit(1))
            if taken is None:
                span.set_attribute("document.number", number)
                return number
            observe_document_number_collision(prefix)
            logger.info(
                "document_number.collision",
                extra={"prefix": prefix, "document_number": number, "attempt": attempt},
            )
            candidate += 1

        fallback = f"{prefix}#{str(int(clock() * 1000))[-6:]}"
        observe_document_number_fallback(prefix)
        logger.warning("document_number.fallback", extra={"prefix": prefix, "document_number": fallback})
        span.set_attribute("document.number", fallback)
        return fallback
