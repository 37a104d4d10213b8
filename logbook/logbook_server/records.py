"""
Tracked record model for the logbook.

This module defines the three tracked entity variants and the
three-collection state that snapshots capture:
- Invoice (nota fiscal): dated, with supplier, status and type
- ProductionOrder (ordem de produção): dated, with document and status
- Note (comentário): dated free text, no status
- LogbookState: one ordered tuple of records per collection

Wire format (as stored in the backend and inside snapshot payloads):
    notas:       {id, data, numero, fornecedor, status, tipo, observacao, created_by}
    ordens:      {id, data, numero, documento, status, observacao, created_by}
    comentarios: {id, data, texto, created_by}

Invariants:
    - ``data`` is always a valid YYYY-MM-DD calendar date
    - ``status``, when present, is one of the entity's allowed values
    - Unknown keys are kept in ``extra`` and written back unchanged
    - Records and states are immutable once parsed

How to change safely:
    - Add new status values at the end of the enums
    - New wire fields go through ``extra`` until they need typing
    - Never rename wire keys; stored snapshots depend on them
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Union

from .errors import MalformedPayload, ValidationError

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class Collection(Enum):
    """The three tracked collections, keyed by their snapshot wire name."""

    INVOICES = "notas"
    ORDERS = "ordens"
    NOTES = "comentarios"

    @property
    def default_table(self) -> str:
        """Backend table holding this collection."""
        return _DEFAULT_TABLES[self]


_DEFAULT_TABLES = {
    Collection.INVOICES: "notas_fiscais",
    Collection.ORDERS: "ordens_producao",
    Collection.NOTES: "comentarios",
}


class InvoiceStatus(Enum):
    """Invoice workflow states. ``CLASSIFIED`` is terminal."""

    PENDING = "Pendente"
    IN_REVIEW = "Em Conferência"
    PRE_ENTRY = "Pré Nota"
    CLASSIFIED = "Classificada"


class InvoiceType(Enum):
    """Invoice movement type. Empty string means unset."""

    INBOUND = "Entrada"
    OUTBOUND = "Saída"
    RETURN = "Devolução"
    UNSET = ""


class OrderStatus(Enum):
    """Production order states. ``COMPLETED`` is terminal."""

    PICKING = "Em Separação"
    COMPLETED = "Concluída"


UNRESOLVED_INVOICE_STATUSES = frozenset(
    {InvoiceStatus.PENDING, InvoiceStatus.IN_REVIEW, InvoiceStatus.PRE_ENTRY}
)
UNRESOLVED_ORDER_STATUSES = frozenset({OrderStatus.PICKING})


def parse_day(value: Any, field_name: str = "data") -> date:
    """Parse a YYYY-MM-DD string into a date.

    Raises:
        ValidationError: If the value is not a valid calendar date string
    """
    if not isinstance(value, str) or not _DATE_RE.match(value):
        raise ValidationError(
            f"'{field_name}' must be a YYYY-MM-DD date string", field_name, value
        )
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise ValidationError(
            f"'{field_name}' is not a valid calendar date", field_name, value
        ) from None


def _parse_enum(enum_cls: type[Enum], value: Any, field_name: str) -> Any:
    try:
        return enum_cls(value)
    except ValueError:
        allowed = [member.value for member in enum_cls]
        raise ValidationError(
            f"'{field_name}' must be one of {allowed}, got {value!r}", field_name, value
        ) from None


def _split_extra(data: dict[str, Any], known: tuple[str, ...]) -> dict[str, Any]:
    return {key: value for key, value in data.items() if key not in known}


def _text(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    return "" if value is None else str(value)


@dataclass(frozen=True)
class Invoice:
    """An invoice (nota fiscal).

    Attributes:
        id: Store-assigned identifier (None before insert)
        data: Record date (YYYY-MM-DD)
        numero: Invoice number
        fornecedor: Supplier name
        status: Workflow status
        tipo: Movement type
        observacao: Free-text remark
        created_by: Author username, if recorded
        extra: Unknown wire keys carried through untouched
    """

    id: str | None
    data: str
    numero: str = ""
    fornecedor: str = ""
    status: InvoiceStatus = InvoiceStatus.PENDING
    tipo: InvoiceType = InvoiceType.UNSET
    observacao: str = ""
    created_by: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    _KNOWN = ("id", "data", "numero", "fornecedor", "status", "tipo", "observacao", "created_by")

    def __post_init__(self) -> None:
        parse_day(self.data)

    @property
    def day(self) -> date:
        return parse_day(self.data)

    @property
    def is_unresolved(self) -> bool:
        return self.status in UNRESOLVED_INVOICE_STATUSES

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Invoice:
        """Create from a wire dictionary.

        Raises:
            ValidationError: If date, status or type are invalid
        """
        return cls(
            id=_optional_id(data),
            data=data.get("data"),
            numero=_text(data, "numero"),
            fornecedor=_text(data, "fornecedor"),
            status=_parse_enum(InvoiceStatus, data.get("status"), "status"),
            tipo=_parse_enum(InvoiceType, data.get("tipo") or "", "tipo"),
            observacao=_text(data, "observacao"),
            created_by=data.get("created_by"),
            extra=_split_extra(data, cls._KNOWN),
        )

    def to_dict(self, include_id: bool = True) -> dict[str, Any]:
        """Convert to wire dictionary."""
        result = dict(self.extra)
        if include_id and self.id is not None:
            result["id"] = self.id
        result.update(
            {
                "data": self.data,
                "numero": self.numero,
                "fornecedor": self.fornecedor,
                "status": self.status.value,
                "tipo": self.tipo.value,
                "observacao": self.observacao,
            }
        )
        if self.created_by is not None:
            result["created_by"] = self.created_by
        return result


@dataclass(frozen=True)
class ProductionOrder:
    """A production order (ordem de produção)."""

    id: str | None
    data: str
    numero: str = ""
    documento: str = ""
    status: OrderStatus = OrderStatus.PICKING
    observacao: str = ""
    created_by: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    _KNOWN = ("id", "data", "numero", "documento", "status", "observacao", "created_by")

    def __post_init__(self) -> None:
        parse_day(self.data)

    @property
    def day(self) -> date:
        return parse_day(self.data)

    @property
    def is_unresolved(self) -> bool:
        return self.status in UNRESOLVED_ORDER_STATUSES

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProductionOrder:
        return cls(
            id=_optional_id(data),
            data=data.get("data"),
            numero=_text(data, "numero"),
            documento=_text(data, "documento"),
            status=_parse_enum(OrderStatus, data.get("status"), "status"),
            observacao=_text(data, "observacao"),
            created_by=data.get("created_by"),
            extra=_split_extra(data, cls._KNOWN),
        )

    def to_dict(self, include_id: bool = True) -> dict[str, Any]:
        result = dict(self.extra)
        if include_id and self.id is not None:
            result["id"] = self.id
        result.update(
            {
                "data": self.data,
                "numero": self.numero,
                "documento": self.documento,
                "status": self.status.value,
                "observacao": self.observacao,
            }
        )
        if self.created_by is not None:
            result["created_by"] = self.created_by
        return result


@dataclass(frozen=True)
class Note:
    """A free-text note (comentário). Notes carry no status."""

    id: str | None
    data: str
    texto: str = ""
    created_by: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    _KNOWN = ("id", "data", "texto", "created_by")

    def __post_init__(self) -> None:
        parse_day(self.data)

    @property
    def day(self) -> date:
        return parse_day(self.data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Note:
        return cls(
            id=_optional_id(data),
            data=data.get("data"),
            texto=_text(data, "texto"),
            created_by=data.get("created_by"),
            extra=_split_extra(data, cls._KNOWN),
        )

    def to_dict(self, include_id: bool = True) -> dict[str, Any]:
        result = dict(self.extra)
        if include_id and self.id is not None:
            result["id"] = self.id
        result.update({"data": self.data, "texto": self.texto})
        if self.created_by is not None:
            result["created_by"] = self.created_by
        return result


TrackedRecord = Union[Invoice, ProductionOrder, Note]

RECORD_TYPES: dict[Collection, type] = {
    Collection.INVOICES: Invoice,
    Collection.ORDERS: ProductionOrder,
    Collection.NOTES: Note,
}


def _optional_id(data: dict[str, Any]) -> str | None:
    value = data.get("id")
    return None if value is None else str(value)


@dataclass(frozen=True)
class LogbookState:
    """The three tracked collections at one point in time.

    This is both the live state read from the entity store and the
    payload stored inside a snapshot.

    Attributes:
        invoices: Invoices in store order
        orders: Production orders in store order
        notes: Notes in store order
    """

    invoices: tuple[Invoice, ...] = ()
    orders: tuple[ProductionOrder, ...] = ()
    notes: tuple[Note, ...] = ()

    @classmethod
    def empty(cls) -> LogbookState:
        return cls()

    def records(self, collection: Collection) -> tuple[TrackedRecord, ...]:
        """Records of one collection."""
        if collection is Collection.INVOICES:
            return self.invoices
        if collection is Collection.ORDERS:
            return self.orders
        return self.notes

    def is_empty(self) -> bool:
        """True when no collection holds any record."""
        return not (self.invoices or self.orders or self.notes)

    def counts(self) -> dict[str, int]:
        return {collection.value: len(self.records(collection)) for collection in Collection}

    def to_wire(self, include_ids: bool = True) -> dict[str, list[dict[str, Any]]]:
        """Convert to the ``data_snapshot`` wire shape."""
        return {
            collection.value: [
                record.to_dict(include_id=include_ids) for record in self.records(collection)
            ]
            for collection in Collection
        }

    @classmethod
    def from_rows(
        cls,
        invoices: list[dict[str, Any]],
        orders: list[dict[str, Any]],
        notes: list[dict[str, Any]],
    ) -> LogbookState:
        """Build a state from raw store rows.

        Raises:
            ValidationError: If any row violates record invariants
        """
        return cls(
            invoices=tuple(Invoice.from_dict(row) for row in invoices),
            orders=tuple(ProductionOrder.from_dict(row) for row in orders),
            notes=tuple(Note.from_dict(row) for row in notes),
        )

    @classmethod
    def from_wire(cls, payload: Any, snapshot_id: str | None = None) -> LogbookState:
        """Parse a ``data_snapshot`` value.

        Accepts either a decoded object or a JSON-encoded string. Missing
        collections are treated as empty.

        Raises:
            MalformedPayload: If the payload cannot be interpreted
        """
        if isinstance(payload, (str, bytes)):
            try:
                payload = json.loads(payload)
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                raise MalformedPayload(
                    f"Snapshot payload is not valid JSON: {e}", snapshot_id
                ) from e

        if not isinstance(payload, dict):
            raise MalformedPayload(
                f"Snapshot payload must be an object, got {type(payload).__name__}",
                snapshot_id,
            )

        rows: dict[Collection, list[dict[str, Any]]] = {}
        for collection in Collection:
            value = payload.get(collection.value) or []
            if not isinstance(value, list) or not all(isinstance(row, dict) for row in value):
                raise MalformedPayload(
                    f"Snapshot collection '{collection.value}' must be a list of objects",
                    snapshot_id,
                )
            rows[collection] = value

        try:
            return cls.from_rows(
                rows[Collection.INVOICES],
                rows[Collection.ORDERS],
                rows[Collection.NOTES],
            )
        except ValidationError as e:
            raise MalformedPayload(
                f"Snapshot payload holds an invalid record: {e.message}", snapshot_id
            ) from e
