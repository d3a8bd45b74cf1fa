"""Pydantic schemas for the records exchanged with office and crew clients.

Wire format is camelCase JSON. Fields the backend does not reason about
(calculator inputs, results, line items, ...) are kept as extras so a record
survives a round trip untouched.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)


def to_number(value) -> float:
    """Client numbers arrive as numbers, strings, blanks or nulls. Anything unusable is 0."""
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def to_optional_number(value) -> float | None:
    """Like ``to_number`` but blank or unusable input stays "not reported"."""
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def to_list(value) -> list:
    return value if isinstance(value, list) else []


class RecordModel(BaseModel):
    """Base for every stored record: camelCase aliases, unknown keys preserved."""

    model_config = ConfigDict(
        extra="allow",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_record(self) -> dict:
        """Serialize to the JSON-ready dict stored in a row's data column."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


ModelT = TypeVar("ModelT", bound=RecordModel)


def load_record(model: type[ModelT], raw: Any) -> ModelT | None:
    """Validate a stored record. Anything unusable is treated as absent."""
    if not raw:
        return None
    try:
        return model.model_validate(raw)
    except ValidationError as e:
        logger.warning(f"Discarding unreadable {model.__name__}: {e.error_count()} validation error(s)")
        return None


# --- Enumerations ---

class JobStatus(str, Enum):
    DRAFT = "Draft"
    WORK_ORDER = "Work Order"
    INVOICED = "Invoiced"
    PAID = "Paid"
    ARCHIVED = "Archived"


class ExecutionStatus(str, Enum):
    NOT_STARTED = "Not Started"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"


class LedgerAction(str, Enum):
    """Kinds of material log entries."""
    DEDUCTION = "Deduction"
    RESTOCK = "Restock"
    VARIANCE_ADD_BACK = "VarianceAddBack"
    VARIANCE_OVERUSE = "VarianceOveruse"
    ERROR = "Error"


class MessageSender(str, Enum):
    ADMIN = "Admin"
    CREW = "Crew"


# --- Warehouse ---

class InventoryItem(RecordModel):
    """A warehouse stock item, or a job line referencing one by id."""
    id: str
    name: str | None = None
    quantity: float = 0.0
    unit: str | None = None
    unit_cost: float | None = None

    @field_validator("quantity", mode="before")
    @classmethod
    def _coerce_quantity(cls, value):
        return to_number(value)

    @field_validator("unit_cost", mode="before")
    @classmethod
    def _coerce_unit_cost(cls, value):
        return to_optional_number(value)


class EquipmentItem(RecordModel):
    id: str
    name: str | None = None
    status: str | None = None


class WarehouseCounts(RecordModel):
    """Foam set counts. Negative values signal a shortage."""
    open_cell_sets: float = 0.0
    closed_cell_sets: float = 0.0

    @field_validator("open_cell_sets", "closed_cell_sets", mode="before")
    @classmethod
    def _coerce_sets(cls, value):
        return to_number(value)


class LifetimeUsage(RecordModel):
    """Cumulative foam usage for maintenance scheduling. Only ever grows."""
    open_cell: float = 0.0
    closed_cell: float = 0.0

    @field_validator("open_cell", "closed_cell", mode="before")
    @classmethod
    def _coerce_usage(cls, value):
        return to_number(value)


class Customer(RecordModel):
    id: str | None = None
    name: str | None = None
    address: str | None = None
    city: str | None = None
    state: str | None = None
    zip: str | None = None
    phone: str | None = None
    email: str | None = None
    status: str | None = None


# --- Job record ---

class JobMaterials(RecordModel):
    """Planned material load for a job."""
    open_cell_sets: float = 0.0
    closed_cell_sets: float = 0.0
    inventory: list[InventoryItem] = Field(default_factory=list)
    equipment: list[EquipmentItem] = Field(default_factory=list)

    @field_validator("open_cell_sets", "closed_cell_sets", mode="before")
    @classmethod
    def _coerce_sets(cls, value):
        return to_number(value)

    @field_validator("inventory", "equipment", mode="before")
    @classmethod
    def _coerce_lines(cls, value):
        return to_list(value)


class JobActuals(RecordModel):
    """Quantities reported by the crew. ``None`` means not reported."""
    open_cell_sets: float | None = None
    closed_cell_sets: float | None = None
    labor_hours: float | None = None
    inventory: list[InventoryItem] | None = None
    notes: str | None = None
    completed_by: str | None = None
    completion_date: str | None = None
    last_started_at: str | None = None

    @field_validator("open_cell_sets", "closed_cell_sets", "labor_hours", mode="before")
    @classmethod
    def _coerce_reported(cls, value):
        return to_optional_number(value)

    @field_validator("inventory", mode="before")
    @classmethod
    def _coerce_lines(cls, value):
        return value if value is None else to_list(value)


class JobExpenses(RecordModel):
    man_hours: float | None = None
    labor_rate: float | None = None
    trip_charge: float | None = None
    fuel_surcharge: float | None = None

    @field_validator("man_hours", "labor_rate", "trip_charge", "fuel_surcharge", mode="before")
    @classmethod
    def _coerce_amounts(cls, value):
        return to_optional_number(value)


class Financials(RecordModel):
    """Frozen once the job is paid."""
    revenue: float = 0.0
    total_cogs: float = Field(default=0.0, alias="totalCOGS")
    chemical_cost: float = 0.0
    labor_cost: float = 0.0
    inventory_cost: float = 0.0
    misc_cost: float = 0.0
    net_profit: float = 0.0
    margin: float = 0.0

    @field_validator("*", mode="before")
    @classmethod
    def _coerce_amounts(cls, value):
        return to_number(value)


class DeductedValues(RecordModel):
    """What the work-order deduction actually took out of stock."""
    open_cell_sets: float = 0.0
    closed_cell_sets: float = 0.0
    inventory: list[InventoryItem] = Field(default_factory=list)

    @field_validator("open_cell_sets", "closed_cell_sets", mode="before")
    @classmethod
    def _coerce_sets(cls, value):
        return to_number(value)

    @field_validator("inventory", mode="before")
    @classmethod
    def _coerce_lines(cls, value):
        return to_list(value)


class VarianceEntry(RecordModel):
    """variance = estimated - actual. Positive means material left over."""
    item: str
    item_id: str | None = None
    estimated: float
    actual: float
    variance: float
    unit: str | None = None


class Reconciliation(RecordModel):
    estimate_quantities: list[dict] = Field(default_factory=list)
    actual_quantities: list[dict] = Field(default_factory=list)
    variances: list[VarianceEntry] = Field(default_factory=list)
    reconciled_at: str | None = None


class JobRecord(RecordModel):
    """An estimate tracked through Draft → Work Order → Invoiced → Paid."""
    id: str
    date: str | None = None
    customer_id: str | None = None
    customer: Customer | None = None
    status: JobStatus = JobStatus.DRAFT
    execution_status: ExecutionStatus = ExecutionStatus.NOT_STARTED
    materials: JobMaterials = Field(default_factory=JobMaterials)
    actuals: JobActuals | None = None
    financials: Financials | None = None
    expenses: JobExpenses | None = None
    results: dict[str, Any] | None = None
    total_value: float = 0.0
    invoice_number: str | None = None
    notes: str | None = None
    pdf_link: str | None = None
    invoice_pdf_link: str | None = None
    completion_report_link: str | None = None
    work_order_sheet_url: str | None = None
    site_photos: list[str] | None = None
    inventory_deducted: bool = False
    inventory_processed: bool = False
    deducted_values: DeductedValues | None = None
    reconciliation: Reconciliation | None = None
    last_modified: str | None = None

    @field_validator("total_value", mode="before")
    @classmethod
    def _coerce_total(cls, value):
        return to_number(value)

    @field_validator("materials", mode="before")
    @classmethod
    def _coerce_materials(cls, value):
        return value if isinstance(value, (dict, JobMaterials)) else {}

    @property
    def customer_name(self) -> str:
        if self.customer and self.customer.name:
            return self.customer.name
        return "Unknown"


# --- Logs and messages ---

class MaterialLogEntry(RecordModel):
    """Append-only material ledger entry.

    ``quantity`` is the signed change. Variance entries repeat the planned vs
    actual difference for auditing and are flagged ``affects_stock=False``;
    the stock change they describe is carried by the restock/deduction pair.
    """
    id: str
    date: str
    job_id: str | None = None
    customer_name: str = "Unknown"
    material_name: str
    quantity: float
    unit: str | None = None
    logged_by: str = "System"
    action: LedgerAction
    affects_stock: bool = True
    item_id: str | None = None
    detail: dict[str, Any] = Field(default_factory=dict)


class Message(RecordModel):
    id: str
    estimate_id: str | None = None
    sender: MessageSender = MessageSender.ADMIN
    content: str = ""
    timestamp: str
    read_by: list[str] = Field(default_factory=list)


class ProfitLossEntry(RecordModel):
    """One row of the profit and loss ledger."""
    id: str
    date_paid: str
    job_id: str
    customer: str = "Unknown"
    invoice_number: str | None = None
    revenue: float = 0.0
    chemical_cost: float = 0.0
    labor_cost: float = 0.0
    inventory_cost: float = 0.0
    misc_cost: float = 0.0
    total_cogs: float = Field(default=0.0, alias="totalCOGS")
    net_profit: float = 0.0
    margin: float = 0.0
