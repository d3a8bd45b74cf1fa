"""Tool: Material inventory ledger.

Two write paths move stock for a job:

- work-order creation deducts the planned materials once (``inventoryDeducted``)
- job completion puts the pre-deduction back, deducts what was actually used
  and records the planned-vs-actual variance once (``inventoryProcessed``)

Every stock movement is written to the material log. Variance entries are
audit-only (``affectsStock=False``): the stock effect they describe is already
carried by the restock/deduction pair, so the stock-affecting entries of a job
always sum to minus its actual consumption.
"""

import logging
from typing import Any

from engine.errors import NotFoundError
from schemas.actions import ToolResult
from schemas.records import (
    DeductedValues, InventoryItem, JobActuals, JobRecord, LedgerAction, LifetimeUsage,
    MaterialLogEntry, Reconciliation, VarianceEntry, WarehouseCounts, ExecutionStatus, load_record, to_number,
)
from services.clock import iso_now, new_id
from services.record_store import (
    Collection, LEGACY_WAREHOUSE_KEY, LIFETIME_USAGE_KEY, RecordStore, WAREHOUSE_COUNTS_KEY,
)

logger = logging.getLogger(__name__)

OPEN_CELL = "Open Cell Foam"
CLOSED_CELL = "Closed Cell Foam"
FOAM_UNIT = "Sets"
SYSTEM_ERROR = "SYSTEM_ERROR"


# --- Warehouse counters ---

def read_warehouse_counts(store: RecordStore) -> WarehouseCounts:
    raw = store.get_setting(WAREHOUSE_COUNTS_KEY)
    if raw is None:
        raw = store.get_setting(LEGACY_WAREHOUSE_KEY)
    return load_record(WarehouseCounts, raw) or WarehouseCounts()


def read_lifetime_usage(store: RecordStore) -> LifetimeUsage:
    return load_record(LifetimeUsage, store.get_setting(LIFETIME_USAGE_KEY)) or LifetimeUsage()


def adjust_warehouse_counts(store: RecordStore, open_delta: float, closed_delta: float) -> WarehouseCounts:
    """Add signed deltas to the foam set counts. The result may go negative."""
    default = read_warehouse_counts(store).to_record()

    def mutate(raw):
        counts = load_record(WarehouseCounts, raw) or WarehouseCounts()
        counts.open_cell_sets += open_delta
        counts.closed_cell_sets += closed_delta
        return {**(raw if isinstance(raw, dict) else {}), **counts.to_record()}

    return WarehouseCounts.model_validate(store.update_setting(WAREHOUSE_COUNTS_KEY, mutate, default))


def add_lifetime_usage(store: RecordStore, open_cell: float, closed_cell: float) -> LifetimeUsage:
    """Increment lifetime usage. Negative amounts are ignored, the counters never shrink."""
    def mutate(raw):
        usage = load_record(LifetimeUsage, raw) or LifetimeUsage()
        usage.open_cell += max(open_cell, 0.0)
        usage.closed_cell += max(closed_cell, 0.0)
        return {**(raw if isinstance(raw, dict) else {}), **usage.to_record()}

    default = {"openCell": 0, "closedCell": 0}
    return LifetimeUsage.model_validate(store.update_setting(LIFETIME_USAGE_KEY, mutate, default))


# --- Ledger ---

class MaterialLedger:
    """Collects log entries for one job and applies per-item stock changes."""

    def __init__(self, store: RecordStore, job: JobRecord, logged_by: str, date: str | None = None):
        self.store = store
        self.job = job
        self.logged_by = logged_by
        self.date = date or iso_now()
        self.entries: list[MaterialLogEntry] = []

    @property
    def error_count(self) -> int:
        return sum(1 for e in self.entries if e.action == LedgerAction.ERROR)

    def log(self, material_name: str, quantity: float, unit: str | None, action: LedgerAction,
            affects_stock: bool = True, item_id: str | None = None, **detail: Any) -> MaterialLogEntry:
        entry = MaterialLogEntry(
            id=new_id(),
            date=self.date,
            job_id=self.job.id,
            customer_name=self.job.customer_name,
            material_name=material_name,
            quantity=quantity,
            unit=unit,
            logged_by=self.logged_by,
            action=action,
            affects_stock=affects_stock,
            item_id=item_id,
            detail=detail,
        )
        self.entries.append(entry)
        return entry

    def log_foam(self, material_name: str, delta: float, action: LedgerAction) -> None:
        if delta != 0:
            self.log(material_name, delta, FOAM_UNIT, action)

    def adjust_item(self, line: InventoryItem, delta: float, action: LedgerAction) -> dict | None:
        """
        Apply a signed change to the inventory item with ``line.id``.

        Items are matched by id only. An unknown id is logged as a
        ``SYSTEM_ERROR`` entry and skipped; returns None in that case.
        """
        before: dict[str, float] = {}

        def mutate(raw):
            before["quantity"] = to_number(raw.get("quantity"))
            raw["quantity"] = before["quantity"] + delta
            return raw

        try:
            updated = self.store.update(Collection.INVENTORY, line.id, mutate)
        except NotFoundError:
            logger.warning(f"Inventory item {line.id} ({line.name}) not found for job {self.job.id}")
            self.log(
                line.name or "Unknown", delta, line.unit, LedgerAction.ERROR,
                affects_stock=False, item_id=line.id,
                error=f"{SYSTEM_ERROR}: inventory item not found",
            )
            return None

        if delta != 0:
            self.log(
                updated.get("name") or line.name or "Item", delta, updated.get("unit") or line.unit, action,
                item_id=line.id, prevQty=before["quantity"], newQty=to_number(updated.get("quantity")),
            )
        return updated

    def flush(self) -> int:
        for entry in self.entries:
            self.store.append(Collection.MATERIAL_LOG, entry.to_record())
        return len(self.entries)


# --- Work-order deduction ---

def deduct_for_work_order(store: RecordStore, job: JobRecord) -> ToolResult:
    """
    Take the planned materials of ``job`` out of stock, once.

    Mutates ``job`` in place (``inventoryDeducted``, ``deductedValues``); the
    caller persists it in the same transaction. A job whose completion was
    already reconciled has had its actual usage taken out and is skipped.
    """
    if job.inventory_deducted or job.inventory_processed:
        reason = "already deducted" if job.inventory_deducted else "settled at completion"
        return ToolResult(
            tool_name="deduct_for_work_order",
            success=True,
            message=f"Inventory {reason}",
            data={"deducted": False},
        )

    logger.info(f"Deducting planned materials for job {job.id}...")
    ledger = MaterialLedger(store, job, logged_by="System (Work Order)")
    planned = job.materials
    open_sets = planned.open_cell_sets
    closed_sets = planned.closed_cell_sets

    counts = adjust_warehouse_counts(store, -open_sets, -closed_sets)
    ledger.log_foam(OPEN_CELL, -open_sets, LedgerAction.DEDUCTION)
    ledger.log_foam(CLOSED_CELL, -closed_sets, LedgerAction.DEDUCTION)

    deducted_items = []
    for line in planned.inventory:
        updated = ledger.adjust_item(line, -line.quantity, LedgerAction.DEDUCTION)
        if updated is not None:
            deducted_items.append(InventoryItem(
                id=line.id,
                name=updated.get("name") or line.name,
                quantity=line.quantity,
                unit=updated.get("unit") or line.unit,
            ))

    ledger.flush()
    job.inventory_deducted = True
    job.deducted_values = DeductedValues(
        open_cell_sets=open_sets,
        closed_cell_sets=closed_sets,
        inventory=deducted_items,
    )

    logger.info(f"Work order {job.id}: warehouse now {counts.open_cell_sets:g} OC / {counts.closed_cell_sets:g} CC")
    return ToolResult(
        tool_name="deduct_for_work_order",
        success=True,
        message=f"Deducted {len(deducted_items)} inventory line(s) and foam sets",
        data={
            "deducted": True,
            "warehouse": counts.to_record(),
            "errors": ledger.error_count,
        },
    )


# --- Completion reconciliation ---

def _lines_by_id(lines: list[InventoryItem]) -> dict[str, InventoryItem]:
    """Sum duplicate lines of the same item."""
    merged: dict[str, InventoryItem] = {}
    for line in lines:
        if line.id in merged:
            merged[line.id] = merged[line.id].model_copy(update={"quantity": merged[line.id].quantity + line.quantity})
        else:
            merged[line.id] = line
    return merged


def compute_variances(planned_open: float, planned_closed: float, used_open: float, used_closed: float,
                      planned_lines: list[InventoryItem], actual_lines: list[InventoryItem]) -> list[VarianceEntry]:
    """variance = planned - actual, for every material with a non-zero difference."""
    variances = []
    for name, estimated, actual in ((OPEN_CELL, planned_open, used_open), (CLOSED_CELL, planned_closed, used_closed)):
        if estimated - actual != 0:
            variances.append(VarianceEntry(
                item=name, estimated=estimated, actual=actual, variance=estimated - actual, unit=FOAM_UNIT,
            ))

    planned_by_id = _lines_by_id(planned_lines)
    actual_by_id = _lines_by_id(actual_lines)
    for item_id in list(planned_by_id) + [i for i in actual_by_id if i not in planned_by_id]:
        plan = planned_by_id.get(item_id)
        act = actual_by_id.get(item_id)
        estimated = plan.quantity if plan else 0.0
        actual = act.quantity if act else 0.0
        if estimated - actual != 0:
            ref = plan or act
            variances.append(VarianceEntry(
                item=ref.name or "Item", item_id=item_id, estimated=estimated, actual=actual,
                variance=estimated - actual, unit=ref.unit,
            ))
    return variances


def reconcile_completion(store: RecordStore, job: JobRecord, actuals: JobActuals) -> ToolResult:
    """
    Settle the inventory of a completed job, once.

    Puts back whatever the work order pre-deducted, deducts the actual usage
    (the planned quantities stand in for anything the crew did not report)
    and records the variance per material. Mutates ``job`` in place.
    """
    if job.inventory_processed:
        return ToolResult(
            tool_name="reconcile_completion",
            success=True,
            message="Already completed",
            data={"already_completed": True},
        )

    if not actuals.completion_date:
        actuals.completion_date = iso_now()
    ledger = MaterialLedger(store, job, logged_by=actuals.completed_by or "Crew", date=actuals.completion_date)
    planned = job.materials
    open_delta = 0.0
    closed_delta = 0.0

    # 1. Put back the work-order pre-deduction
    ded = job.deducted_values if job.inventory_deducted else None
    if ded is not None:
        open_delta += ded.open_cell_sets
        closed_delta += ded.closed_cell_sets
        ledger.log_foam(OPEN_CELL, ded.open_cell_sets, LedgerAction.RESTOCK)
        ledger.log_foam(CLOSED_CELL, ded.closed_cell_sets, LedgerAction.RESTOCK)
        for line in ded.inventory:
            ledger.adjust_item(line, line.quantity, LedgerAction.RESTOCK)

    # 2. Deduct actual usage
    used_open = actuals.open_cell_sets if actuals.open_cell_sets is not None else planned.open_cell_sets
    used_closed = actuals.closed_cell_sets if actuals.closed_cell_sets is not None else planned.closed_cell_sets
    actual_lines = actuals.inventory if actuals.inventory is not None else planned.inventory
    open_delta -= used_open
    closed_delta -= used_closed
    ledger.log_foam(OPEN_CELL, -used_open, LedgerAction.DEDUCTION)
    ledger.log_foam(CLOSED_CELL, -used_closed, LedgerAction.DEDUCTION)
    for line in actual_lines:
        ledger.adjust_item(line, -line.quantity, LedgerAction.DEDUCTION)

    counts = adjust_warehouse_counts(store, open_delta, closed_delta)

    # 3. Variance audit
    variances = compute_variances(
        planned.open_cell_sets, planned.closed_cell_sets, used_open, used_closed,
        planned.inventory, actual_lines,
    )
    for v in variances:
        action = LedgerAction.VARIANCE_ADD_BACK if v.variance > 0 else LedgerAction.VARIANCE_OVERUSE
        ledger.log(
            v.item, v.variance, v.unit, action, affects_stock=False, item_id=v.item_id,
            estimated=v.estimated, actual=v.actual, variance=v.variance,
        )

    usage = add_lifetime_usage(store, used_open, used_closed)
    ledger.flush()

    reconciliation = Reconciliation(
        estimate_quantities=[
            {"item": OPEN_CELL, "quantity": planned.open_cell_sets, "unit": FOAM_UNIT},
            {"item": CLOSED_CELL, "quantity": planned.closed_cell_sets, "unit": FOAM_UNIT},
            *({"item": i.name, "itemId": i.id, "quantity": i.quantity, "unit": i.unit} for i in planned.inventory),
        ],
        actual_quantities=[
            {"item": OPEN_CELL, "quantity": used_open, "unit": FOAM_UNIT},
            {"item": CLOSED_CELL, "quantity": used_closed, "unit": FOAM_UNIT},
            *({"item": i.name, "itemId": i.id, "quantity": i.quantity, "unit": i.unit} for i in actual_lines),
        ],
        variances=variances,
        reconciled_at=iso_now(),
    )

    job.actuals = actuals
    job.execution_status = ExecutionStatus.COMPLETED
    job.inventory_processed = True
    job.reconciliation = reconciliation
    job.last_modified = iso_now()

    logger.info(
        f"Job {job.id} reconciled: {len(variances)} variance(s), {ledger.error_count} error(s), "
        f"warehouse {counts.open_cell_sets:g} OC / {counts.closed_cell_sets:g} CC"
    )
    return ToolResult(
        tool_name="reconcile_completion",
        success=True,
        message=f"Reconciled {len(ledger.entries)} ledger entries",
        data={
            "already_completed": False,
            "reconciliation": reconciliation.to_record(),
            "warehouse": counts.to_record(),
            "lifetimeUsage": usage.to_record(),
        },
    )
