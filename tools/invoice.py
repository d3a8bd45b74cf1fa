"""Tool: Job financials and the transition to Paid."""

import logging

from engine.context import ActionContext, parse_payload
from schemas.actions import JobPayload
from schemas.records import Financials, InventoryItem, JobRecord, JobStatus, load_record
from services.clock import iso_now
from services.record_store import COSTS_KEY, Collection, RecordStore
from tools.job_status import load_job, update_job
from tools.revenue import update_revenue

logger = logging.getLogger(__name__)


def _unit_cost(store: RecordStore, line: InventoryItem, cache: dict) -> float:
    """Unit cost from the job line, falling back to the warehouse item."""
    if line.unit_cost:
        return line.unit_cost
    if line.id not in cache:
        item = load_record(InventoryItem, store.get(Collection.INVENTORY, line.id))
        cache[line.id] = (item.unit_cost or 0.0) if item else 0.0
    return cache[line.id]


def calculate_financials(store: RecordStore, job: JobRecord) -> Financials:
    """
    Revenue and cost of goods for a job.

    Chemical cost prices the foam sets used, labor uses the crew's hours at the
    job (or company) rate, inventory cost prices each line used, misc is trip
    charge plus fuel surcharge. Unreported actuals fall back to the plan.
    """
    costs = store.get_setting(COSTS_KEY) or {}
    if not isinstance(costs, dict):
        costs = {}
    actuals = job.actuals
    planned = job.materials
    expenses = job.expenses

    open_sets = actuals.open_cell_sets if actuals and actuals.open_cell_sets is not None else planned.open_cell_sets
    closed_sets = actuals.closed_cell_sets if actuals and actuals.closed_cell_sets is not None else planned.closed_cell_sets
    chemical_cost = open_sets * float(costs.get("openCell") or 0) + closed_sets * float(costs.get("closedCell") or 0)

    hours = (actuals.labor_hours if actuals else None) or (expenses.man_hours if expenses else None) or 0.0
    rate = (expenses.labor_rate if expenses else None) or float(costs.get("laborRate") or 0)
    labor_cost = hours * rate

    lines = actuals.inventory if actuals and actuals.inventory is not None else planned.inventory
    unit_costs: dict[str, float] = {}
    inventory_cost = sum(line.quantity * _unit_cost(store, line, unit_costs) for line in lines)

    misc_cost = ((expenses.trip_charge or 0.0) + (expenses.fuel_surcharge or 0.0)) if expenses else 0.0

    revenue = job.total_value or 0.0
    total_cogs = chemical_cost + labor_cost + inventory_cost + misc_cost
    net_profit = revenue - total_cogs
    return Financials(
        revenue=revenue,
        total_cogs=total_cogs,
        chemical_cost=chemical_cost,
        labor_cost=labor_cost,
        inventory_cost=inventory_cost,
        misc_cost=misc_cost,
        net_profit=net_profit,
        margin=net_profit / revenue if revenue else 0.0,
    )


def handle_mark_job_paid(ctx: ActionContext, payload: dict) -> dict:
    """Freeze the job's financials and append a P&L row. Repeat calls return the frozen record."""
    p = parse_payload(JobPayload, payload)
    store = ctx.open_store(p.tenant_id)

    current = load_job(store, p.estimate_id)
    if current.status == JobStatus.PAID and current.financials is not None:
        logger.info(f"Job {p.estimate_id} already paid, financials frozen")
        return {"success": True, "estimate": current.to_record()}

    logger.info(f"Marking job {p.estimate_id} paid...")

    def apply(job: JobRecord) -> Financials:
        job.financials = calculate_financials(store, job)
        job.status = JobStatus.PAID
        job.last_modified = iso_now()
        return job.financials

    job, financials = update_job(store, p.estimate_id, apply)
    update_revenue(store, job, financials)
    return {"success": True, "estimate": job.to_record()}
