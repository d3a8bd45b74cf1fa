"""Tool: Record a paid job in the profit and loss ledger."""

import logging

from schemas.actions import ToolResult
from schemas.records import Financials, JobRecord, ProfitLossEntry
from services.clock import iso_now, new_id
from services.record_store import Collection, RecordStore

logger = logging.getLogger(__name__)


def update_revenue(store: RecordStore, job: JobRecord, financials: Financials) -> ToolResult:
    """
    Append one profit and loss row for a job that was just marked paid.

    Only runs on the transition to Paid, so a job never gets a second row.
    """
    logger.info(f"Recording revenue: ${financials.revenue:.2f} from job {job.id}...")

    entry = ProfitLossEntry(
        id=new_id(),
        date_paid=iso_now(),
        job_id=job.id,
        customer=job.customer_name,
        invoice_number=job.invoice_number,
        revenue=financials.revenue,
        chemical_cost=financials.chemical_cost,
        labor_cost=financials.labor_cost,
        inventory_cost=financials.inventory_cost,
        misc_cost=financials.misc_cost,
        total_cogs=financials.total_cogs,
        net_profit=financials.net_profit,
        margin=financials.margin,
    )
    store.append(Collection.PROFIT_AND_LOSS, entry.to_record())

    logger.info(f"Revenue recorded: ${financials.revenue:.2f}, net ${financials.net_profit:.2f}")
    return ToolResult(
        tool_name="update_revenue",
        success=True,
        message=f"Revenue of ${financials.revenue:.2f} recorded",
        data={"entry_id": entry.id, "amount": financials.revenue},
    )
