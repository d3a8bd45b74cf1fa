"""Tool: Full-state sync between the office client and the server.

SYNC_DOWN hands a client everything it needs in one snapshot. SYNC_UP takes
the office's snapshot and folds it into the server state: job conflicts are
resolved first (see ``engine.merge``), then settings, warehouse, equipment,
customers and jobs are written.
"""

import logging

from config import settings
from engine.context import ActionContext, parse_payload
from engine.merge import merge_job_records
from models.models import Tenant
from schemas.actions import SyncUpPayload, TenantPayload
from schemas.records import WarehouseCounts, to_number
from services.record_store import (
    COMPANY_PROFILE_KEY, Collection, LEGACY_WAREHOUSE_KEY, LIFETIME_USAGE_KEY, WAREHOUSE_COUNTS_KEY,
)
from tools.inventory import read_lifetime_usage, read_warehouse_counts

logger = logging.getLogger(__name__)

# Settings keys a client may write. lifetimeUsage is deliberately absent.
SYNCED_SETTING_KEYS = (
    COMPANY_PROFILE_KEY, "yields", "costs", "expenses", "jobNotes", "purchaseOrders", "sqFtRates", "pricingMode",
)

# Server-owned keys that are returned in their own sections
INTERNAL_SETTING_KEYS = {WAREHOUSE_COUNTS_KEY, LEGACY_WAREHOUSE_KEY, LIFETIME_USAGE_KEY}


def handle_sync_down(ctx: ActionContext, payload: dict) -> dict:
    p = parse_payload(TenantPayload, payload)
    store = ctx.open_store(p.tenant_id)

    snapshot = {k: v for k, v in store.settings_map().items() if k not in INTERNAL_SETTING_KEYS}
    snapshot["warehouse"] = {
        **read_warehouse_counts(store).to_record(),
        "items": store.scan(Collection.INVENTORY),
    }
    snapshot["lifetimeUsage"] = read_lifetime_usage(store).to_record()
    snapshot["equipment"] = store.scan(Collection.EQUIPMENT)
    snapshot["savedEstimates"] = store.scan(Collection.JOBS)
    snapshot["customers"] = store.scan(Collection.CUSTOMERS)
    snapshot["messages"] = store.scan(Collection.MESSAGES)
    snapshot["materialLogs"] = store.recent(Collection.MATERIAL_LOG, settings.SYNC_DOWN_LOG_LIMIT)

    logger.info(
        f"Sync down for tenant {p.tenant_id}: {len(snapshot['savedEstimates'])} jobs, "
        f"{len(snapshot['warehouse']['items'])} inventory items"
    )
    return snapshot


def handle_sync_up(ctx: ActionContext, payload: dict) -> dict:
    p = parse_payload(SyncUpPayload, payload)
    store = ctx.open_store(p.tenant_id)
    store.ensure_schema()
    state = p.state

    # 1. Resolve job conflicts against the server copy before anything is replaced
    incoming_jobs = state.get("savedEstimates")
    merged_jobs = None
    if isinstance(incoming_jobs, list) and incoming_jobs:
        server_jobs, job_versions = store.scan_versioned(Collection.JOBS)
        merged_jobs = merge_job_records(server_jobs, incoming_jobs)

    # 2. Settings, by key
    store.merge_settings({key: state[key] for key in SYNCED_SETTING_KEYS if key in state})

    # 3. Warehouse and equipment
    warehouse = state.get("warehouse")
    if isinstance(warehouse, dict):
        counts = WarehouseCounts(
            open_cell_sets=to_number(warehouse.get("openCellSets")),
            closed_cell_sets=to_number(warehouse.get("closedCellSets")),
        )
        store.put_setting(WAREHOUSE_COUNTS_KEY, counts.to_record())
        items = warehouse.get("items")
        if isinstance(items, list):
            store.replace_all(Collection.INVENTORY, items)

    equipment = state.get("equipment")
    if isinstance(equipment, list):
        store.replace_all(Collection.EQUIPMENT, equipment)

    # 4. Customers and jobs, only when the client actually sent some
    customers = state.get("customers")
    if isinstance(customers, list) and customers:
        store.replace_all(Collection.CUSTOMERS, customers)
    if merged_jobs is not None:
        # Media actions write jobs without the tenant lock; a job touched since
        # the merge read fails the whole upload with a retryable conflict
        store.replace_all(Collection.JOBS, merged_jobs, expected_versions=job_versions)

    # 5. Crew PIN lives on the registry row as well
    profile = state.get(COMPANY_PROFILE_KEY)
    pin = profile.get("crewAccessPin") if isinstance(profile, dict) else None
    if pin:
        tenant = ctx.db.get(Tenant, p.tenant_id)
        if tenant.crew_pin != str(pin):
            tenant.crew_pin = str(pin)
            logger.info(f"Crew PIN updated for tenant {p.tenant_id}")

    ctx.db.flush()
    logger.info(f"Sync up for tenant {p.tenant_id}: {len(merged_jobs or [])} jobs after merge")
    return {"synced": True}
