from schemas.records import (
    JobRecord, JobStatus, ExecutionStatus, InventoryItem, WarehouseCounts, LifetimeUsage,
    MaterialLogEntry, LedgerAction, Message, load_record,
)
from schemas.actions import ActionRequest, ActionResponse, ToolResult

__all__ = [
    "JobRecord", "JobStatus", "ExecutionStatus", "InventoryItem", "WarehouseCounts", "LifetimeUsage",
    "MaterialLogEntry", "LedgerAction", "Message", "load_record",
    "ActionRequest", "ActionResponse", "ToolResult",
]
