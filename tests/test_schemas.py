"""Tests for Pydantic schemas — wire format, unknown fields and the response envelope."""

import pytest
from pydantic import ValidationError

from schemas.actions import ActionRequest, ActionResponse, CrewLoginPayload, SyncUpPayload, ToolResult
from schemas.records import (
    ExecutionStatus, Financials, InventoryItem, JobActuals, JobRecord, JobStatus, MaterialLogEntry, LedgerAction,
    WarehouseCounts, load_record,
)


class TestJobRecord:
    """Test JobRecord parsing and serialization."""

    def test_camel_case_round_trip(self):
        job = JobRecord.model_validate({
            "id": "job-1",
            "status": "Work Order",
            "executionStatus": "In Progress",
            "materials": {"openCellSets": 5, "inventory": [{"id": "tips", "quantity": 10}]},
            "inventoryDeducted": True,
        })
        assert job.status == JobStatus.WORK_ORDER
        assert job.execution_status == ExecutionStatus.IN_PROGRESS
        assert job.materials.open_cell_sets == 5
        assert job.materials.inventory[0].quantity == 10

        record = job.to_record()
        assert record["executionStatus"] == "In Progress"
        assert record["materials"]["openCellSets"] == 5
        assert record["inventoryDeducted"] is True

    def test_unknown_fields_preserved(self):
        job = JobRecord.model_validate({
            "id": "job-1",
            "wallSettings": {"type": "Open Cell", "thickness": 3.5},
            "results": {"totalWallArea": 1200},
        })
        record = job.to_record()
        assert record["wallSettings"] == {"type": "Open Cell", "thickness": 3.5}
        assert record["results"]["totalWallArea"] == 1200

    def test_defaults(self):
        job = JobRecord(id="job-1")
        assert job.status == JobStatus.DRAFT
        assert job.execution_status == ExecutionStatus.NOT_STARTED
        assert job.inventory_deducted is False
        assert job.inventory_processed is False
        assert job.customer_name == "Unknown"

    def test_missing_id_rejected(self):
        with pytest.raises(ValidationError):
            JobRecord.model_validate({"status": "Draft"})


class TestLooseNumbers:
    """Blank, null or garbage numbers resolve to defaults instead of failing the record."""

    def test_null_and_blank_quantities_are_zero(self):
        job = JobRecord.model_validate({
            "id": "job-1",
            "totalValue": "",
            "materials": {
                "openCellSets": None,
                "closedCellSets": "",
                "inventory": [{"id": "tips", "quantity": None}, {"id": "tape", "quantity": ""}],
            },
        })
        assert job.total_value == 0
        assert job.materials.open_cell_sets == 0
        assert job.materials.closed_cell_sets == 0
        assert [line.quantity for line in job.materials.inventory] == [0, 0]

    def test_numeric_strings_parsed(self):
        item = InventoryItem.model_validate({"id": "tips", "quantity": "12.5", "unitCost": "1.25"})
        assert item.quantity == 12.5
        assert item.unit_cost == 1.25

    def test_garbage_quantity_is_zero(self):
        assert InventoryItem.model_validate({"id": "tips", "quantity": "lots"}).quantity == 0

    def test_null_line_list_is_empty(self):
        job = JobRecord.model_validate({"id": "job-1", "materials": {"inventory": None}})
        assert job.materials.inventory == []

    def test_blank_actuals_stay_unreported(self):
        actuals = JobActuals.model_validate({"openCellSets": "", "closedCellSets": None, "laborHours": "8"})
        assert actuals.open_cell_sets is None
        assert actuals.closed_cell_sets is None
        assert actuals.labor_hours == 8

    def test_warehouse_counts(self):
        counts = load_record(WarehouseCounts, {"openCellSets": None, "closedCellSets": "4"})
        assert counts.open_cell_sets == 0
        assert counts.closed_cell_sets == 4


class TestLoadRecord:
    """Test tolerant loading of stored records."""

    def test_valid(self):
        counts = load_record(WarehouseCounts, {"openCellSets": 20, "closedCellSets": -3})
        assert counts.open_cell_sets == 20
        assert counts.closed_cell_sets == -3

    def test_empty_is_absent(self):
        assert load_record(JobRecord, None) is None
        assert load_record(JobRecord, {}) is None

    def test_invalid_is_absent(self):
        assert load_record(JobRecord, {"id": "job-1", "status": "Not A Status"}) is None


class TestFinancials:
    """totalCOGS keeps its historical spelling on the wire."""

    def test_total_cogs_alias(self):
        financials = Financials(revenue=100, total_cogs=60, net_profit=40, margin=0.4)
        assert financials.to_record()["totalCOGS"] == 60
        assert Financials.model_validate({"totalCOGS": 12}).total_cogs == 12


class TestMaterialLogEntry:

    def test_affects_stock_default(self):
        entry = MaterialLogEntry(
            id="e1", date="2024-01-01T00:00:00Z", material_name="Open Cell Foam",
            quantity=-5, action=LedgerAction.DEDUCTION,
        )
        record = entry.to_record()
        assert record["affectsStock"] is True
        assert record["action"] == "Deduction"
        assert record["loggedBy"] == "System"


class TestActionEnvelope:
    """Test request/response envelope schemas."""

    def test_request_requires_action(self):
        with pytest.raises(ValidationError):
            ActionRequest.model_validate({"payload": {}})
        with pytest.raises(ValidationError):
            ActionRequest.model_validate({"action": ""})

    def test_payload_defaults_to_empty(self):
        assert ActionRequest(action="SYNC_DOWN").payload == {}

    def test_success_body(self):
        body = ActionResponse.success({"synced": True}).to_body()
        assert body == {"status": "success", "data": {"synced": True}}

    def test_error_body(self):
        assert ActionResponse.error("Nope").to_body() == {"status": "error", "message": "Nope"}

    def test_retryable_error_body(self):
        body = ActionResponse.error("Server busy", retryable=True).to_body()
        assert body == {"status": "error", "message": "Server busy", "retryable": True}


class TestPayloads:

    def test_sync_up_payload(self):
        p = SyncUpPayload.model_validate({"tenantId": "t1", "state": {"costs": {}}})
        assert p.tenant_id == "t1"
        assert p.state == {"costs": {}}

    def test_tenant_required(self):
        with pytest.raises(ValidationError):
            SyncUpPayload.model_validate({"state": {}})

    def test_numeric_pin_accepted(self):
        assert str(CrewLoginPayload.model_validate({"username": "acme", "pin": 1234}).pin) == "1234"


class TestToolResult:
    """Test ToolResult schema."""

    def test_success_result(self):
        result = ToolResult(
            tool_name="deduct_for_work_order",
            success=True,
            message="Deducted",
            data={"deducted": True},
        )
        assert result.success is True
        assert result.data["deducted"] is True

    def test_without_data(self):
        result = ToolResult(tool_name="reconcile_completion", success=True, message="Already completed")
        assert result.data is None
