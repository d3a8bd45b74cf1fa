"""Tests for the material ledger: work-order deduction and completion reconciliation."""

import pytest

from schemas.records import InventoryItem, JobActuals, JobRecord
from services.record_store import Collection, LIFETIME_USAGE_KEY, WAREHOUSE_COUNTS_KEY
from tools.inventory import (
    CLOSED_CELL, OPEN_CELL, compute_variances, deduct_for_work_order, read_warehouse_counts,
    reconcile_completion,
)


@pytest.fixture
def stocked(store):
    """20 open-cell / 10 closed-cell sets and 100 spray tips on the shelf."""
    store.put_setting(WAREHOUSE_COUNTS_KEY, {"openCellSets": 20, "closedCellSets": 10})
    store.put(Collection.INVENTORY, "tips", {"id": "tips", "name": "Spray Tips", "quantity": 100, "unit": "piece"})
    return store


def make_job(**materials) -> JobRecord:
    return JobRecord.model_validate({
        "id": "job-1",
        "customer": {"name": "Smith"},
        "status": "Draft",
        "materials": {
            "openCellSets": 5,
            "closedCellSets": 0,
            "inventory": [{"id": "tips", "name": "Spray Tips", "quantity": 10, "unit": "piece"}],
            **materials,
        },
    })


def tip_quantity(store) -> float:
    return store.get(Collection.INVENTORY, "tips")["quantity"]


def log_entries(store, job_id="job-1"):
    return [e for e in store.scan(Collection.MATERIAL_LOG) if e.get("jobId") == job_id]


class TestWorkOrderDeduction:
    """Test the one-time planned deduction."""

    def test_deducts_planned(self, stocked):
        job = make_job()
        result = deduct_for_work_order(stocked, job)

        assert result.success is True
        assert result.data["deducted"] is True
        assert read_warehouse_counts(stocked).open_cell_sets == 15
        assert tip_quantity(stocked) == 90
        assert job.inventory_deducted is True
        assert job.deducted_values.open_cell_sets == 5
        assert [line.id for line in job.deducted_values.inventory] == ["tips"]

    def test_second_deduction_is_noop(self, stocked):
        job = make_job()
        deduct_for_work_order(stocked, job)
        entries_before = len(log_entries(stocked))

        result = deduct_for_work_order(stocked, job)

        assert result.data["deducted"] is False
        assert read_warehouse_counts(stocked).open_cell_sets == 15
        assert tip_quantity(stocked) == 90
        assert len(log_entries(stocked)) == entries_before

    def test_no_deduction_after_completion(self, stocked):
        """A late work order must not take stock a completion already settled."""
        job = make_job()
        reconcile_completion(stocked, job, JobActuals(open_cell_sets=6))
        assert read_warehouse_counts(stocked).open_cell_sets == 14

        result = deduct_for_work_order(stocked, job)

        assert result.data["deducted"] is False
        assert read_warehouse_counts(stocked).open_cell_sets == 14
        assert tip_quantity(stocked) == 90
        assert job.inventory_deducted is False

    def test_zero_quantities_not_logged(self, stocked):
        deduct_for_work_order(stocked, make_job(openCellSets=0, inventory=[]))
        assert log_entries(stocked) == []

    def test_stock_may_go_negative(self, stocked):
        deduct_for_work_order(stocked, make_job(openCellSets=25))
        assert read_warehouse_counts(stocked).open_cell_sets == -5

    def test_unknown_item_logged_as_error(self, stocked):
        job = make_job(inventory=[{"id": "ghost", "name": "Ghost Item", "quantity": 3}])
        result = deduct_for_work_order(stocked, job)

        assert result.data["errors"] == 1
        assert job.deducted_values.inventory == []
        errors = [e for e in log_entries(stocked) if e["action"] == "Error"]
        assert len(errors) == 1
        assert errors[0]["affectsStock"] is False
        assert errors[0]["quantity"] == -3
        assert "SYSTEM_ERROR" in errors[0]["detail"]["error"]

    def test_items_matched_by_id_only(self, stocked):
        job = make_job(inventory=[{"id": "other", "name": "Spray Tips", "quantity": 3}])
        deduct_for_work_order(stocked, job)
        assert tip_quantity(stocked) == 100


class TestCompletionReconciliation:
    """Planned 5 sets / 10 tips, used 6 sets / 8 tips."""

    @pytest.fixture
    def completed(self, stocked):
        job = make_job()
        deduct_for_work_order(stocked, job)
        result = reconcile_completion(stocked, job, JobActuals(
            open_cell_sets=6,
            inventory=[{"id": "tips", "name": "Spray Tips", "quantity": 8, "unit": "piece"}],
            completed_by="Crew Lead",
        ))
        return job, result

    def test_stock_reflects_actual_usage(self, stocked, completed):
        assert read_warehouse_counts(stocked).open_cell_sets == 14
        assert tip_quantity(stocked) == 92

    def test_variances(self, completed):
        job, result = completed
        by_item = {v.item: v for v in job.reconciliation.variances}
        assert by_item[OPEN_CELL].variance == -1
        assert by_item["Spray Tips"].variance == 2
        assert CLOSED_CELL not in by_item
        assert result.data["reconciliation"]["variances"]

    def test_job_marked_completed(self, completed):
        job, _ = completed
        assert job.inventory_processed is True
        assert job.execution_status.value == "Completed"
        assert job.actuals.completed_by == "Crew Lead"
        assert job.actuals.completion_date
        assert job.last_modified

    def test_stock_entries_sum_to_actual_usage(self, stocked, completed):
        stock_moves = [e for e in log_entries(stocked) if e["affectsStock"]]
        foam = sum(e["quantity"] for e in stock_moves if e["materialName"] == OPEN_CELL)
        tips = sum(e["quantity"] for e in stock_moves if e.get("itemId") == "tips")
        assert foam == -6
        assert tips == -8

    def test_variance_entries_are_audit_only(self, stocked, completed):
        variance_entries = [e for e in log_entries(stocked) if e["action"].startswith("Variance")]
        assert {e["action"] for e in variance_entries} == {"VarianceAddBack", "VarianceOveruse"}
        assert all(e["affectsStock"] is False for e in variance_entries)

    def test_second_completion_is_noop(self, stocked, completed):
        job, _ = completed
        entries_before = len(log_entries(stocked))

        result = reconcile_completion(stocked, job, JobActuals(open_cell_sets=50))

        assert result.data["already_completed"] is True
        assert read_warehouse_counts(stocked).open_cell_sets == 14
        assert len(log_entries(stocked)) == entries_before

    def test_lifetime_usage_grows(self, stocked, completed):
        _, result = completed
        assert result.data["lifetimeUsage"]["openCell"] == 6
        assert stocked.get_setting(LIFETIME_USAGE_KEY)["openCell"] == 6


class TestReconciliationFallbacks:
    """Test reconciliation without a work order or crew-reported numbers."""

    def test_missing_actuals_use_planned(self, stocked):
        job = make_job()
        deduct_for_work_order(stocked, job)
        reconcile_completion(stocked, job, JobActuals())

        assert read_warehouse_counts(stocked).open_cell_sets == 15
        assert tip_quantity(stocked) == 90
        assert job.reconciliation.variances == []

    def test_without_work_order_deducts_once(self, stocked):
        job = make_job()
        reconcile_completion(stocked, job, JobActuals(open_cell_sets=4))

        assert read_warehouse_counts(stocked).open_cell_sets == 16
        assert not [e for e in log_entries(stocked) if e["action"] == "Restock"]

    def test_lifetime_usage_never_shrinks(self, stocked):
        job = make_job(openCellSets=0, inventory=[])
        reconcile_completion(stocked, job, JobActuals(open_cell_sets=-3))
        assert stocked.get_setting(LIFETIME_USAGE_KEY)["openCell"] == 0

    def test_legacy_warehouse_key_read(self, store):
        store.delete(Collection.SETTINGS, WAREHOUSE_COUNTS_KEY)
        store.put_setting("warehouse", {"openCellSets": 7, "closedCellSets": 2})
        assert read_warehouse_counts(store).open_cell_sets == 7


class TestComputeVariances:

    def test_unplanned_item_is_overuse(self):
        variances = compute_variances(0, 0, 0, 0, [], [InventoryItem(id="tape", name="Tape", quantity=2)])
        assert len(variances) == 1
        assert variances[0].variance == -2

    def test_duplicate_lines_summed(self):
        planned = [InventoryItem(id="tips", name="Tips", quantity=4), InventoryItem(id="tips", name="Tips", quantity=6)]
        actual = [InventoryItem(id="tips", name="Tips", quantity=10)]
        assert compute_variances(0, 0, 0, 0, planned, actual) == []
