"""Tests for the record store adapter."""

import pytest
from sqlalchemy import update as sa_update

from engine.errors import ConcurrentUpdateError, NotFoundError
from models.models import InventoryRow, JobRow, MessageRow, SettingRow
from services.record_store import (
    Collection, DEFAULT_COSTS, LIFETIME_USAGE_KEY, RecordStore, WAREHOUSE_COUNTS_KEY,
)


class TestGetPut:
    """Test single-record reads and upserts."""

    def test_put_then_get(self, store):
        store.put(Collection.JOBS, "job-1", {"id": "job-1", "customer": {"name": "Smith"}, "totalValue": 5000})
        assert store.get(Collection.JOBS, "job-1")["customer"]["name"] == "Smith"

    def test_index_columns_follow_record(self, store, db_session):
        store.put(Collection.JOBS, "job-1", {"id": "job-1", "customer": {"name": "Smith"}, "status": "Paid"})
        row = db_session.query(JobRow).filter_by(key="job-1").one()
        assert row.customer_name == "Smith"
        assert row.status == "Paid"

    def test_put_is_upsert(self, store, db_session):
        store.put(Collection.INVENTORY, "tips", {"id": "tips", "quantity": 10})
        store.put(Collection.INVENTORY, "tips", {"id": "tips", "quantity": 7})
        rows = db_session.query(InventoryRow).filter_by(key="tips").all()
        assert len(rows) == 1
        assert rows[0].quantity == 7
        assert rows[0].version == 2

    def test_unchanged_put_keeps_version(self, store, db_session):
        store.put(Collection.INVENTORY, "tips", {"id": "tips", "quantity": 10})
        store.put(Collection.INVENTORY, "tips", {"id": "tips", "quantity": 10})
        assert db_session.query(InventoryRow).filter_by(key="tips").one().version == 1

    def test_missing_is_none(self, store):
        assert store.get(Collection.JOBS, "nope") is None

    def test_tenants_are_isolated(self, store, db_session):
        store.put(Collection.JOBS, "job-1", {"id": "job-1"})
        other = RecordStore(db_session, "tenant-2")
        assert other.get(Collection.JOBS, "job-1") is None
        assert other.scan(Collection.JOBS) == []


class TestCorruptCells:
    """Unreadable cells read as absent instead of failing."""

    def test_corrupt_cell_is_absent(self, store, db_session):
        store.put(Collection.JOBS, "job-1", {"id": "job-1"})
        db_session.query(JobRow).filter_by(key="job-1").update({"data": "{not json"}, synchronize_session=False)
        db_session.expire_all()
        assert store.get(Collection.JOBS, "job-1") is None

    def test_scan_skips_corrupt_and_empty(self, store, db_session):
        store.append(Collection.MESSAGES, {"id": "m1", "content": "hi"})
        store.append(Collection.MESSAGES, {"id": "m2", "content": "broken"})
        store.append(Collection.MESSAGES, {"id": "m3", "content": "there"})
        db_session.execute(
            sa_update(MessageRow).where(MessageRow.key == "m2").values(data="")
            .execution_options(synchronize_session=False)
        )
        db_session.expire_all()
        assert [m["id"] for m in store.scan(Collection.MESSAGES)] == ["m1", "m3"]


class TestScanAndTail:
    """Test ordered reads of append-only collections."""

    def test_scan_insertion_order(self, store):
        for i in range(3):
            store.append(Collection.MATERIAL_LOG, {"id": f"e{i}", "quantity": i})
        assert [e["id"] for e in store.scan(Collection.MATERIAL_LOG)] == ["e0", "e1", "e2"]

    def test_scan_from_row_hint(self, store, db_session):
        store.append(Collection.MESSAGES, {"id": "m1"})
        store.append(Collection.MESSAGES, {"id": "m2"})
        first_row = min(row.id for row in db_session.query(MessageRow))
        assert [m["id"] for m in store.scan(Collection.MESSAGES, from_row=first_row)] == ["m2"]

    def test_tail_newest_first_and_bounded(self, store):
        for i in range(5):
            store.append(Collection.MESSAGES, {"id": f"m{i}"})
        tail = list(store.tail(Collection.MESSAGES, 3))
        assert [record["id"] for _, record in tail] == ["m4", "m3", "m2"]
        assert all(written_at is not None for written_at, _ in tail)

    def test_recent_oldest_first(self, store):
        for i in range(5):
            store.append(Collection.MATERIAL_LOG, {"id": f"e{i}"})
        assert [e["id"] for e in store.recent(Collection.MATERIAL_LOG, 2)] == ["e3", "e4"]


class TestReplaceAll:
    """Test wholesale replacement."""

    def test_replace_drops_missing_and_keeps_unchanged(self, store, db_session):
        store.replace_all(Collection.CUSTOMERS, [{"id": "c1", "name": "A"}, {"id": "c2", "name": "B"}])
        store.replace_all(Collection.CUSTOMERS, [{"id": "c2", "name": "B"}, {"id": "c3", "name": "C"}])
        assert sorted(c["id"] for c in store.scan(Collection.CUSTOMERS)) == ["c2", "c3"]

    def test_records_without_id_get_one(self, store):
        store.replace_all(Collection.EQUIPMENT, [{"name": "Rig"}])
        equipment = store.scan(Collection.EQUIPMENT)
        assert len(equipment) == 1
        assert equipment[0]["id"]

    def test_duplicate_ids_keep_last(self, store):
        store.replace_all(Collection.INVENTORY, [{"id": "a", "quantity": 1}, {"id": "a", "quantity": 2}])
        assert store.get(Collection.INVENTORY, "a")["quantity"] == 2

    def test_replace_with_empty_list_clears(self, store):
        store.replace_all(Collection.INVENTORY, [{"id": "a", "quantity": 1}])
        store.replace_all(Collection.INVENTORY, [])
        assert store.scan(Collection.INVENTORY) == []


class TestVersionedReplace:
    """replace_all against the versions of an earlier read."""

    def test_scan_versioned_includes_unreadable_rows(self, store, db_session):
        store.put(Collection.JOBS, "job-1", {"id": "job-1"})
        store.put(Collection.JOBS, "job-2", {"id": "job-2"})
        db_session.execute(
            sa_update(JobRow).where(JobRow.key == "job-2").values(data="{broken")
            .execution_options(synchronize_session=False)
        )
        db_session.expire_all()

        records, versions = store.scan_versioned(Collection.JOBS)
        assert [r["id"] for r in records] == ["job-1"]
        assert versions == {"job-1": 1, "job-2": 1}

    def test_applies_when_nothing_changed(self, store, db_session):
        store.put(Collection.JOBS, "job-1", {"id": "job-1"})
        store.put(Collection.JOBS, "job-2", {"id": "job-2"})
        _, versions = store.scan_versioned(Collection.JOBS)

        store.replace_all(Collection.JOBS, [{"id": "job-1", "notes": "ladder"}, {"id": "job-3"}], expected_versions=versions)

        db_session.expire_all()
        assert sorted(j["id"] for j in store.scan(Collection.JOBS)) == ["job-1", "job-3"]
        assert store.get(Collection.JOBS, "job-1")["notes"] == "ladder"
        assert db_session.query(JobRow).filter_by(key="job-1").one().version == 2

    def test_row_changed_since_read(self, store, db_session):
        store.put(Collection.JOBS, "job-1", {"id": "job-1"})
        _, versions = store.scan_versioned(Collection.JOBS)
        # another writer moves the row on
        db_session.execute(
            sa_update(JobRow).where(JobRow.key == "job-1")
            .values(data='{"id": "job-1", "inventoryDeducted": true}', version=JobRow.version + 1)
            .execution_options(synchronize_session=False)
        )

        with pytest.raises(ConcurrentUpdateError):
            store.replace_all(Collection.JOBS, [{"id": "job-1", "notes": "ladder"}], expected_versions=versions)

    def test_row_added_since_read(self, store):
        _, versions = store.scan_versioned(Collection.JOBS)
        store.put(Collection.JOBS, "job-9", {"id": "job-9"})

        with pytest.raises(ConcurrentUpdateError):
            store.replace_all(Collection.JOBS, [{"id": "job-1"}], expected_versions=versions)

    def test_deleted_row_changed_since_read(self, store, db_session):
        store.put(Collection.JOBS, "job-1", {"id": "job-1"})
        _, versions = store.scan_versioned(Collection.JOBS)
        db_session.execute(
            sa_update(JobRow).where(JobRow.key == "job-1").values(version=JobRow.version + 1)
            .execution_options(synchronize_session=False)
        )

        with pytest.raises(ConcurrentUpdateError):
            store.replace_all(Collection.JOBS, [{"id": "job-2"}], expected_versions=versions)


class TestCompareAndSet:
    """Test version-checked read-modify-write."""

    def test_update_applies_and_bumps_version(self, store, db_session):
        store.put(Collection.INVENTORY, "tips", {"id": "tips", "quantity": 10})
        result = store.update(Collection.INVENTORY, "tips", lambda raw: {**raw, "quantity": raw["quantity"] - 3})
        assert result["quantity"] == 7
        assert store.get(Collection.INVENTORY, "tips")["quantity"] == 7
        assert db_session.query(InventoryRow).filter_by(key="tips").one().version == 2

    def test_conflict_detected(self, store, db_session):
        store.put(Collection.INVENTORY, "tips", {"id": "tips", "quantity": 10})

        def racing_mutate(raw):
            # another writer commits in between our read and our write
            db_session.execute(
                sa_update(InventoryRow).where(InventoryRow.key == "tips").values(version=InventoryRow.version + 1)
                .execution_options(synchronize_session=False)
            )
            return {**raw, "quantity": 0}

        with pytest.raises(ConcurrentUpdateError):
            store.update(Collection.INVENTORY, "tips", racing_mutate)

    def test_missing_row_without_default(self, store):
        with pytest.raises(NotFoundError):
            store.update(Collection.INVENTORY, "ghost", lambda raw: raw)

    def test_missing_row_with_default_is_created(self, store):
        value = store.update(Collection.INVENTORY, "new", lambda raw: {**raw, "quantity": 1}, default={"id": "new"})
        assert value == {"id": "new", "quantity": 1}
        assert store.get(Collection.INVENTORY, "new")["quantity"] == 1


class TestSettings:
    """Test the key/value settings helpers."""

    def test_schema_seeds_defaults(self, store):
        values = store.settings_map()
        assert values["costs"] == DEFAULT_COSTS
        assert values[WAREHOUSE_COUNTS_KEY] == {"openCellSets": 0, "closedCellSets": 0}
        assert values[LIFETIME_USAGE_KEY] == {"openCell": 0, "closedCell": 0}
        assert values["companyProfile"]["companyName"] == "Acme Foam"

    def test_seeding_only_once(self, store):
        store.put_setting("costs", {"openCell": 1})
        store.ensure_schema({"companyName": "Other"})
        assert store.get_setting("costs") == {"openCell": 1}
        assert store.get_setting("companyProfile")["companyName"] == "Acme Foam"

    def test_merge_leaves_other_keys(self, store):
        store.put_setting("jobNotes", "Bring ladders")
        store.merge_settings({"costs": {"openCell": 1800}})
        assert store.get_setting("jobNotes") == "Bring ladders"
        assert store.get_setting("costs") == {"openCell": 1800}

    def test_keys_unique_per_tenant(self, store, db_session):
        store.put_setting("pricingMode", "level_pricing")
        store.put_setting("pricingMode", "sqft_pricing")
        assert db_session.query(SettingRow).filter_by(tenant_id=store.tenant_id, key="pricingMode").count() == 1
        assert store.get_setting("pricingMode") == "sqft_pricing"

    def test_falsy_values_survive(self, store):
        store.put_setting("flag", False)
        assert store.get_setting("flag", default="missing") is False

    def test_update_setting(self, store):
        store.update_setting("counter", lambda raw: {"n": raw["n"] + 1}, default={"n": 0})
        store.update_setting("counter", lambda raw: {"n": raw["n"] + 1}, default={"n": 0})
        assert store.get_setting("counter") == {"n": 2}
