"""Record store adapter — typed collections on top of SQLAlchemy tables.

One row per record: the full record is JSON-serialized into ``data`` and a
few index columns are denormalized from it on every write. All reads go
through ``_decode`` so a corrupt or empty cell reads as "absent" instead of
failing the whole request.
"""

import copy
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterator

from sqlalchemy import delete as sa_delete, func, update as sa_update
from sqlalchemy.orm import Session

from engine.errors import ConcurrentUpdateError, NotFoundError
from models.models import (
    CustomerRow, EquipmentRow, InventoryRow, JobRow, MaterialLogRow, MessageRow,
    ProfitLossRow, SettingRow,
)
from services.clock import new_id

logger = logging.getLogger(__name__)

_ABSENT = object()

WAREHOUSE_COUNTS_KEY = "warehouse_counts"
LEGACY_WAREHOUSE_KEY = "warehouse"
LIFETIME_USAGE_KEY = "lifetime_usage"
COSTS_KEY = "costs"
COMPANY_PROFILE_KEY = "companyProfile"

DEFAULT_COSTS = {"openCell": 2000, "closedCell": 2600, "laborRate": 85}
DEFAULT_YIELDS = {"openCell": 16000, "closedCell": 4000, "openCellStrokes": 6600, "closedCellStrokes": 6600}


class Collection(str, Enum):
    """The fixed set of per-tenant collections."""
    JOBS = "Jobs"
    CUSTOMERS = "Customers"
    SETTINGS = "Settings"
    INVENTORY = "Inventory"
    EQUIPMENT = "Equipment"
    MESSAGES = "Messages"
    MATERIAL_LOG = "MaterialLog"
    PROFIT_AND_LOSS = "ProfitAndLoss"


def _num(value) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def _text(value) -> str:
    return "" if value is None else str(value)


def _job_columns(r: dict) -> dict:
    customer = r.get("customer") or {}
    results = r.get("results") or {}
    return {
        "date": _text(r.get("date")),
        "customer_name": _text(customer.get("name") if isinstance(customer, dict) else None) or "Unknown",
        "total_value": _num(r.get("totalValue")),
        "status": _text(r.get("status")) or "Draft",
        "invoice_number": _text(r.get("invoiceNumber")),
        "material_cost": _num(results.get("materialCost") if isinstance(results, dict) else 0),
        "pdf_link": _text(r.get("pdfLink")),
    }


def _customer_columns(r: dict) -> dict:
    columns = {f: _text(r.get(f)) for f in ("name", "address", "city", "state", "zip", "phone", "email")}
    columns["status"] = _text(r.get("status")) or "Active"
    return columns


def _inventory_columns(r: dict) -> dict:
    return {
        "name": _text(r.get("name")),
        "quantity": _num(r.get("quantity")),
        "unit": _text(r.get("unit")),
        "unit_cost": _num(r.get("unitCost")),
    }


def _equipment_columns(r: dict) -> dict:
    return {"name": _text(r.get("name")), "status": _text(r.get("status")) or "Available"}


def _message_columns(r: dict) -> dict:
    read_by = r.get("readBy") or []
    return {
        "estimate_id": _text(r.get("estimateId")),
        "sender": _text(r.get("sender")),
        "content": _text(r.get("content")),
        "timestamp": _text(r.get("timestamp")),
        "read_info": ",".join(str(x) for x in read_by) if isinstance(read_by, list) else "",
    }


def _log_columns(r: dict) -> dict:
    return {
        "logged_at": _text(r.get("date")),
        "job_id": _text(r.get("jobId")),
        "customer_name": _text(r.get("customerName")),
        "material_name": _text(r.get("materialName")),
        "quantity": _num(r.get("quantity")),
        "unit": _text(r.get("unit")),
        "logged_by": _text(r.get("loggedBy")),
    }


def _pnl_columns(r: dict) -> dict:
    return {
        "date_paid": _text(r.get("datePaid")),
        "job_id": _text(r.get("jobId")),
        "customer": _text(r.get("customer")),
        "invoice_number": _text(r.get("invoiceNumber")),
        "revenue": _num(r.get("revenue")),
        "chem_cost": _num(r.get("chemicalCost")),
        "labor_cost": _num(r.get("laborCost")),
        "inv_cost": _num(r.get("inventoryCost")),
        "misc_cost": _num(r.get("miscCost")),
        "total_cogs": _num(r.get("totalCOGS")),
        "net_profit": _num(r.get("netProfit")),
        "margin": _num(r.get("margin")),
    }


@dataclass(frozen=True)
class CollectionSpec:
    model: type
    index_columns: Callable[[Any], dict]


COLLECTION_SPECS: dict[Collection, CollectionSpec] = {
    Collection.JOBS: CollectionSpec(JobRow, _job_columns),
    Collection.CUSTOMERS: CollectionSpec(CustomerRow, _customer_columns),
    Collection.SETTINGS: CollectionSpec(SettingRow, lambda value: {}),
    Collection.INVENTORY: CollectionSpec(InventoryRow, _inventory_columns),
    Collection.EQUIPMENT: CollectionSpec(EquipmentRow, _equipment_columns),
    Collection.MESSAGES: CollectionSpec(MessageRow, _message_columns),
    Collection.MATERIAL_LOG: CollectionSpec(MaterialLogRow, _log_columns),
    Collection.PROFIT_AND_LOSS: CollectionSpec(ProfitLossRow, _pnl_columns),
}


class RecordStore:
    """All collections of one tenant, bound to a request's session."""

    def __init__(self, db: Session, tenant_id: str):
        self.db = db
        self.tenant_id = tenant_id

    # --- serialization ---

    @staticmethod
    def serialize(record) -> str:
        return json.dumps(record, default=str)

    @staticmethod
    def _decode(text):
        if text is None or text == "":
            return _ABSENT
        try:
            return json.loads(text)
        except (TypeError, ValueError):
            logger.warning("Unreadable record cell skipped")
            return _ABSENT

    @classmethod
    def deserialize(cls, text) -> dict | None:
        """Parse a record cell. Empty, corrupt or non-object cells are absent."""
        value = cls._decode(text)
        if value is _ABSENT or not isinstance(value, dict):
            return None
        return value

    # --- schema ---

    def ensure_collection(self, collection: Collection) -> None:
        """Create the collection's table if missing. Safe to call repeatedly."""
        COLLECTION_SPECS[collection].model.__table__.create(bind=self.db.connection(), checkfirst=True)

    def ensure_schema(self, initial_profile: dict | None = None) -> None:
        """
        Ensure every collection exists. When an initial profile is supplied and
        the tenant has no settings yet, seed the default configuration rows.
        """
        for collection in Collection:
            self.ensure_collection(collection)

        if initial_profile is None or self.count(Collection.SETTINGS) > 0:
            return

        defaults = {
            COMPANY_PROFILE_KEY: initial_profile,
            WAREHOUSE_COUNTS_KEY: {"openCellSets": 0, "closedCellSets": 0},
            LIFETIME_USAGE_KEY: {"openCell": 0, "closedCell": 0},
            COSTS_KEY: DEFAULT_COSTS,
            "yields": DEFAULT_YIELDS,
        }
        for key, value in defaults.items():
            self.put_setting(key, value)
        logger.info(f"Seeded default settings for tenant {self.tenant_id}")

    # --- rows ---

    def _query(self, collection: Collection):
        model = COLLECTION_SPECS[collection].model
        return self.db.query(model).filter(model.tenant_id == self.tenant_id)

    def _row(self, collection: Collection, key: str):
        model = COLLECTION_SPECS[collection].model
        return self._query(collection).filter(model.key == str(key)).first()

    def count(self, collection: Collection) -> int:
        model = COLLECTION_SPECS[collection].model
        return self.db.query(func.count(model.id)).filter(model.tenant_id == self.tenant_id).scalar() or 0

    def get(self, collection: Collection, key: str) -> dict | None:
        row = self._row(collection, key)
        return self.deserialize(row.data) if row else None

    def put(self, collection: Collection, key: str, record, expected_version: int | None = None) -> None:
        """
        Insert or overwrite the record stored under ``key``.

        With ``expected_version`` the write only succeeds if the row still has
        the version the caller read (``0`` for "did not exist"); otherwise
        ``ConcurrentUpdateError`` is raised.
        """
        spec = COLLECTION_SPECS[collection]
        row = self._row(collection, key)
        data = self.serialize(record)
        columns = spec.index_columns(record)
        if expected_version is not None and (row is None) != (expected_version == 0):
            raise self._conflict(collection, key)
        if row is None:
            self.db.add(spec.model(tenant_id=self.tenant_id, key=str(key), data=data, **columns))
        elif row.data == data:
            return
        elif expected_version is not None:
            self._write_version(spec, row, expected_version, data, columns, collection, key)
            return
        else:
            row.data = data
            row.version = (row.version or 0) + 1
            for name, value in columns.items():
                setattr(row, name, value)
        self.db.flush()

    def append(self, collection: Collection, record: dict) -> None:
        """Add a record as a new row at the end of the collection."""
        spec = COLLECTION_SPECS[collection]
        key = record.get("id") or new_id()
        self.db.add(spec.model(
            tenant_id=self.tenant_id,
            key=str(key),
            data=self.serialize(record),
            **spec.index_columns(record),
        ))
        self.db.flush()

    def scan(self, collection: Collection, from_row: int = 0) -> list[dict]:
        """Readable records with row id greater than ``from_row``, in insertion order."""
        model = COLLECTION_SPECS[collection].model
        rows = self._query(collection).filter(model.id > from_row).order_by(model.id).all()
        records = []
        for row in rows:
            record = self.deserialize(row.data)
            if record is not None:
                records.append(record)
        return records

    def scan_versioned(self, collection: Collection) -> tuple[list[dict], dict[str, int]]:
        """
        Readable records plus the version of every row (unreadable ones
        included), read in one query. The versions feed ``replace_all``.
        """
        model = COLLECTION_SPECS[collection].model
        records = []
        versions: dict[str, int] = {}
        for row in self._query(collection).order_by(model.id).all():
            versions[row.key] = row.version
            record = self.deserialize(row.data)
            if record is not None:
                records.append(record)
        return records, versions

    def tail(self, collection: Collection, window: int) -> Iterator[tuple]:
        """
        Walk the last ``window`` rows newest-first.

        Yields ``(written_at, record)``; ``record`` is ``None`` for unreadable
        cells so callers can still use the write time for early exit.
        """
        model = COLLECTION_SPECS[collection].model
        rows = self._query(collection).order_by(model.id.desc()).limit(max(window, 0)).all()
        for row in rows:
            yield row.written_at, self.deserialize(row.data)

    def recent(self, collection: Collection, limit: int) -> list[dict]:
        """The most recent ``limit`` readable records, oldest first."""
        records = [record for _, record in self.tail(collection, limit) if record is not None]
        records.reverse()
        return records

    def replace_all(self, collection: Collection, records: list[dict],
                    expected_versions: dict[str, int] | None = None) -> None:
        """
        Make the collection hold exactly ``records``.

        Rows are upserted by id and rows whose id is not in the list are
        deleted, so unchanged records keep their row and version. Records
        without an id get one; duplicate ids keep the last.

        ``expected_versions`` (from ``scan_versioned``) turns every write and
        delete into a compare-and-set: a row added, changed or removed by
        another request since that read raises ``ConcurrentUpdateError``.
        """
        spec = COLLECTION_SPECS[collection]
        by_key: dict[str, dict] = {}
        for record in records:
            if not isinstance(record, dict):
                continue
            if not record.get("id"):
                record = {**record, "id": new_id()}
            by_key[str(record["id"])] = record

        self.db.flush()
        if expected_versions is None:
            stmt = sa_delete(spec.model).where(spec.model.tenant_id == self.tenant_id)
            if by_key:
                stmt = stmt.where(spec.model.key.not_in(list(by_key)))
            self.db.execute(stmt.execution_options(synchronize_session=False))
        else:
            self._delete_checked(collection, set(by_key), expected_versions)

        for key, record in by_key.items():
            expected = None if expected_versions is None else expected_versions.get(key, 0)
            self.put(collection, key, record, expected_version=expected)
        self.db.flush()
        logger.info(f"Replaced {collection.value}: {len(by_key)} record(s)")

    def _delete_checked(self, collection: Collection, keep: set[str], expected_versions: dict[str, int]) -> None:
        model = COLLECTION_SPECS[collection].model
        present = {key for (key,) in self.db.query(model.key).filter(model.tenant_id == self.tenant_id)}
        unseen = present - set(expected_versions)
        if unseen:
            raise self._conflict(collection, sorted(unseen)[0])

        for key, version in expected_versions.items():
            if key in keep:
                continue
            result = self.db.execute(
                sa_delete(model)
                .where(model.tenant_id == self.tenant_id, model.key == key, model.version == version)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise self._conflict(collection, key)

    def delete(self, collection: Collection, key: str) -> bool:
        row = self._row(collection, key)
        if row is None:
            return False
        self.db.delete(row)
        self.db.flush()
        return True

    def update(self, collection: Collection, key: str, mutate: Callable, default=None):
        """
        Read-modify-write a single row with compare-and-set on its version.

        ``mutate`` receives a deep copy of the current value and returns the new
        one. A missing row is created from ``default`` when one is given,
        otherwise ``NotFoundError`` is raised. Raises ``ConcurrentUpdateError``
        when another writer changed the row in between.
        """
        spec = COLLECTION_SPECS[collection]
        row = self._row(collection, key)
        if row is None:
            if default is None:
                raise NotFoundError(f"{collection.value} record not found: {key}")
            value = mutate(copy.deepcopy(default))
            if collection is Collection.SETTINGS:
                self.put_setting(key, value)
            else:
                self.put(collection, key, value)
            return value

        expected = row.version
        current = self._decode(row.data)
        if current is _ABSENT:
            current = copy.deepcopy(default) if default is not None else {}
        value = mutate(copy.deepcopy(current))

        self._write_version(spec, row, expected, self.serialize(value), spec.index_columns(value), collection, key)
        return value

    def _write_version(self, spec: CollectionSpec, row, expected: int, data: str, columns: dict,
                       collection: Collection, key: str) -> None:
        result = self.db.execute(
            sa_update(spec.model)
            .where(spec.model.id == row.id, spec.model.key == row.key, spec.model.version == expected)
            .values(data=data, version=expected + 1, **columns)
            .execution_options(synchronize_session=False)
        )
        self.db.expire(row)
        if result.rowcount != 1:
            raise self._conflict(collection, key)

    @staticmethod
    def _conflict(collection: Collection, key: str) -> ConcurrentUpdateError:
        return ConcurrentUpdateError(
            f"{collection.value} record {key} was modified by another request. Please try again."
        )

    # --- settings ---

    def settings_map(self) -> dict[str, Any]:
        """All readable settings as a flat key → value map."""
        values = {}
        for row in self._query(Collection.SETTINGS).order_by(SettingRow.id).all():
            value = self._decode(row.data)
            if value is not _ABSENT:
                values[row.key] = value
        return values

    def get_setting(self, key: str, default=None):
        row = self._row(Collection.SETTINGS, key)
        if row is None:
            return default
        value = self._decode(row.data)
        return default if value is _ABSENT else value

    def put_setting(self, key: str, value) -> None:
        """Upsert one setting. Keys are unique per tenant."""
        self.put(Collection.SETTINGS, key, value)

    def merge_settings(self, values: dict) -> None:
        """Overwrite the given keys only; every other key is left alone."""
        for key, value in values.items():
            self.put_setting(key, value)

    def update_setting(self, key: str, mutate: Callable, default):
        return self.update(Collection.SETTINGS, key, mutate, default=default)
