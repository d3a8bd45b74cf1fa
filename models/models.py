"""ORM models for the FoamOps sync backend.

Each tenant collection is its own table. Rows keep the full record as a JSON
string in ``data`` plus a handful of denormalized columns used for lookup and
sorting. ``version`` is bumped on every update so heavy-tier writers can do
compare-and-set without holding the tenant lock.
"""

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Float, DateTime, Text, UniqueConstraint

from database import Base


def utcnow() -> datetime:
    """Naive UTC timestamp (SQLite drops tzinfo anyway)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class RecordRowMixin:
    """Columns shared by every collection table."""

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(String, nullable=False, index=True)
    data = Column(Text, default="")
    version = Column(Integer, nullable=False, default=1)
    written_at = Column(DateTime, default=utcnow, onupdate=utcnow, index=True)


class JobRow(RecordRowMixin, Base):
    """An estimate / work order / invoice."""

    __tablename__ = "jobs"
    __table_args__ = (UniqueConstraint("tenant_id", "key", name="uq_jobs_tenant_key"),)

    key = Column(String, nullable=False)
    date = Column(String, default="")
    customer_name = Column(String, default="Unknown", index=True)
    total_value = Column(Float, default=0.0)
    status = Column(String, default="Draft", index=True)
    invoice_number = Column(String, default="")
    material_cost = Column(Float, default=0.0)
    pdf_link = Column(String, default="")

    def __repr__(self):
        return f"<Job {self.key}: {self.customer_name} ({self.status})>"


class CustomerRow(RecordRowMixin, Base):
    """A customer profile."""

    __tablename__ = "customers"
    __table_args__ = (UniqueConstraint("tenant_id", "key", name="uq_customers_tenant_key"),)

    key = Column(String, nullable=False)
    name = Column(String, default="", index=True)
    address = Column(String, default="")
    city = Column(String, default="")
    state = Column(String, default="")
    zip = Column(String, default="")
    phone = Column(String, default="")
    email = Column(String, default="")
    status = Column(String, default="Active")

    def __repr__(self):
        return f"<Customer {self.key}: {self.name}>"


class SettingRow(RecordRowMixin, Base):
    """One configuration key with its JSON value (stored in ``data``)."""

    __tablename__ = "settings"
    __table_args__ = (UniqueConstraint("tenant_id", "key", name="uq_settings_tenant_key"),)

    key = Column(String, nullable=False)

    def __repr__(self):
        return f"<Setting {self.key}>"


class InventoryRow(RecordRowMixin, Base):
    """Warehouse inventory item. Quantity may go negative."""

    __tablename__ = "inventory"
    __table_args__ = (UniqueConstraint("tenant_id", "key", name="uq_inventory_tenant_key"),)

    key = Column(String, nullable=False)
    name = Column(String, default="", index=True)
    quantity = Column(Float, nullable=False, default=0.0)
    unit = Column(String, default="")
    unit_cost = Column(Float, default=0.0)

    def __repr__(self):
        return f"<Inventory {self.name}: {self.quantity} {self.unit}>"


class EquipmentRow(RecordRowMixin, Base):
    """A tracked piece of equipment."""

    __tablename__ = "equipment"
    __table_args__ = (UniqueConstraint("tenant_id", "key", name="uq_equipment_tenant_key"),)

    key = Column(String, nullable=False)
    name = Column(String, default="")
    status = Column(String, default="Available")

    def __repr__(self):
        return f"<Equipment {self.name} ({self.status})>"


class MessageRow(RecordRowMixin, Base):
    """Admin/crew chat message. Append-only."""

    __tablename__ = "messages"

    key = Column(String, nullable=False, index=True)
    estimate_id = Column(String, default="", index=True)
    sender = Column(String, default="Admin")
    content = Column(Text, default="")
    timestamp = Column(String, default="")
    read_info = Column(String, default="")

    def __repr__(self):
        return f"<Message {self.key} from {self.sender}>"


class MaterialLogRow(RecordRowMixin, Base):
    """Material ledger audit entry. Append-only."""

    __tablename__ = "material_log"

    key = Column(String, nullable=False, index=True)
    logged_at = Column(String, default="")
    job_id = Column(String, default="", index=True)
    customer_name = Column(String, default="")
    material_name = Column(String, default="")
    quantity = Column(Float, default=0.0)
    unit = Column(String, default="")
    logged_by = Column(String, default="")

    def __repr__(self):
        return f"<MaterialLog {self.material_name}: {self.quantity} {self.unit}>"


class ProfitLossRow(RecordRowMixin, Base):
    """Profit and loss entry appended when a job is paid."""

    __tablename__ = "profit_and_loss"

    key = Column(String, nullable=False, index=True)
    date_paid = Column(String, default="")
    job_id = Column(String, default="", index=True)
    customer = Column(String, default="")
    invoice_number = Column(String, default="")
    revenue = Column(Float, default=0.0)
    chem_cost = Column(Float, default=0.0)
    labor_cost = Column(Float, default=0.0)
    inv_cost = Column(Float, default=0.0)
    misc_cost = Column(Float, default=0.0)
    total_cogs = Column(Float, default=0.0)
    net_profit = Column(Float, default=0.0)
    margin = Column(Float, default=0.0)

    def __repr__(self):
        return f"<ProfitLoss {self.job_id}: {self.net_profit:.2f}>"


# --- Registry and infrastructure tables (not tenant collections) ---

class Tenant(Base):
    """A contractor company account. Owns one isolated set of collections."""

    __tablename__ = "tenants"

    id = Column(String, primary_key=True)
    username = Column(String, nullable=False, unique=True, index=True)
    password_hash = Column(String, nullable=False)
    company_name = Column(String, nullable=False, default="")
    crew_pin = Column(String, nullable=False, default="")
    email = Column(String, default="")
    created_at = Column(DateTime, default=utcnow)

    def __repr__(self):
        return f"<Tenant {self.username}: {self.company_name}>"


class TrialSignup(Base):
    """Trial membership request. Append-only."""

    __tablename__ = "trial_memberships"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, default="")
    email = Column(String, default="")
    phone = Column(String, default="")
    created_at = Column(DateTime, default=utcnow)


class CacheEntry(Base):
    """Shared key/value cache entry with an absolute expiry."""

    __tablename__ = "cache_entries"

    key = Column(String, primary_key=True)
    value = Column(String, nullable=False, default="")
    expires_at = Column(DateTime, nullable=False, index=True)


class LockLease(Base):
    """Advisory lock held by one request until released or expired."""

    __tablename__ = "lock_leases"

    name = Column(String, primary_key=True)
    owner = Column(String, nullable=False)
    acquired_at = Column(DateTime, nullable=False, default=utcnow)
    expires_at = Column(DateTime, nullable=False)

    def __repr__(self):
        return f"<LockLease {self.name} owner={self.owner}>"
