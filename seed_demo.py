"""Seed a demo company with warehouse stock and equipment."""

from werkzeug.security import generate_password_hash

from database import SessionLocal, init_db
from models.models import Tenant
from services.record_store import Collection, RecordStore, WAREHOUSE_COUNTS_KEY

# Ensure tables exist
init_db()

DEMO_USERNAME = "demo"
DEMO_PASSWORD = "demo1234"
DEMO_CREW_PIN = "4321"

SEED_INVENTORY = [
    # Spray foam consumables
    {"id": "inv-gun-tips",    "name": "Spray Gun Mix Tips",     "quantity": 200, "unit": "piece", "unitCost": 1.25},
    {"id": "inv-poly",        "name": "Poly Sheeting (10x100)", "quantity": 12,  "unit": "roll",  "unitCost": 38.00},
    {"id": "inv-tape",        "name": "Masking Tape",           "quantity": 60,  "unit": "roll",  "unitCost": 4.50},
    {"id": "inv-cleaner",     "name": "Gun Cleaner",            "quantity": 8,   "unit": "gallon", "unitCost": 42.00},
    {"id": "inv-tyvek",       "name": "Tyvek Suit",             "quantity": 40,  "unit": "piece", "unitCost": 9.00},
    {"id": "inv-respirator",  "name": "Respirator Cartridge",   "quantity": 24,  "unit": "pair",  "unitCost": 16.00},

    # Fasteners and prep
    {"id": "inv-staples",     "name": "Staples (Box)",          "quantity": 15,  "unit": "box",   "unitCost": 7.00},
    {"id": "inv-caulk",       "name": "Fire Caulk",             "quantity": 20,  "unit": "tube",  "unitCost": 11.50},
]

SEED_EQUIPMENT = [
    {"id": "eq-rig-1",     "name": "Spray Rig #1",       "status": "Available"},
    {"id": "eq-gun-1",     "name": "Fusion AP Gun",      "status": "Available"},
    {"id": "eq-gen-1",     "name": "Generator 20kW",     "status": "Available"},
    {"id": "eq-ladder-1",  "name": "Extension Ladder",   "status": "Available"},
]


def seed():
    db = SessionLocal()

    tenant = db.query(Tenant).filter_by(username=DEMO_USERNAME).first()
    if tenant is None:
        tenant = Tenant(
            id="demo-tenant",
            username=DEMO_USERNAME,
            password_hash=generate_password_hash(DEMO_PASSWORD),
            company_name="Demo Insulation Co",
            crew_pin=DEMO_CREW_PIN,
        )
        db.add(tenant)
        db.flush()

    store = RecordStore(db, tenant.id)
    store.ensure_schema({"companyName": tenant.company_name, "crewAccessPin": tenant.crew_pin})

    added = 0
    skipped = 0
    for item in SEED_INVENTORY:
        if store.get(Collection.INVENTORY, item["id"]) is not None:
            skipped += 1
            continue
        store.put(Collection.INVENTORY, item["id"], item)
        added += 1

    for item in SEED_EQUIPMENT:
        if store.get(Collection.EQUIPMENT, item["id"]) is None:
            store.put(Collection.EQUIPMENT, item["id"], item)

    store.put_setting(WAREHOUSE_COUNTS_KEY, {"openCellSets": 20, "closedCellSets": 10})

    db.commit()
    db.close()
    print(f"✅ Demo tenant '{DEMO_USERNAME}' ready: {added} inventory items added, {skipped} already existed.")


if __name__ == "__main__":
    seed()
