"""Document storage boundary — PDFs, site photos and work-order sheets.

Rendering and hosting are external concerns. ``DocumentStore`` is the
interface the action handlers use; ``LocalDocumentStore`` keeps files on the
local filesystem and serves them under a configurable base URL.
"""

import base64
import binascii
import logging
import re
import uuid
from dataclasses import dataclass
from pathlib import Path

from config import settings
from engine.errors import InvalidRequestError
from schemas.records import JobRecord

logger = logging.getLogger(__name__)

PHOTO_FOLDER = "Job Photos"
WORK_ORDER_FOLDER = "Work Orders"


@dataclass
class StoredDocument:
    url: str
    file_id: str


def decode_base64(data: str) -> bytes:
    """Decode raw base64 or a ``data:...;base64,`` URL."""
    encoded = data.split(",", 1)[1] if "," in data else data
    try:
        return base64.b64decode(encoded, validate=False)
    except (binascii.Error, ValueError):
        raise InvalidRequestError("Invalid base64 payload")


def _safe_name(name: str, fallback: str) -> str:
    cleaned = re.sub(r"[^A-Za-z0-9 ._-]", "", name or "").strip()
    return cleaned or fallback


def render_work_order(job: JobRecord) -> str:
    """Plain-text work-order sheet: customer info, scope, load list, notes."""
    customer = job.customer
    lines = ["CUSTOMER INFO"]
    lines.append(f"Name: {customer.name if customer and customer.name else ''}")
    if customer:
        address = f"{customer.address or ''}, {customer.city or ''} {customer.state or ''} {customer.zip or ''}"
        lines.append(f"Address: {address.strip()}")
        lines.append(f"Phone: {customer.phone or ''}")

    results = job.results or {}
    scope = []
    for label, key in (("Walls", "totalWallArea"), ("Roof", "totalRoofArea")):
        try:
            area = float(results.get(key) or 0)
        except (TypeError, ValueError):
            area = 0.0
        if area > 0:
            scope.append(f"{label}: {round(area)} sqft")
    if scope:
        lines += ["", "JOB SCOPE", *scope]

    materials = job.materials
    lines += ["", "MATERIALS LOAD LIST"]
    if materials.open_cell_sets > 0:
        lines.append(f"Open Cell Sets: {materials.open_cell_sets:.2f}")
    if materials.closed_cell_sets > 0:
        lines.append(f"Closed Cell Sets: {materials.closed_cell_sets:.2f}")
    for item in materials.inventory:
        lines.append(f"{item.name or 'Item'}: {item.quantity:g} {item.unit or ''}".rstrip())

    if materials.equipment:
        lines += ["", "EQUIPMENT ASSIGNED"]
        lines += [f"{e.name or 'Tool'}: Assigned" for e in materials.equipment]

    lines += ["", "JOB NOTES", job.notes or "No notes."]
    lines += ["", "DAILY CREW LOG", "Date | Tech Name | Start Time | End Time | Duration (Hrs) | Sets Sprayed | Notes"]
    return "\n".join(lines) + "\n"


class DocumentStore:
    """Interface for the external document service."""

    def save_file(self, folder: str | None, file_name: str, content: bytes) -> StoredDocument:
        raise NotImplementedError

    def create_work_order(self, folder: str | None, job: JobRecord) -> StoredDocument:
        raise NotImplementedError


class LocalDocumentStore(DocumentStore):
    """Stores documents as files under ``root_dir``."""

    def __init__(self, root_dir: str, base_url: str):
        self.root = Path(root_dir)
        self.base_url = base_url.rstrip("/")

    def _write(self, folder: str | None, file_name: str, content: bytes) -> StoredDocument:
        file_id = uuid.uuid4().hex[:12]
        folder_name = _safe_name(folder or "", "General")
        target_dir = self.root / folder_name
        target_dir.mkdir(parents=True, exist_ok=True)
        stored_name = f"{file_id}-{_safe_name(file_name, 'document')}"
        (target_dir / stored_name).write_bytes(content)
        url = f"{self.base_url}/{folder_name}/{stored_name}"
        logger.info(f"Stored document {stored_name} ({len(content)} bytes)")
        return StoredDocument(url=url, file_id=file_id)

    def save_file(self, folder: str | None, file_name: str, content: bytes) -> StoredDocument:
        return self._write(folder, file_name, content)

    def create_work_order(self, folder: str | None, job: JobRecord) -> StoredDocument:
        customer = _safe_name(job.customer_name, "Unknown")
        name = f"WO-{job.id[:8].upper()} - {customer}.txt"
        return self._write(folder or WORK_ORDER_FOLDER, name, render_work_order(job).encode("utf-8"))


def get_document_store() -> DocumentStore:
    """Dependency that provides the configured document store."""
    return LocalDocumentStore(settings.DOCUMENTS_DIR, settings.DOCUMENTS_BASE_URL)
