"""Per-request context handed to every action handler."""

from dataclasses import dataclass
from typing import Callable, TypeVar

from pydantic import BaseModel, ValidationError
from sqlalchemy.orm import Session

from engine.errors import InvalidRequestError, NotFoundError
from models.models import Tenant
from services.documents import DocumentStore
from services.record_store import RecordStore

PayloadT = TypeVar("PayloadT", bound=BaseModel)


def parse_payload(model: type[PayloadT], payload: dict) -> PayloadT:
    """Validate an action payload, mapping validation errors to a 400."""
    try:
        return model.model_validate(payload or {})
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(p) for p in first.get("loc", ())) or "payload"
        raise InvalidRequestError(f"Invalid payload: {field}: {first.get('msg', 'invalid value')}")


@dataclass
class ActionContext:
    db: Session
    session_factory: Callable[[], Session]
    documents: DocumentStore
    action: str
    tenant_id: str | None = None

    def open_store(self, tenant_id: str) -> RecordStore:
        """Record store of an existing tenant. Remembers the tenant for change tracking."""
        if self.db.get(Tenant, tenant_id) is None:
            raise NotFoundError("Tenant not found")
        self.tenant_id = tenant_id
        return RecordStore(self.db, tenant_id)
