"""Tool: Company accounts: signup, admin and crew login, password change, trial requests.

No tokens are issued; a session is the plain record the clients keep.
"""

import logging
import secrets

from werkzeug.security import check_password_hash, generate_password_hash

from engine.context import ActionContext, parse_payload
from engine.errors import AuthenticationError, InvalidRequestError, NotFoundError
from models.models import Tenant, TrialSignup
from schemas.actions import CrewLoginPayload, LoginPayload, SignupPayload, TrialPayload, UpdatePasswordPayload
from services.clock import new_id
from services.record_store import RecordStore

logger = logging.getLogger(__name__)


def _find_tenant(ctx: ActionContext, username: str) -> Tenant | None:
    return ctx.db.query(Tenant).filter(Tenant.username == username.strip()).first()


def _session(tenant: Tenant, role: str) -> dict:
    return {
        "username": tenant.username,
        "companyName": tenant.company_name,
        "tenantId": tenant.id,
        "role": role,
    }


def generate_crew_pin() -> str:
    return str(1000 + secrets.randbelow(9000))


def handle_signup(ctx: ActionContext, payload: dict) -> dict:
    p = parse_payload(SignupPayload, payload)
    username = p.username.strip()
    if _find_tenant(ctx, username) is not None:
        raise InvalidRequestError("Username already taken.")

    crew_pin = generate_crew_pin()
    tenant = Tenant(
        id=new_id(),
        username=username,
        password_hash=generate_password_hash(p.password),
        company_name=p.company_name,
        crew_pin=crew_pin,
        email=p.email or "",
    )
    ctx.db.add(tenant)
    ctx.db.flush()

    initial_profile = {
        "companyName": p.company_name,
        "crewAccessPin": crew_pin,
        "email": p.email or "",
        "phone": "",
        "addressLine1": "",
        "addressLine2": "",
        "city": "",
        "state": "",
        "zip": "",
        "website": "",
        "logoUrl": "",
    }
    RecordStore(ctx.db, tenant.id).ensure_schema(initial_profile)
    ctx.tenant_id = tenant.id

    logger.info(f"Signed up company '{p.company_name}' as {username}")
    return {**_session(tenant, "admin"), "crewPin": crew_pin}


def handle_login(ctx: ActionContext, payload: dict) -> dict:
    p = parse_payload(LoginPayload, payload)
    tenant = _find_tenant(ctx, p.username)
    if tenant is None:
        raise NotFoundError("User not found.")
    if not check_password_hash(tenant.password_hash, p.password):
        raise AuthenticationError("Incorrect password.")
    return _session(tenant, "admin")


def handle_crew_login(ctx: ActionContext, payload: dict) -> dict:
    p = parse_payload(CrewLoginPayload, payload)
    tenant = _find_tenant(ctx, p.username)
    if tenant is None:
        raise NotFoundError("Company ID not found.")
    if str(tenant.crew_pin).strip() != str(p.pin).strip():
        raise AuthenticationError("Invalid Crew PIN.")
    return _session(tenant, "crew")


def handle_update_password(ctx: ActionContext, payload: dict) -> dict:
    p = parse_payload(UpdatePasswordPayload, payload)
    tenant = _find_tenant(ctx, p.username)
    if tenant is None:
        raise NotFoundError("User not found.")
    if not check_password_hash(tenant.password_hash, p.current_password):
        raise AuthenticationError("Incorrect current password.")
    tenant.password_hash = generate_password_hash(p.new_password)
    ctx.db.flush()
    logger.info(f"Password updated for {tenant.username}")
    return {"success": True}


def handle_submit_trial(ctx: ActionContext, payload: dict) -> dict:
    p = parse_payload(TrialPayload, payload)
    ctx.db.add(TrialSignup(name=p.name, email=p.email, phone=p.phone))
    ctx.db.flush()
    logger.info(f"Trial request from {p.email or p.name or 'anonymous'}")
    return {"success": True}
