"""Tool: Admin/crew job chat."""

import logging

from engine.context import ActionContext, parse_payload
from schemas.actions import SendMessagePayload
from schemas.records import Message, MessageSender
from services.clock import iso_now, new_id
from services.record_store import Collection

logger = logging.getLogger(__name__)


def handle_send_message(ctx: ActionContext, payload: dict) -> dict:
    p = parse_payload(SendMessagePayload, payload)
    store = ctx.open_store(p.tenant_id)

    # anything other than Crew is treated as the office
    sender = MessageSender.CREW if p.sender == MessageSender.CREW.value else MessageSender.ADMIN
    message = Message(
        id=new_id(),
        estimate_id=p.estimate_id,
        sender=sender,
        content=p.content,
        timestamp=iso_now(),
        read_by=[],
    )
    store.append(Collection.MESSAGES, message.to_record())

    logger.info(f"Message from {sender.value} on job {p.estimate_id}")
    return {"success": True, "message": message.to_record()}
