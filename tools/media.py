"""Tool: Document-producing actions (PDFs, site photos, work orders).

These run without the tenant lock. Every job write goes through a single-row
compare-and-set, and a conflict makes the dispatcher retry the whole action.
"""

import logging

from engine.context import ActionContext, parse_payload
from engine.errors import InvalidRequestError
from engine.merge import merge_job
from schemas.actions import CreateWorkOrderPayload, SavePdfPayload, UploadImagePayload
from schemas.records import JobRecord, JobStatus, load_record
from services.clock import iso_now, now_millis
from services.documents import PHOTO_FOLDER, decode_base64
from services.record_store import Collection, RecordStore
from tools.inventory import deduct_for_work_order
from tools.job_status import update_job

logger = logging.getLogger(__name__)


def link_field_for(file_name: str) -> str:
    """Which job link a saved PDF belongs to, judged by its file name."""
    name = file_name.lower()
    if "invoice" in name:
        return "invoice_pdf_link"
    if "completion" in name or "report" in name:
        return "completion_report_link"
    return "pdf_link"


def _job_exists(store: RecordStore, job_id: str) -> bool:
    if load_record(JobRecord, store.get(Collection.JOBS, job_id)) is None:
        logger.warning(f"Document saved but job {job_id} not found, nothing linked")
        return False
    return True


def handle_save_pdf(ctx: ActionContext, payload: dict) -> dict:
    p = parse_payload(SavePdfPayload, payload)
    store = ctx.open_store(p.tenant_id)

    doc = ctx.documents.save_file(p.folder_id, p.file_name, decode_base64(p.base64_data))

    if p.estimate_id and _job_exists(store, p.estimate_id):
        field = link_field_for(p.file_name)

        def apply(job: JobRecord):
            setattr(job, field, doc.url)
            job.last_modified = iso_now()

        update_job(store, p.estimate_id, apply)
        logger.info(f"Linked {p.file_name} to job {p.estimate_id} as {field}")

    return {"success": True, "url": doc.url}


def handle_upload_image(ctx: ActionContext, payload: dict) -> dict:
    p = parse_payload(UploadImagePayload, payload)
    file_name = p.file_name or f"photo_{now_millis()}.jpg"
    doc = ctx.documents.save_file(p.folder_id or PHOTO_FOLDER, file_name, decode_base64(p.base64_data))

    if p.tenant_id and p.estimate_id:
        store = ctx.open_store(p.tenant_id)
        if _job_exists(store, p.estimate_id):
            def apply(job: JobRecord):
                job.site_photos = [*(job.site_photos or []), doc.url]
                job.last_modified = iso_now()

            update_job(store, p.estimate_id, apply)

    return {"url": doc.url, "fileId": doc.file_id}


def handle_create_work_order(ctx: ActionContext, payload: dict) -> dict:
    """
    Render the work-order sheet and take the planned materials out of stock.

    The job is read fresh from the store (the uploaded copy may be stale) and
    the uploaded estimate is merged over it; a job the server has never seen
    is stored first. The deduction happens at most once per job.
    """
    p = parse_payload(CreateWorkOrderPayload, payload)
    store = ctx.open_store(p.tenant_id)
    estimate = p.estimate_data

    doc = ctx.documents.create_work_order(p.folder_id, estimate)

    incoming = estimate.to_record()
    if store.get(Collection.JOBS, estimate.id) is None:
        store.put(Collection.JOBS, estimate.id, incoming)

    outcome = {}

    def mutate(raw):
        job = load_record(JobRecord, merge_job(raw, incoming))
        if job is None:
            raise InvalidRequestError("Invalid estimate data")
        outcome["deduction"] = deduct_for_work_order(store, job)
        job.work_order_sheet_url = doc.url
        if job.status == JobStatus.DRAFT:
            job.status = JobStatus.WORK_ORDER
        job.last_modified = iso_now()
        outcome["job"] = job
        return job.to_record()

    store.update(Collection.JOBS, estimate.id, mutate)
    job = outcome["job"]
    logger.info(f"Work order for job {job.id}: {outcome['deduction'].message}")
    return {"url": doc.url, "documentId": doc.file_id, "inventoryDeducted": job.inventory_deducted}
