from tools.inventory import deduct_for_work_order, reconcile_completion
from tools.invoice import calculate_financials
from tools.revenue import update_revenue
from tools.job_status import load_job, update_job

__all__ = [
    "deduct_for_work_order", "reconcile_completion", "calculate_financials", "update_revenue",
    "load_job", "update_job",
]
