# motelhub/services/billing_job.py
import logging

from sqlmodel import Session

from ..db.engine import engine
from .invoice_service import InvoiceService

logger = logging.getLogger("BillingJob")


def run_overdue_check(session_engine=None) -> int:
    """
    Runs ONE overdue sweep: unpaid invoices past their due date become OVERDUE.
    Called daily by APScheduler.
    """
    logger.info("--- RUNNING OVERDUE INVOICE CHECK ---")

    try:
        with Session(session_engine or engine) as session:
            marked = InvoiceService(session).mark_overdue_invoices()
            logger.info(f"--- DONE. {marked} invoices marked OVERDUE ---")
            return marked
    except Exception as e:
        logger.critical(f"Overdue check failed: {e}", exc_info=True)
        return 0
