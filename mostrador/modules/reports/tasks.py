"""
Background tasks for reports module
"""
import logging
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from mostrador.core.celery import celery_app
from mostrador.database.database import SessionLocal
from mostrador.common.exceptions import NotFoundError
import mostrador.modules.models  # noqa: F401  (registra todos los modelos)
from mostrador.modules.reports.services.cash_registers import CashRegisterReportService
from mostrador.modules.reports.utils import render_closing_report

logger = logging.getLogger(__name__)
print_logger = logging.getLogger("mostrador.printer")


@celery_app.task(bind=True, max_retries=3)
def print_closing_report(self, register_id: str):
    """
    Render the closing report of a register and send it to the printer.

    The printer is the generic print action: the text is emitted on the
    `mostrador.printer` logger, which deployments route to the receipt
    printer spooler.
    """
    db = SessionLocal()
    try:
        report = CashRegisterReportService(db).get_register_report(UUID(register_id))
        text = render_closing_report(report)
        print_logger.info(text)
        logger.info(f"Closing report printed for register {register_id}")
        return {"status": "printed", "register_id": register_id, "lines": len(text.splitlines())}
    except NotFoundError:
        logger.error(f"Closing report requested for unknown register {register_id}")
        return {"status": "not_found", "register_id": register_id}
    except SQLAlchemyError as e:
        logger.error(f"Closing report for register {register_id} failed: {e}")
        raise self.retry(exc=e, countdown=30)
    finally:
        db.close()
