import asyncio
import logging
from datetime import date

from core.get_db import AsyncSessionLocal, async_engine
from services.invoice_service import InvoiceService

logger = logging.getLogger("tenancy.jobs")


def create_monthly_rent_invoice_task(app):
    class MonthlyRentInvoiceTask(app.Task):
        name = "generate_monthly_rent_invoices"

        autoretry_for = (RuntimeError, ConnectionError)
        retry_backoff = True
        retry_jitter = True
        max_retries = 3
        default_retry_delay = 30

        def _run_async(self, coro):
            loop = asyncio.new_event_loop()
            asyncio.set_event_loop(loop)
            try:
                return loop.run_until_complete(coro)
            finally:
                loop.run_until_complete(async_engine.dispose())
                loop.close()

        async def _generate(self, today: date) -> int:
            async with AsyncSessionLocal() as session:
                return await InvoiceService(session).generate_monthly_rent_invoices(today)

        def run(self, today: str | None = None):
            run_date = date.fromisoformat(today) if today else date.today()
            created = self._run_async(self._generate(run_date))
            logger.info("generate_monthly_rent_invoices: %s created", created)
            return created

    return MonthlyRentInvoiceTask


def create_overdue_invoice_task(app):
    class OverdueInvoiceTask(app.Task):
        name = "process_overdue_invoices"

        autoretry_for = (RuntimeError, ConnectionError)
        retry_backoff = True
        retry_jitter = True
        max_retries = 3
        default_retry_delay = 30

        def _run_async(self, coro):
            loop = asyncio.new_event_loop()
            asyncio.set_event_loop(loop)
            try:
                return loop.run_until_complete(coro)
            finally:
                loop.run_until_complete(async_engine.dispose())
                loop.close()

        async def _process(self, today: date) -> dict:
            async with AsyncSessionLocal() as session:
                return await InvoiceService(session).mark_overdue_invoices(today)

        def run(self, today: str | None = None):
            run_date = date.fromisoformat(today) if today else date.today()
            result = self._run_async(self._process(run_date))
            logger.info("process_overdue_invoices: %s", result)
            return result

    return OverdueInvoiceTask
