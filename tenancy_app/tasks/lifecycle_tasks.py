import asyncio
import logging
from datetime import date

from core.get_db import AsyncSessionLocal, async_engine
from services.tenancy_lifecycle_service import TenancyLifecycleService

logger = logging.getLogger("tenancy.jobs")


def create_agreement_lifecycle_task(app):
    class AgreementLifecycleTask(app.Task):
        name = "process_agreement_lifecycle"

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
                service = TenancyLifecycleService(session)
                # expire first so a renewed lease can take over the unit the same day
                expired = await service.expire_ended_agreements(today)
                activated = await service.activate_due_agreements(today)
                return {"activated": activated, "expired": expired}

        def run(self, today: str | None = None):
            run_date = date.fromisoformat(today) if today else date.today()
            result = self._run_async(self._process(run_date))
            logger.info("process_agreement_lifecycle: %s", result)
            return result

    return AgreementLifecycleTask
