from celery import Celery
from celery.schedules import crontab

from core.settings import settings
from tasks.invoice_tasks import (
    create_monthly_rent_invoice_task,
    create_overdue_invoice_task,
)
from tasks.lifecycle_tasks import create_agreement_lifecycle_task


class CeleryManager:
    def __init__(self):
        self.REDIS_URL = settings.CELERY_REDIS_URL

        self.app = Celery(
            "tenancy_tasks",
            broker=self.REDIS_URL,
            backend=self.REDIS_URL,
            include=[
                "tasks.invoice_tasks",
                "tasks.lifecycle_tasks",
            ],
        )

        self.app.conf.update(
            task_serializer="json",
            task_track_started=True,
            accept_content=["json"],
            result_serializer="json",
            timezone="UTC",
            enable_utc=True,
            broker_connection_retry=True,
            broker_connection_retry_on_startup=True,
            broker_connection_max_retries=None,
            task_acks_late=False,
            redis_socket_keepalive=True,
            redis_socket_timeout=30,
            broker_transport_options={"visibility_timeout": 3600},
            worker_hijack_root_logger=False,
        )

        MonthlyRentInvoiceTask = create_monthly_rent_invoice_task(self.app)
        self.app.register_task(MonthlyRentInvoiceTask())

        OverdueInvoiceTask = create_overdue_invoice_task(self.app)
        self.app.register_task(OverdueInvoiceTask())

        AgreementLifecycleTask = create_agreement_lifecycle_task(self.app)
        self.app.register_task(AgreementLifecycleTask())

        self.app.conf.beat_schedule = {
            "generate-monthly-rent-invoices-daily": {
                "task": "generate_monthly_rent_invoices",
                "schedule": crontab(hour=2, minute=0),
            },
            "process-overdue-invoices-daily": {
                "task": "process_overdue_invoices",
                "schedule": crontab(hour=3, minute=0),
            },
            "process-agreement-lifecycle-daily": {
                "task": "process_agreement_lifecycle",
                "schedule": crontab(hour=0, minute=30),
            },
        }


celery_app = CeleryManager()
app = celery_app.app
