import logging

import uvicorn
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from core.catch_error_middleware import ErrorHandlerMiddleware
from core.errors import AppError
from core.exception_handler import AppErrorHandler, ValidationErrorHandler
from core.lifespan import lifespan
from core.settings import settings
from core.throttling import rate_limiter_manager
from routes.agreement_routes import router as agreement_router
from routes.application_routes import router as application_router
from routes.payment_routes import router as payment_router
from routes.webhooks_routes import router as webhook_router

logging.basicConfig(level=logging.INFO)
app = FastAPI(
    lifespan=lifespan,
    title=settings.PROJECT_NAME,
    exception_handlers={429: rate_limiter_manager.limit_exceeded_handler},
    version="1.0.0",
)

app.include_router(webhook_router, prefix="/v1")
app.include_router(agreement_router, prefix="/v1/agreements")
app.include_router(payment_router, prefix="/v1/payments")
app.include_router(application_router, prefix="/v1/applications")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_HOSTS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health", tags=["System"])
async def health_check():
    return {"status": "ok"}


app.add_exception_handler(AppError, AppErrorHandler())
app.add_exception_handler(
    RequestValidationError,
    ValidationErrorHandler(),
)

app.add_middleware(ErrorHandlerMiddleware)


if __name__ == "__main__":
    uvicorn.run(app, host="127.0.0.1", port=8001)
