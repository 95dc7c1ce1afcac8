import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.v1.auth.router import router as auth_router
from app.api.v1.classes.router import router as classes_router
from app.api.v1.contracts.router import router as contracts_router
from app.api.v1.courses.router import router as courses_router
from app.api.v1.documents.router import router as documents_router
from app.api.v1.enrollments.router import router as enrollments_router
from app.api.v1.evaluations.router import router as evaluations_router
from app.api.v1.requests.router import router as requests_router
from app.api.v1.users.router import router as users_router
from app.core.config import settings
from app.core.email import drain_notifications
from app.core.scheduler import JobScheduler
from app.db.session import init_models
from app.jobs import build_jobs

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.auto_create_tables:
        await init_models()

    job_scheduler = JobScheduler(build_jobs())
    app.state.job_scheduler = job_scheduler
    if settings.scheduler_enabled:
        job_scheduler.start(settings.scheduler_tick_seconds)
    else:
        logger.info("Scheduler disabled (SCHEDULER_ENABLED=false)")
    try:
        yield
    finally:
        job_scheduler.stop()
        await drain_notifications(timeout=settings.email_timeout_seconds)


def create_app() -> FastAPI:
    app = FastAPI(title="Secretaria Online", lifespan=lifespan)

    # CORS: allow frontend to call this API
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers
    app.include_router(auth_router)
    app.include_router(users_router)
    app.include_router(courses_router)
    app.include_router(classes_router)
    app.include_router(enrollments_router)
    app.include_router(documents_router)
    app.include_router(contracts_router)
    app.include_router(evaluations_router)
    app.include_router(requests_router)

    return app


app = create_app()
