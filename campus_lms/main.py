import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from campus_lms.core.config import settings
from campus_lms.core.errors import DomainError
from campus_lms.core.logging_middleware import LoggingMiddleware
from campus_lms.db.init_db import init_db
from campus_lms.routers.assignments import router as assignments_router
from campus_lms.routers.courses import router as courses_router
from campus_lms.routers.enrollments import router as enrollments_router
from campus_lms.routers.submissions import router as submissions_router
from campus_lms.routers.users import router as users_router

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.APP_NAME)

# Middleware
app.add_middleware(LoggingMiddleware)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s %s", request.method, request.url.path, exc.message, exc.context)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# Health check
@app.get("/health")
def health():
    return {"status": "ok"}


# Startup event
@app.on_event("startup")
def on_startup():
    init_db()


# Include routers
app.include_router(users_router, prefix="/users", tags=["users"])
app.include_router(courses_router, prefix="/courses", tags=["courses"])
app.include_router(enrollments_router, prefix="/enrollments", tags=["enrollments"])
app.include_router(assignments_router, tags=["assignments"])
app.include_router(submissions_router, tags=["submissions"])
