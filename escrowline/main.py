from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from escrowline.api.middleware import AccessLogMiddleware
from escrowline.api.v1.router import v1_router
from escrowline.common.exceptions import EscrowlineException
from escrowline.common.logging import setup_logging
from escrowline.config import settings
from escrowline.db.session import DatabaseSessionManager
from escrowline.integrations.sendgrid import EmailClient


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    app.state.db = DatabaseSessionManager(settings.DATABASE_URL)
    try:
        yield
    finally:
        await app.state.db.close()


app = FastAPI(
    title="Escrowline API",
    description="Escrow hold lifecycle and dispute escalation service",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(AccessLogMiddleware)

app.include_router(v1_router, prefix="/api/v1")


@app.exception_handler(EscrowlineException)
async def escrowline_exception_handler(request: Request, exc: EscrowlineException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


@app.get("/health")
async def health_check(request: Request):
    db = getattr(request.app.state, "db", None)
    db_ok = await db.health_check() if db is not None else False
    email_ok = await EmailClient().health_check()
    return {
        "status": "healthy" if db_ok else "degraded",
        "service": "escrowline",
        "version": "1.0.0",
        "env": settings.APP_ENV,
        "database": db_ok,
        "email": email_ok,
    }
