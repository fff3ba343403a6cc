import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from civicseva.config.db import SessionLocal
from civicseva.config.settings import settings
from civicseva.controllers import admin, analytics, auth, notifications, reports, votes
from civicseva.database.migrations import run_migrations
from civicseva.services.events import ChangeFeed
from civicseva.services.routing import register_auto_routing
from civicseva.utils.errors import CivicSevaError

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)
logger = logging.getLogger("civicseva")


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.AUTO_MIGRATE:
        logger.info("Creating database tables...")
        run_migrations()
    if not app.state.routing_subscription.active:
        app.state.routing_subscription = register_auto_routing(app.state.feed, SessionLocal)
    logger.info("CivicSeva API ready")
    yield
    app.state.routing_subscription.close()
    logger.info("Shutting down CivicSeva API...")


app = FastAPI(title="CivicSeva Issue Reporting API", lifespan=lifespan)

# Change feed shared by services and WebSocket streams; new reports are routed on insert
app.state.feed = ChangeFeed()
app.state.routing_subscription = register_auto_routing(app.state.feed, SessionLocal)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(CivicSevaError)
async def civicseva_error_handler(request: Request, exc: CivicSevaError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# Include API routers
app.include_router(auth.router, prefix="/api/auth", tags=["authentication"])
app.include_router(reports.router, prefix="/api/reports", tags=["reports"])
app.include_router(votes.router, prefix="/api/reports", tags=["votes"])
app.include_router(admin.router, prefix="/api/admin", tags=["admin"])
app.include_router(analytics.router, prefix="/api/analytics", tags=["analytics"])
app.include_router(notifications.router, prefix="/api/notifications", tags=["notifications"])


@app.get("/")
async def root():
    return {"message": "Welcome to the CivicSeva Issue Reporting API"}

@app.get("/health")
async def health_check():
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("civicseva.main:app", host="0.0.0.0", port=8000, reload=True)
