# FastAPI entrypoint for the access-grant gateway

from fastapi import APIRouter, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute
from loguru import logger
import dotenv
import os

from audit.audit_routes import router as audit_router
from auth.cache_manager import actor_cache
from auth.security_middleware import SecurityHeadersMiddleware, SecurityLoggingMiddleware
from core.exceptions import AccessControlError
from grants.grant_routes import access_router, router as grant_router
from identity.identity_routes import router as actor_router
from records.record_routes import router as record_router
from storage.database import DatabaseManager

dotenv.load_dotenv()

# Initialize FastAPI app
app = FastAPI(
    title="Access Grant API",
    description="Delegated, time-bounded access to subjects' private records",
    version="1.0.0"
)

# ==================== MIDDLEWARE STACK ====================

app.add_middleware(SecurityLoggingMiddleware)
app.add_middleware(SecurityHeadersMiddleware)

FRONTEND_DOMAINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:5173,http://localhost:3000").split(",")
    if origin.strip()
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=FRONTEND_DOMAINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "Accept"],
    expose_headers=["Content-Disposition"],
    max_age=86400,
)

# ==================== ERROR MAPPING ====================

@app.exception_handler(AccessControlError)
async def access_control_error_handler(request: Request, exc: AccessControlError):
    if exc.status_code >= 500:
        logger.error(f"{exc.kind} on {request.method} {request.url.path}: {exc.message}")
    else:
        logger.info(f"{exc.kind} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = "; ".join(
        f"{'.'.join(str(p) for p in err.get('loc', ()) if p != 'body')}: {err.get('msg')}"
        for err in errors
    ) or "Invalid request"
    return JSONResponse(status_code=400, content={"detail": message, "kind": "validation_error"})

# ==================== BASE ROUTER ====================

router = APIRouter(prefix="/api/base", tags=["base"])

@router.get("/")
async def base_root():
    """Root endpoint that returns API information and routes."""
    routes = [
        {
            "path": route.path,
            "name": route.name,
            "methods": sorted(route.methods - {"HEAD", "OPTIONS"})
        }
        for route in app.routes
        if isinstance(route, APIRoute)
    ]
    return {"message": "Access Grant API", "version": app.version, "routes": routes}

@router.get("/health")
async def health_check():
    """Health check endpoint for monitoring system status."""
    database_ok = DatabaseManager.health_check()
    status = "healthy" if database_ok else "unhealthy"
    return JSONResponse(
        status_code=200 if database_ok else 503,
        content={
            "status": status,
            "components": {
                "database": "up" if database_ok else "down",
                "actor_cache_entries": actor_cache.size()
            }
        }
    )

# ==================== ROUTER REGISTRATION ====================

app.include_router(router)              # /api/base
app.include_router(actor_router)        # /api/actors
app.include_router(grant_router)        # /api/grants
app.include_router(access_router)       # /api/access
app.include_router(record_router)       # /api/records
app.include_router(audit_router)        # /api/audit

# ==================== STARTUP EVENTS ====================

@app.on_event("startup")
async def startup_event():
    """Initialize on startup."""
    logger.info("Initializing access database...")
    DatabaseManager.initialize()
    logger.info("✓ Access database initialized and tables created")


@app.on_event("shutdown")
async def shutdown_event():
    DatabaseManager.dispose()
    logger.info("Access database disposed")
