from fastapi import FastAPI, APIRouter, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from dotenv import load_dotenv
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.cors import CORSMiddleware
from sqlalchemy.exc import IntegrityError
import os
import logging
from pathlib import Path

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

from bootstrap import run_bootstrap
from realtime import ConnectionHub
from realtime import router as realtime_router
from routers.auth_users import router as auth_router
from routers.registration import router as registration_router
from routers.participant import router as participant_router
from routers.queries import router as queries_router
from routers.judge import router as judge_router
from routers.admin_participants import router as admin_participants_router
from routers.admin_subevents import router as admin_subevents_router
from routers.admin_rounds import router as admin_rounds_router
from routers.admin_groups import router as admin_groups_router
from routers.admin_panels import router as admin_panels_router
from routers.admin_topics import router as admin_topics_router
from routers.admin_attendance import router as admin_attendance_router
from routers.admin_analytics import router as admin_analytics_router
from routers.admin_settings import router as admin_settings_router
from routers.admin_queries import router as admin_queries_router
from routers.admin_users import router as admin_users_router

app = FastAPI(title="VerbaFest API", version="1.0.0")
app.state.hub = ConnectionHub()
api_router = APIRouter(prefix="/api")

# Configure logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message})


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return _error(exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = "Validation error"
    if errors:
        message = str(errors[0].get("msg", message))
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
    return _error(status.HTTP_400_BAD_REQUEST, message)


@app.exception_handler(IntegrityError)
async def integrity_exception_handler(request: Request, exc: IntegrityError):
    logger.warning("Integrity error on %s %s: %s", request.method, request.url.path, exc.orig)
    return _error(status.HTTP_409_CONFLICT, "Duplicate entry; the record already exists")


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc) or "Server error")


# ==================== STARTUP ====================
@app.on_event("startup")
async def startup_event():
    run_bootstrap()


# ==================== PUBLIC ROUTES ====================
@api_router.get("/")
async def root():
    return {"success": True, "message": "VerbaFest API is running"}


@api_router.get("/health")
async def health_check():
    return {"success": True, "status": "healthy"}


api_router.include_router(auth_router)
api_router.include_router(registration_router)
api_router.include_router(participant_router)
api_router.include_router(queries_router)
api_router.include_router(judge_router)
api_router.include_router(admin_participants_router)
api_router.include_router(admin_subevents_router)
api_router.include_router(admin_rounds_router)
api_router.include_router(admin_groups_router)
api_router.include_router(admin_panels_router)
api_router.include_router(admin_topics_router)
api_router.include_router(admin_attendance_router)
api_router.include_router(admin_analytics_router)
api_router.include_router(admin_settings_router)
api_router.include_router(admin_queries_router)
api_router.include_router(admin_users_router)
api_router.include_router(realtime_router)


def _allowed_origins():
    origins = [origin.strip() for origin in os.environ.get('CORS_ORIGINS', '*').split(',') if origin.strip()]
    frontend_url = os.environ.get('FRONTEND_URL')
    if frontend_url and frontend_url not in origins:
        origins.append(frontend_url)
    return origins


# Include router and add middleware
app.include_router(api_router)

app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=_allowed_origins(),
    allow_methods=["*"],
    allow_headers=["*"],
)
