import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .core.config import settings
from .core.db import engine, Base
from .core.errors import ConfigurationError
from . import models  # noqa: F401  (registers tables on Base)
from .api.routes.sessions import router as sessions_router
from .api.routes.phq9 import router as phq9_router
from .api.routes.summary import router as summary_router
from .api.routes.recommendations import router as recommendations_router
from .api.routes.booking import router as booking_router
from .api.routes.misc import router as misc_router

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="PsyConnect Intake API", version=settings.API_VERSION)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    logger.error("configuration error: %s", exc)
    return JSONResponse(
        status_code=503,
        content={"detail": "The assistant is not configured on this server. Please contact the administrator."},
    )

@app.on_event("startup")
def on_startup():
    Base.metadata.create_all(bind=engine)
    logger.info("PsyConnect %s started (%s)", settings.API_VERSION, settings.APP_ENV)

app.include_router(misc_router)
app.include_router(sessions_router)
app.include_router(phq9_router)
app.include_router(summary_router)
app.include_router(recommendations_router)
app.include_router(booking_router)
