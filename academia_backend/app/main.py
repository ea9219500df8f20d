import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.routes import router as api_router
from app.core.config import settings
from app.core.database import engine
from app.core.errors import AcademiaError
from app.core.logging import configure_logging
from app.models.base import Base
import app.models  # noqa: F401

configure_logging(settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Academia Prerequisite API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)


@app.exception_handler(AcademiaError)
def academia_error_handler(request: Request, exc: AcademiaError):
    logger.info("%s %s -> %s %s", request.method, request.url.path, exc.status_code, exc.kind)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.on_event("startup")
def on_startup():
    Base.metadata.create_all(bind=engine)
    logger.info("Database ready (%s environment)", settings.environment)


@app.get("/health")
def health_check():
    return {"status": "ok"}
