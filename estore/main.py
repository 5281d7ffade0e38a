import structlog
from fastapi import Depends, FastAPI, Header, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from estore import config
from estore.database import Base, engine, get_db
from estore.errors import ShopError
from estore.log import configure_logging
from estore.routes import router
from estore.schemas import api_response
from estore.webhook import WebhookHandler

configure_logging()
logger = structlog.get_logger(__name__)

app = FastAPI(title="E-Store Orders Service")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[config.ORIGIN],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)

Base.metadata.create_all(bind=engine)


@app.exception_handler(ShopError)
async def shop_error_handler(request: Request, exc: ShopError):
    if exc.status_code >= 500:
        logger.error("request_failed", path=request.url.path, error=exc.message, exc_info=exc)
    else:
        logger.info("request_rejected", path=request.url.path, status=exc.status_code, error=exc.message)
    return JSONResponse(status_code=exc.status_code, content=api_response(False, exc.message))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    logger.info("request_rejected", path=request.url.path, status=400, errors=exc.errors())
    return JSONResponse(status_code=400, content=api_response(False, "Invalid request body"))


@app.exception_handler(SQLAlchemyError)
async def store_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error("store_failure", path=request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content=api_response(False, "Internal server error"))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error("unhandled_error", path=request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content=api_response(False, "Internal server error"))


@app.post("/webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header(None),
    db: Session = Depends(get_db),
):
    payload = await request.body()
    await run_in_threadpool(WebhookHandler(db).handle, payload, stripe_signature)
    return {"ok": True}
