import logging
from dotenv import load_dotenv
from fastapi import FastAPI
from mangum import Mangum
from starlette.middleware.cors import CORSMiddleware

load_dotenv("starledger/.env")

from starledger import containers
from starledger.config import settings
from starledger.core.exception_handlers import register_exception_handlers
from starledger.core.logging_middleware import LoggingMiddleware
from starledger.routers import (
    device_router,
    health_router,
    merge_router,
    referral_router,
    share_router,
    star_router,
)
from starledger.utils.config import init_logging

init_logging()
logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    app = FastAPI(title=settings.APP_NAME, debug=settings.DEBUG)
    app.container = containers.Container()  # type: ignore

    app.add_middleware(LoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    app.include_router(health_router.router)
    for module in (device_router, star_router, share_router, referral_router, merge_router):
        app.include_router(module.router, prefix=settings.API_V1_STR)

    return app


app = create_app()

handler = Mangum(app)
