from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import settings
from database import init_db
from api.approvals import router as approvals_router
from api.drafts import router as drafts_router
from api.errors import register_error_handlers
from api.loans import router as loans_router
from api.wizard import router as wizard_router
from services.gateway import CoreBankingGateway
from utils.log import get_logger, setup_logging

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(settings.log_level, settings.log_format)
    await init_db()
    app.state.gateway = CoreBankingGateway(
        settings.core_api_url,
        token=settings.core_api_token,
        timeout=settings.core_api_timeout_seconds,
    )
    logger.info("Loan origination API started (core backend %s)", settings.core_api_url)
    yield
    await app.state.gateway.aclose()


app = FastAPI(
    title=settings.app_name,
    description="Loan application wizard, draft store and two-tier approval API",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

app.include_router(drafts_router)
app.include_router(wizard_router)
app.include_router(approvals_router)
app.include_router(loans_router)


@app.get("/health")
async def health():
    return {"status": "ok"}
