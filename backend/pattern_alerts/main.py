from contextlib import asynccontextmanager
import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pattern_alerts.api import patterns, alerts
from pattern_alerts.config import get_settings
from pattern_alerts.database import init_db, close_db

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """앱 시작/종료 시 DB 연결 관리"""
    await init_db()

    config = get_settings()
    if not config.cron_secret:
        logger.warning("⚠️ CRON_SECRET not set - scheduled pattern checks will be rejected")

    yield

    await close_db()


app = FastAPI(
    title="Pattern Alerts",
    description="차트 패턴 매칭 및 알림 엔진",
    version="1.0.0",
    lifespan=lifespan
)

# CORS 설정 (프론트엔드 연동)
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# API 라우터 등록
app.include_router(patterns.router, prefix="/api/patterns", tags=["Patterns"])
app.include_router(alerts.router, prefix="/api/alerts", tags=["Alerts"])


@app.get("/")
async def root():
    return {
        "message": "Pattern Alerts API",
        "version": "1.0.0",
        "docs": "/docs"
    }


@app.get("/health")
async def health_check():
    config = get_settings()
    return {
        "status": "healthy",
        "cron_configured": bool(config.cron_secret),
        "market_data_configured": bool(config.twelve_data_api_key),
    }
