from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Dict, List


class Settings(BaseSettings):
    # Database
    database_url: str = "sqlite+aiosqlite:///./pattern_alerts.db"
    auto_create_tables: bool = True
    database_echo: bool = False  # SQL 로그 출력

    # Cron 트리거 인증 (Authorization: Bearer <secret>)
    cron_secret: str = ""

    # Twelve Data API (미설정 시 목업 캔들 사용)
    twelve_data_api_key: str = ""
    twelve_data_base_url: str = "https://api.twelvedata.com"

    # 외부 I/O 타임아웃 (초)
    http_timeout_seconds: float = 10.0

    # 패턴 매칭 설정
    fingerprint_dim: int = 64
    market_data_candles: int = 50
    default_similarity_threshold: int = 70
    alert_dedup_minutes: int = 60
    check_concurrency: int = 4

    # 지원 통화쌍 (MVP)
    supported_currency_pairs: List[str] = [
        "USD/JPY", "EUR/USD", "GBP/USD", "AUD/USD",
        "EUR/JPY", "GBP/JPY", "XAU/USD", "BTC/USD",
    ]

    # 플랜별 활성 패턴 개수 제한
    plan_pattern_limits: Dict[str, int] = {"free": 1, "pro": 5, "premium": 100}
    default_plan: str = "free"

    cors_origins: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
