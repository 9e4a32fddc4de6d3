import logging
from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from pattern_alerts.config import get_settings

logger = logging.getLogger(__name__)

Base = declarative_base()


def create_engine_for(database_url: str, echo: bool = False) -> AsyncEngine:
    """DB 종류에 맞는 옵션으로 비동기 엔진 생성"""
    kwargs = {"echo": echo, "pool_pre_ping": True}

    # SQLite는 커넥션 풀 옵션을 받지 않음
    if "sqlite" not in database_url:
        kwargs["pool_size"] = 5
        kwargs["max_overflow"] = 10

    if "postgresql" in database_url or "asyncpg" in database_url:
        kwargs["connect_args"] = {"timeout": 10.0, "command_timeout": 10.0}

    return create_async_engine(database_url, **kwargs)


def create_session_factory(db_engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )


try:
    settings = get_settings()
    engine = create_engine_for(settings.database_url, echo=settings.database_echo)
    logger.info(f"✅ Database engine created (echo: {settings.database_echo})")
except Exception as e:
    logger.error(f"❌ Failed to create database engine: {e}")
    engine = None

AsyncSessionLocal = create_session_factory(engine) if engine else None


async def get_db():
    """의존성 주입용 DB 세션 생성기"""
    if AsyncSessionLocal is None:
        raise RuntimeError("Database not initialized")

    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_session_factory() -> async_sessionmaker:
    """스케줄러처럼 패턴마다 독립 세션이 필요한 곳에서 사용"""
    if AsyncSessionLocal is None:
        raise RuntimeError("Database not initialized")
    return AsyncSessionLocal


async def create_tables(db_engine: AsyncEngine):
    """모델 정의 기준으로 테이블 생성 (이미 있으면 건너뜀)"""
    # 모델 등록을 위해 import
    import pattern_alerts.models  # noqa: F401

    async with db_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def init_db():
    """앱 시작 - DB 연결 테스트 및 테이블 준비"""
    if engine is None:
        logger.warning("⚠️ Database engine not initialized - skipping connection test")
        return

    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("✅ Database connection verified")

        if get_settings().auto_create_tables:
            await create_tables(engine)
            logger.info("✅ Database tables ready")
    except Exception as e:
        logger.warning(f"⚠️ Database initialization failed: {e}")


async def close_db():
    """데이터베이스 연결 종료"""
    if engine:
        await engine.dispose()
