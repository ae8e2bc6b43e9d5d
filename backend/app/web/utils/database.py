"""
Database connection utilities for async SQLAlchemy.
"""
import logging
from functools import lru_cache
from typing import AsyncIterator, Optional

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from app.config import settings

logger = logging.getLogger(__name__)


def normalize_database_url(url: str) -> str:
    """
    Chuẩn hóa database URL:
    - Convert postgresql:// -> postgresql+asyncpg://
    - Convert sqlite:// -> sqlite+aiosqlite://
    """
    if url.startswith("postgresql://") and "+asyncpg" not in url:
        url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("sqlite://") and "+aiosqlite" not in url:
        url = url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return url


def mask_url(url: str) -> str:
    """Mask password trong database URL để log."""
    if '@' in url:
        parts = url.split('@')
        user_pass = parts[0].split('//')[1] if '//' in parts[0] else parts[0]
        if ':' in user_pass:
            user = user_pass.split(':')[0]
            return url.replace(user_pass, f"{user}:***")
    return url


def configure_sqlite_transactions(engine: AsyncEngine) -> None:
    """
    Cho SQLite xử lý BEGIN / SAVEPOINT / DDL trong transaction đúng cách.

    pysqlite tự emit BEGIN theo cách riêng, làm hỏng SAVEPOINT và transactional DDL.
    Tắt hành vi đó và để SQLAlchemy tự emit BEGIN.
    """
    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """
    Tạo async engine cho PostgreSQL (asyncpg) hoặc SQLite (aiosqlite).

    Args:
        database_url: Connection string
        echo: Log toàn bộ SQL

    Returns:
        AsyncEngine
    """
    url = normalize_database_url(database_url)
    logger.info(f"🔗 Database URL: {mask_url(url)}")

    if url.startswith("sqlite"):
        engine = create_async_engine(url, echo=echo)
        configure_sqlite_transactions(engine)
        return engine

    return create_async_engine(
        url,
        echo=echo,
        pool_pre_ping=True,  # Kiểm tra connection trước khi dùng
        pool_size=10,
        max_overflow=20,
        pool_recycle=3600,  # Recycle connections sau 1 giờ để tránh stale connections
        pool_timeout=30,
        connect_args={
            "command_timeout": 60,
            "server_settings": {
                "application_name": "recommender_manager"
            }
        }
    )


@lru_cache(maxsize=1)
def get_engine() -> AsyncEngine:
    """Engine dùng chung cho cả process, tạo lần đầu khi cần."""
    engine = build_engine(settings.database_url)
    logger.info("✅ Database engine created successfully")
    return engine


def get_sessionmaker(engine: Optional[AsyncEngine] = None) -> async_sessionmaker:
    return async_sessionmaker(
        engine or get_engine(),
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False
    )


async def get_db() -> AsyncIterator[AsyncSession]:
    """
    Dependency để lấy database session.
    Sử dụng trong FastAPI routes.

    Commit nếu request thành công, rollback nếu có exception.
    """
    async with get_sessionmaker()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
