"""
数据库连接模块

根据配置选择远程 PostgreSQL 或本地 SQLite 文件库，引擎在进程启动时创建一次，
挂载到 app.state 上供各路由依赖使用。
"""
import asyncio
import logging
from pathlib import Path
from typing import AsyncIterator

from alembic import command
from alembic.config import Config
from fastapi import Request
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from svgmotion.config import Settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """SQLAlchemy 基类"""
    pass


def _enable_sqlite_wal(dbapi_connection, _connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_engine_from_settings(settings: Settings) -> AsyncEngine:
    """创建异步引擎（远程 PostgreSQL 使用连接池，本地 SQLite 开启 WAL）"""
    url = settings.sqlalchemy_database_url
    if settings.uses_remote_database:
        return create_async_engine(
            url,
            echo=False,
            pool_pre_ping=True,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
        )

    Path(settings.local_database_path).expanduser().parent.mkdir(parents=True, exist_ok=True)
    engine = create_async_engine(
        url,
        echo=False,
        connect_args={"timeout": settings.sqlite_busy_timeout_seconds},
    )
    event.listen(engine.sync_engine, "connect", _enable_sqlite_wal)
    return engine


class Database:
    """引擎与会话工厂的持有者"""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.engine = create_engine_from_settings(settings)
        self.session_factory = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autocommit=False,
            autoflush=False,
        )
        backend = "remote" if settings.uses_remote_database else "local"
        logger.info("Database backend selected: %s", backend)

    def session(self) -> AsyncSession:
        return self.session_factory()

    async def create_all(self) -> None:
        """创建基础表结构（如果不存在）"""
        # 先导入所有模型，确保它们注册到 Base.metadata
        from svgmotion.models import user, credit  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()


def run_migrations(settings: Settings) -> None:
    """运行 Alembic 数据库迁移"""
    config_path = Path(__file__).resolve().parents[1] / "alembic.ini"
    alembic_cfg = Config(str(config_path))
    alembic_cfg.set_main_option("sqlalchemy.url", settings.sqlalchemy_database_url)
    alembic_cfg.attributes["configure_logger"] = False
    command.upgrade(alembic_cfg, "head")


async def init_db(database: Database) -> None:
    """初始化数据库表"""
    await database.create_all()

    # 运行 Alembic 迁移（处理增量变更）
    if database.settings.auto_migrate:
        await asyncio.to_thread(run_migrations, database.settings)


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    """获取数据库会话依赖"""
    database: Database = request.app.state.database
    async with database.session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
