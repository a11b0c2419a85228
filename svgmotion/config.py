"""
配置管理模块
"""
import logging
from pathlib import Path
from typing import List
from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

DEFAULT_JWT_SECRET = "your-super-secret-key-change-in-production"
# 前端 .env 模板里的占位值，视同未配置
PLACEHOLDER_API_KEYS = {"", "你的API密钥粘贴在这里", "your-api-key-here"}


class Settings(BaseSettings):
    """应用配置"""
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # 环境
    environment: str = "development"
    log_level: str = "INFO"

    # CORS
    cors_origins_list: str = ""

    # JWT
    jwt_secret_key: str = DEFAULT_JWT_SECRET
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = 60 * 24 * 7  # 7 days

    # 数据库：配置了远程数据库则使用远程，否则使用本地 SQLite 文件
    database_url: str = ""
    local_database_path: str = "./svgmotion.db"
    database_pool_size: int = 10
    database_max_overflow: int = 20
    sqlite_busy_timeout_seconds: float = 30.0
    auto_migrate: bool = False

    # Redis（为空时关闭限流）
    redis_url: str = ""

    # DeepSeek
    deepseek_api_key: str = ""
    deepseek_base_url: str = "https://api.deepseek.com"
    deepseek_model: str = "deepseek-chat"
    deepseek_max_tokens: int = 4096
    deepseek_timeout_seconds: float = 120.0

    # 积分
    initial_gift_credits: int = 10
    generation_cost: int = 1

    # 匿名生成策略
    allow_anonymous_generation: bool = True
    anonymous_generate_limit: int = 5
    anonymous_generate_window_seconds: int = 60

    # Sentry
    sentry_dsn: str = ""
    sentry_traces_sample_rate: float = 0.1

    # Metrics
    metrics_enabled: bool = True

    @property
    def cors_origins(self) -> List[str]:
        """解析 CORS 允许的来源"""
        if not self.cors_origins_list:
            return []
        return [origin.strip() for origin in self.cors_origins_list.split(",")]

    @property
    def uses_remote_database(self) -> bool:
        return bool(self.database_url.strip())

    @property
    def sqlalchemy_database_url(self) -> str:
        """
        解析 SQLAlchemy 连接串

        远程: postgresql:// 转换为 postgresql+asyncpg://
        本地: sqlite+aiosqlite:///<path>
        """
        if self.uses_remote_database:
            url = self.database_url.strip()
            if url.startswith("postgres://"):
                url = "postgresql://" + url[len("postgres://"):]
            return url.replace("postgresql://", "postgresql+asyncpg://", 1)
        path = Path(self.local_database_path).expanduser()
        return f"sqlite+aiosqlite:///{path}"

    @property
    def has_model_api_key(self) -> bool:
        return self.deepseek_api_key.strip() not in PLACEHOLDER_API_KEYS

    def is_production(self) -> bool:
        """是否生产环境"""
        return self.environment.lower() == "production"

    def is_development(self) -> bool:
        """是否开发环境"""
        return self.environment.lower() == "development"

    def validate_secrets(self) -> None:
        """
        验证生产环境必需的配置项
        """
        if not self.has_model_api_key:
            logger.warning("DEEPSEEK_API_KEY 未配置，生成接口将返回配置错误")

        if not self.is_production():
            return

        problems: List[str] = []

        if not self.jwt_secret_key or self.jwt_secret_key == DEFAULT_JWT_SECRET or len(self.jwt_secret_key) < 32:
            problems.append("JWT_SECRET_KEY 太弱或仍为默认值")

        if problems:
            raise RuntimeError("生产环境配置不安全: " + "; ".join(problems))


@lru_cache()
def get_settings() -> Settings:
    """获取配置单例"""
    return Settings()
