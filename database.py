from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from pydantic_settings import BaseSettings
from functools import lru_cache, wraps
from typing import List, Literal, Optional
import logging

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    database_url: str = "sqlite:///./leaderboard.db"

    # GitHub 追蹤人數查詢
    github_api_base: str = "https://api.github.com"
    github_token: Optional[str] = None
    github_timeout_seconds: float = 5.0
    github_lookup_key: Literal["id", "username"] = "id"
    github_user_agent: str = "follower-leaderboard"
    refresh_max_workers: int = 8

    require_active_round_for_registration: bool = False

    # 寫入端點的 Bearer token；None 表示不檢查
    api_token: Optional[str] = None
    admin_token: Optional[str] = None

    cors_origins: List[str] = ["*"]
    log_level: str = "INFO"

    class Config:
        env_file = ".env"


@lru_cache()
def get_settings():
    return Settings()


settings = get_settings()

# SQLite 需要特殊設定：connect_args={"check_same_thread": False}
# FastAPI 在 threadpool 中執行同步 endpoint，需要多執行緒存取同一個連線
engine = create_engine(
    settings.database_url,
    connect_args={"check_same_thread": False} if settings.database_url.startswith("sqlite") else {},
    pool_pre_ping=True
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    """
    FastAPI dependency：提供 Database Session

    使用 yield 確保 session 在請求結束後會被關閉
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _find_session(args, kwargs):
    if args and isinstance(args[0], Session):
        return args[0]
    if 'db' in kwargs:
        return kwargs['db']
    # Manager 實例把 session 放在 self.db
    if args and isinstance(getattr(args[0], 'db', None), Session):
        return args[0].db
    return None


def transactional(func):
    """
    Transaction decorator：確保資料庫操作的原子性

    使用方式：
        @transactional
        def upsert_something(db: Session, ...):
            db.add(...)
            # 不需要手動 commit，decorator 會處理

        class SomeManager:
            @transactional
            def change(self, ...):
                self.db.add(...)

    如果函式內發生異常：
        - 自動 rollback
        - 異常會被重新拋出（讓上層處理）

    注意：
        - session 必須是第一個參數、db 關鍵字參數，或實例的 db 屬性
        - 不要在函式內手動 commit（decorator 會處理）
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        db = _find_session(args, kwargs)

        if db is None:
            raise ValueError(
                f"@transactional requires a 'db: Session' argument or attribute, "
                f"but got args={args}, kwargs={kwargs}"
            )

        try:
            result = func(*args, **kwargs)
            db.commit()
            return result
        except Exception as e:
            logger.error(f"Transaction failed in {func.__name__}: {e}", exc_info=True)
            db.rollback()
            raise

    return wrapper
