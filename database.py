from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache, wraps
import logging

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    storage_backend: str = "memory"
    database_url: str = "sqlite:///./chip_ledger.db"
    session_ttl_seconds: int = 7 * 24 * 60 * 60
    serialize_commands: bool = True
    log_level: str = "INFO"
    allowed_origins: str = "*"

    model_config = SettingsConfigDict(env_prefix="LEDGER_", env_file=".env", extra="ignore")


@lru_cache()
def get_settings():
    return Settings()


Base = declarative_base()


def build_engine(database_url: str) -> Engine:
    """
    建立 SQLAlchemy Engine

    SQLite 需要特殊設定：connect_args={"check_same_thread": False}
    SqlStorage 會在 worker thread 內執行查詢，同一個連線可能跨執行緒使用
    """
    return create_engine(
        database_url,
        connect_args={"check_same_thread": False} if database_url.startswith("sqlite") else {},
        pool_pre_ping=True
    )


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def transactional(func):
    """
    Transaction decorator：確保資料庫操作的原子性

    使用方式：
        @transactional
        def write_something(db: Session, ...):
            db.add(record)
            # 不需要手動 commit，decorator 會處理

    如果函式內發生異常：
        - 自動 rollback
        - 異常會被重新拋出（讓上層處理）

    注意：
        - 參數中必須有一個 db: Session（位置參數或 db= 關鍵字）
        - 不要在函式內手動 commit（decorator 會處理）
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        # 找出 db session（可能在 args 或 kwargs）
        db = kwargs.get('db')
        if db is None:
            db = next((arg for arg in args if isinstance(arg, Session)), None)

        if db is None:
            raise ValueError(
                f"@transactional requires a 'db: Session' argument, "
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
