"""
Storage Adapter：牌局文件與交易日誌的統一存取介面

兩種實作：
- InMemoryStorage：行程內 dict，紀錄不會過期
- SqlStorage：SQLAlchemy 資料庫，紀錄在保留期限後過期

呼叫端只依賴 StorageAdapter 介面，不需要知道目前用的是哪一種。
所有操作在相同輸入下重試是安全的：
- 寫入同一份文件不會產生額外效果
- 重複 append 同一個交易 id 會被忽略
"""
from __future__ import annotations

import asyncio
import copy
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Protocol, Tuple

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import ArgumentError, IntegrityError, OperationalError
from sqlalchemy.orm import Session

from core.exceptions import StorageUnavailable
from database import Base, Settings, build_engine, build_session_factory, transactional
from models import SessionRecord, TransactionRecord

logger = logging.getLogger(__name__)


class StorageAdapter(Protocol):
    """
    牌局文件與交易日誌的儲存抽象

    文件都是可直接轉成 JSON 的 dict；get_session 找不到時回傳 None，
    不會回傳預設文件。
    """

    async def put_session(self, session_id: str, doc: dict) -> None:
        ...

    async def get_session(self, session_id: str) -> Optional[dict]:
        ...

    async def append_transaction(self, session_id: str, player_id: str, tx: dict) -> None:
        """新增一筆交易到 (session, player) 日誌尾端；同一個交易 id 重複新增會被忽略"""
        ...

    async def list_transactions(self, session_id: str, player_id: str) -> List[dict]:
        ...

    async def close(self) -> None:
        ...


class InMemoryStorage:
    """行程內儲存（進出都做 deep copy，呼叫端改動不會影響已存的紀錄）"""

    def __init__(self) -> None:
        self._sessions: Dict[str, dict] = {}
        self._transactions: Dict[Tuple[str, str], List[dict]] = {}

    async def put_session(self, session_id: str, doc: dict) -> None:
        self._sessions[session_id] = copy.deepcopy(doc)

    async def get_session(self, session_id: str) -> Optional[dict]:
        doc = self._sessions.get(session_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def append_transaction(self, session_id: str, player_id: str, tx: dict) -> None:
        log = self._transactions.setdefault((session_id, player_id), [])
        if any(entry["id"] == tx["id"] for entry in log):
            return
        log.append(copy.deepcopy(tx))

    async def list_transactions(self, session_id: str, player_id: str) -> List[dict]:
        return [copy.deepcopy(tx) for tx in self._transactions.get((session_id, player_id), [])]

    async def close(self) -> None:
        pass


def _utcnow() -> datetime:
    # SQLite 不保存時區，資料庫內一律存 naive UTC
    return datetime.now(timezone.utc).replace(tzinfo=None)


@transactional
def _write_session(db: Session, session_id: str, doc: dict, ttl: timedelta) -> None:
    now = _utcnow()
    record = db.get(SessionRecord, session_id)
    if record is None:
        db.add(SessionRecord(id=session_id, document=doc, updated_at=now, expires_at=now + ttl))
        return

    record.document = doc
    record.updated_at = now
    record.expires_at = now + ttl


def _read_session(db: Session, session_id: str) -> Optional[dict]:
    record = db.query(SessionRecord).filter(
        SessionRecord.id == session_id,
        SessionRecord.expires_at > _utcnow()
    ).first()
    return record.document if record else None


@transactional
def _write_transaction(db: Session, session_id: str, player_id: str, tx: dict, ttl: timedelta) -> None:
    # tx_id 是 unique 欄位，重複新增（包含兩個同時進行的重試）由資料庫擋下
    now = _utcnow()
    db.add(TransactionRecord(
        tx_id=tx["id"],
        session_id=session_id,
        player_id=player_id,
        payload=tx,
        created_at=now,
        expires_at=now + ttl
    ))
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        logger.debug(f"Transaction {tx['id']} already appended, ignoring")


def _read_transactions(db: Session, session_id: str, player_id: str) -> List[dict]:
    rows = (
        db.query(TransactionRecord)
        .filter(
            TransactionRecord.session_id == session_id,
            TransactionRecord.player_id == player_id,
            TransactionRecord.expires_at > _utcnow()
        )
        .order_by(TransactionRecord.seq)
        .all()
    )
    return [row.payload for row in rows]


class SqlStorage:
    """
    SQLAlchemy 儲存（可持久化，紀錄有保留期限）

    每次寫入牌局都會把 expires_at 往後推 ttl；過期紀錄讀起來等同不存在。
    SQLAlchemy 是同步 API，所以每個操作都丟到 worker thread 執行，
    並用獨立的 DB session（一個操作一個 transaction）。
    """

    def __init__(self, engine: Engine, ttl_seconds: int) -> None:
        self._engine = engine
        self._session_factory = build_session_factory(engine)
        self._ttl = timedelta(seconds=ttl_seconds)

    def ping(self) -> None:
        with self._engine.connect() as conn:
            conn.execute(text("SELECT 1"))

    def create_tables(self) -> None:
        Base.metadata.create_all(bind=self._engine)

    async def _run(self, func, *args):
        def call():
            db = self._session_factory()
            try:
                return func(db, *args)
            finally:
                db.close()

        try:
            return await asyncio.to_thread(call)
        except OperationalError as e:
            raise StorageUnavailable(f"Storage backend unavailable: {e.orig}") from e

    async def put_session(self, session_id: str, doc: dict) -> None:
        await self._run(_write_session, session_id, doc, self._ttl)

    async def get_session(self, session_id: str) -> Optional[dict]:
        return await self._run(_read_session, session_id)

    async def append_transaction(self, session_id: str, player_id: str, tx: dict) -> None:
        await self._run(_write_transaction, session_id, player_id, tx, self._ttl)

    async def list_transactions(self, session_id: str, player_id: str) -> List[dict]:
        return await self._run(_read_transactions, session_id, player_id)

    async def close(self) -> None:
        self._engine.dispose()


def create_storage(settings: Settings) -> StorageAdapter:
    """
    依設定建立 Storage Adapter

    - storage_backend="memory"：InMemoryStorage
    - storage_backend="sql"：SqlStorage；啟動時連不上資料庫、URL 無效或 driver 未安裝時
      退回 InMemoryStorage
      （不會搬移資料庫內已有的資料）

    異常：
        ValueError: 未知的 storage_backend
    """
    backend = settings.storage_backend.lower()
    if backend == "memory":
        logger.info("Using in-memory storage")
        return InMemoryStorage()

    if backend != "sql":
        raise ValueError(f"Unknown storage backend: {settings.storage_backend}")

    try:
        engine = build_engine(settings.database_url)
    except (ArgumentError, ImportError) as e:
        # URL 格式錯誤或資料庫 driver 沒安裝
        logger.warning(f"Cannot build durable storage ({e}), falling back to in-memory storage")
        return InMemoryStorage()

    storage = SqlStorage(engine, settings.session_ttl_seconds)
    try:
        storage.ping()
        storage.create_tables()
    except OperationalError as e:
        logger.warning(f"Durable storage unreachable ({e.orig}), falling back to in-memory storage")
        engine.dispose()
        return InMemoryStorage()

    logger.info(f"Using SQL storage (ttl={settings.session_ttl_seconds}s)")
    return storage
