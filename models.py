"""
資料模型：列舉型別與 SQLAlchemy 資料表

資料表只給 SqlStorage 使用；Session / Player / Transaction 的文件結構
定義在 schemas.py，這裡只保存序列化後的 JSON。
"""
import enum

from sqlalchemy import Column, DateTime, Integer, JSON, String

from database import Base


class SessionStatus(str, enum.Enum):
    WAITING = "waiting"
    PLAYING = "playing"
    ENDED = "ended"


class TransactionKind(str, enum.Enum):
    BUY_IN = "buyin"
    WIN = "win"
    LOSS = "loss"


class SessionRecord(Base):
    """一個牌局一筆紀錄，document 為整份 Session 文件"""
    __tablename__ = "ledger_sessions"

    id = Column(String(32), primary_key=True)
    document = Column(JSON, nullable=False)
    updated_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)


class TransactionRecord(Base):
    """
    交易紀錄（只新增，不修改）

    seq 決定同一個 (session_id, player_id) 日誌內的順序
    """
    __tablename__ = "ledger_transactions"

    seq = Column(Integer, primary_key=True, autoincrement=True)
    tx_id = Column(String(36), unique=True, nullable=False)
    session_id = Column(String(32), nullable=False, index=True)
    player_id = Column(String(36), nullable=False, index=True)
    payload = Column(JSON, nullable=False)
    created_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False)
