"""
Pydantic 模型：牌局文件、指令 payload、廣播 payload、HTTP request/response

對外（HTTP JSON、WebSocket frame）一律使用 camelCase 欄位名稱，
存進 Storage 的文件則使用 snake_case（model_dump 預設）。
兩種寫法在讀入時都接受。
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from models import SessionStatus, TransactionKind


class LedgerModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        """序列化成對外格式（camelCase、ISO 時間）"""
        return self.model_dump(mode="json", by_alias=True)

    def to_document(self) -> dict:
        """序列化成存進 Storage 的格式"""
        return self.model_dump(mode="json")


# ============ 牌局文件 ============

class Player(LedgerModel):
    id: str
    nickname: str
    agent_ref: Optional[str] = None
    buy_in: float = 0
    final_chips: Optional[float] = None
    profit: Optional[float] = None
    joined_at: datetime


class Session(LedgerModel):
    id: str
    name: str
    status: SessionStatus = SessionStatus.WAITING
    players: List[Player] = Field(default_factory=list)
    created_at: datetime
    ended_at: Optional[datetime] = None
    final_chips: Optional[Dict[str, float]] = None

    def find_player(self, player_id: str) -> Optional[Player]:
        return next((p for p in self.players if p.id == player_id), None)


class Transaction(LedgerModel):
    id: str
    session_id: str
    player_id: str
    kind: TransactionKind
    amount: float
    note: str
    timestamp: datetime


# ============ 指令結果 / 廣播 payload ============

class CreatedSession(LedgerModel):
    session_id: str
    session: Session
    player: Optional[Player] = None


class JoinResult(LedgerModel):
    player: Player
    roster: List[Player]


class BuyInResult(LedgerModel):
    player_id: str
    player: Player
    amount: float
    note: str


class ResultRecord(LedgerModel):
    player_id: str
    player: Player
    kind: TransactionKind
    amount: float
    note: str


class SettlementEntry(LedgerModel):
    player_id: str
    nickname: str
    buy_in: float
    final_chips: Optional[float] = None
    profit: Optional[float] = None


class Settlement(LedgerModel):
    session: Session
    summary: List[SettlementEntry]


class LedgerTotals(LedgerModel):
    buy_in: float = 0
    wins: float = 0
    losses: float = 0

    @property
    def net(self) -> float:
        return self.wins - self.losses


class Standing(LedgerModel):
    player_id: str
    nickname: str
    buy_in: float
    wins: float
    losses: float
    net: float


# ============ WebSocket 指令 ============
# 金額欄位不做型別轉換，由 core.ledger.validate_amount 判斷（true、"25" 都會被拒絕）

class WebSocketFrame(BaseModel):
    event: str
    data: dict = Field(default_factory=dict)


class JoinSessionCommand(LedgerModel):
    session_id: str
    nickname: Optional[str] = None
    agent_ref: Optional[str] = None


class BuyInCommand(LedgerModel):
    session_id: str
    player_id: str
    amount: Any
    note: Optional[str] = None


class RecordResultCommand(LedgerModel):
    session_id: str
    player_id: str
    kind: str
    amount: Any
    note: Optional[str] = None


class FinalizeCommand(LedgerModel):
    session_id: str
    final_chips_by_player: Dict[str, Any] = Field(default_factory=dict)


# ============ HTTP ============

class CreateSessionRequest(LedgerModel):
    name: Optional[str] = None
    creator_nickname: Optional[str] = None
    creator_agent_ref: Optional[str] = None


class ReconcileResponse(LedgerModel):
    corrected: List[str]
