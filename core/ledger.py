"""
Ledger Recorder：每位玩家的交易日誌（只新增，不修改、不刪除）

日誌以 (session_id, player_id) 為單位存在 Storage Adapter 裡，
跟牌局文件完全分開，兩者只透過 Storage 的 key space 溝通。
"""
import logging
import math
import uuid
from datetime import datetime, timezone
from typing import Any, List, Optional, Union

from core.exceptions import InvalidInput
from core.storage import StorageAdapter
from models import TransactionKind
from schemas import LedgerTotals, Transaction

logger = logging.getLogger(__name__)

DEFAULT_NOTES = {
    TransactionKind.BUY_IN: "Buy-in {amount}",
    TransactionKind.WIN: "Won {amount}",
    TransactionKind.LOSS: "Lost {amount}",
}


def format_amount(amount: float) -> str:
    return str(int(amount)) if float(amount).is_integer() else str(amount)


def validate_amount(amount: Any, label: str = "Amount") -> float:
    """
    檢查金額：必須是有限的非負數

    異常：
        InvalidInput: 不是數字（bool 也不算）、NaN / Infinity、負數
    """
    if isinstance(amount, bool) or not isinstance(amount, (int, float)):
        raise InvalidInput(f"{label} must be a number, got {amount!r}")
    if not math.isfinite(amount):
        raise InvalidInput(f"{label} must be a finite number, got {amount!r}")
    if amount < 0:
        raise InvalidInput(f"{label} must not be negative, got {amount!r}")
    return float(amount)


def validate_entry(kind: Union[str, TransactionKind], amount: Any) -> TransactionKind:
    """
    在寫入任何東西之前檢查 (kind, amount)

    返回：
        轉換後的 TransactionKind

    異常：
        InvalidInput: 未知的 kind，或金額不合法
    """
    try:
        kind = TransactionKind(kind)
    except ValueError:
        raise InvalidInput(f"Unknown transaction kind: {kind!r}")
    validate_amount(amount)
    return kind


class LedgerRecorder:
    """交易日誌的寫入與查詢"""

    def __init__(self, storage: StorageAdapter) -> None:
        self._storage = storage

    async def record(
        self,
        session_id: str,
        player_id: str,
        kind: Union[str, TransactionKind],
        amount: float,
        note: Optional[str] = None,
    ) -> Transaction:
        """
        新增一筆交易

        參數：
            session_id: 牌局 ID
            player_id: 玩家 ID
            kind: buyin / win / loss
            amount: 非負的有限數字（正負意義由 kind 決定）
            note: 備註，沒給時依 kind 產生預設文字

        返回：
            完整的 Transaction（含 id 和 timestamp），可以直接廣播

        異常：
            InvalidInput: kind 或 amount 不合法（不會寫入任何東西）
        """
        kind = validate_entry(kind, amount)
        amount = float(amount)

        tx = Transaction(
            id=str(uuid.uuid4()),
            session_id=session_id,
            player_id=player_id,
            kind=kind,
            amount=amount,
            note=note or DEFAULT_NOTES[kind].format(amount=format_amount(amount)),
            timestamp=datetime.now(timezone.utc),
        )
        await self._storage.append_transaction(session_id, player_id, tx.to_document())

        logger.info(f"Recorded {kind.value} {format_amount(amount)} for player {player_id} in session {session_id}")
        return tx

    async def history(self, session_id: str, player_id: str) -> List[Transaction]:
        """依新增順序（舊到新）回傳交易；沒有交易時回傳空 list"""
        docs = await self._storage.list_transactions(session_id, player_id)
        return [Transaction.model_validate(doc) for doc in docs]

    async def totals(self, session_id: str, player_id: str) -> LedgerTotals:
        """從日誌即時計算買入、贏、輸的總和（不快取）"""
        totals = LedgerTotals()
        for tx in await self.history(session_id, player_id):
            if tx.kind == TransactionKind.BUY_IN:
                totals.buy_in += tx.amount
            elif tx.kind == TransactionKind.WIN:
                totals.wins += tx.amount
            else:
                totals.losses += tx.amount
        return totals
