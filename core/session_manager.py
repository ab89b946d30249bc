"""
Session Manager：管理牌局的完整生命週期

職責：
1. 建立牌局、玩家加入
2. 買入、記錄輸贏（交易交給 LedgerRecorder）
3. 結算（計算每位玩家的 profit）
4. 每個成功的指令都透過 Broadcaster 通知牌局內所有連線

狀態機：
    waiting ──(買入 / 記錄輸贏)──> playing ──(結算)──> ended
    waiting ──(結算)──> ended
    ended 之後不再有任何狀態轉換

每個指令都是對 Storage Adapter 的 read-modify-write：
- 失敗的指令不寫入任何東西，也不廣播
- 預設以 SessionLocks 讓同一個牌局的指令依序執行；關閉時會重現 lost update
- 衍生欄位（profit、輸贏總和）不快取，只在結算或查詢時計算
"""
import logging
import math
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional, Union

from core.broadcaster import Broadcaster, Subscriber
from core.exceptions import (
    AlreadyEnded,
    InvalidInput,
    InvalidState,
    PlayerNotFound,
    SessionNotFound,
)
from core.ledger import LedgerRecorder, format_amount, validate_amount, validate_entry
from core.locks import SessionLocks
from core.storage import StorageAdapter
from models import SessionStatus, TransactionKind
from schemas import (
    BuyInResult,
    CreatedSession,
    JoinResult,
    Player,
    ResultRecord,
    Session,
    Settlement,
    SettlementEntry,
    Standing,
    Transaction,
)
from services.naming_service import default_session_name, generate_nickname, generate_session_code

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class SessionManager:
    """牌局生命週期管理器"""

    def __init__(
        self,
        storage: StorageAdapter,
        ledger: LedgerRecorder,
        broadcaster: Broadcaster,
        locks: Optional[SessionLocks] = None,
    ) -> None:
        self._storage = storage
        self._ledger = ledger
        self._broadcaster = broadcaster
        self._locks = locks if locks is not None else SessionLocks()

    # ============ 內部工具 ============

    async def _load(self, session_id: str) -> Session:
        doc = await self._storage.get_session(session_id)
        if doc is None:
            raise SessionNotFound(session_id)
        return Session.model_validate(doc)

    async def _save(self, session: Session) -> None:
        await self._storage.put_session(session.id, session.to_document())

    @staticmethod
    def _require_player(session: Session, player_id: str) -> Player:
        player = session.find_player(player_id)
        if player is None:
            raise PlayerNotFound(player_id)
        return player

    @staticmethod
    def _require_open(session: Session) -> None:
        if session.status == SessionStatus.ENDED:
            raise InvalidState(f"Session {session.id} has ended")

    # ============ 指令 ============

    async def create(self, name: Optional[str] = None) -> Session:
        """
        建立新牌局（status=waiting，沒有玩家）

        注意：
            - 牌局代碼碰撞機率極低（36^6），但仍會檢查是否已存在
        """
        session_id = generate_session_code()
        while await self._storage.get_session(session_id) is not None:
            logger.warning(f"Session code collision detected, regenerating: {session_id}")
            session_id = generate_session_code()

        now = _now()
        session = Session(
            id=session_id,
            name=name or default_session_name(now),
            status=SessionStatus.WAITING,
            created_at=now,
        )
        await self._save(session)

        logger.info(f"Created session {session_id} ({session.name})")
        return session

    async def start_session(
        self,
        name: Optional[str] = None,
        creator_nickname: Optional[str] = None,
        creator_agent_ref: Optional[str] = None,
    ) -> CreatedSession:
        """建立牌局；有給 creator_nickname 時，建立者直接成為第一位玩家"""
        session = await self.create(name)
        if not creator_nickname:
            return CreatedSession(session_id=session.id, session=session)

        joined = await self.join(session.id, creator_nickname, creator_agent_ref)
        session = await self._load(session.id)
        return CreatedSession(session_id=session.id, session=session, player=joined.player)

    async def join(
        self,
        session_id: str,
        nickname: Optional[str] = None,
        agent_ref: Optional[str] = None,
        subscriber: Optional[Subscriber] = None,
    ) -> JoinResult:
        """
        玩家加入牌局

        流程：
        1. 讀取牌局並檢查狀態
        2. 建立玩家（ID 一律由 server 產生）並加入名單
        3. 寫回牌局
        4. 把連線登記為牌局的 subscriber，廣播 playerJoined

        注意：
            - 加入不會改變牌局狀態（waiting 仍是 waiting）

        異常：
            SessionNotFound: 牌局不存在
            InvalidState: 牌局已結束
        """
        async with self._locks.with_session_lock(session_id):
            session = await self._load(session_id)
            self._require_open(session)

            player = Player(
                id=str(uuid.uuid4()),
                nickname=nickname or generate_nickname(),
                agent_ref=agent_ref,
                joined_at=_now(),
            )
            session.players.append(player)
            await self._save(session)

            if subscriber is not None:
                self._broadcaster.subscribe(session_id, subscriber)

            result = JoinResult(player=player, roster=session.players)
            await self._broadcaster.publish(session_id, "playerJoined", result.to_wire())

        logger.info(f"Player {player.id} ({player.nickname}) joined session {session_id}")
        return result

    async def buy_in(
        self,
        session_id: str,
        player_id: str,
        amount: float,
        note: Optional[str] = None,
    ) -> BuyInResult:
        """
        買入籌碼

        流程（順序固定）：
        1. 累加玩家的 buy_in，第一次遊戲指令時 waiting -> playing
        2. 寫回牌局
        3. 在交易日誌新增一筆 buyin
        4. 廣播 buyIn

        兩次寫入不在同一個 transaction 內；若在 2 和 3 之間中斷，
        reconcile() 會以交易日誌為準修正 buy_in。

        異常：
            SessionNotFound / PlayerNotFound: 牌局或玩家不存在
            InvalidState: 牌局已結束
            InvalidInput: 金額為負數或非有限數
        """
        async with self._locks.with_session_lock(session_id):
            session = await self._load(session_id)
            player = self._require_player(session, player_id)
            self._require_open(session)
            validate_entry(TransactionKind.BUY_IN, amount)

            player.buy_in += float(amount)
            if session.status == SessionStatus.WAITING:
                session.status = SessionStatus.PLAYING
            await self._save(session)

            tx = await self._ledger.record(session_id, player_id, TransactionKind.BUY_IN, amount, note)

            result = BuyInResult(player_id=player_id, player=player, amount=tx.amount, note=tx.note)
            await self._broadcaster.publish(session_id, "buyIn", result.to_wire())

        logger.info(f"Player {player.nickname} bought in {format_amount(tx.amount)} in session {session_id}")
        return result

    async def record_result(
        self,
        session_id: str,
        player_id: str,
        kind: Union[str, TransactionKind],
        amount: float,
        note: Optional[str] = None,
    ) -> ResultRecord:
        """
        記錄輸贏（只寫交易日誌，不改玩家文件上的任何累計值）

        異常：
            SessionNotFound / PlayerNotFound: 牌局或玩家不存在
            InvalidState: 牌局已結束
            InvalidInput: kind 不是 win / loss，或金額不合法
        """
        async with self._locks.with_session_lock(session_id):
            session = await self._load(session_id)
            player = self._require_player(session, player_id)
            self._require_open(session)

            kind = validate_entry(kind, amount)
            if kind == TransactionKind.BUY_IN:
                raise InvalidInput("Result kind must be 'win' or 'loss'")

            if session.status == SessionStatus.WAITING:
                session.status = SessionStatus.PLAYING
                await self._save(session)

            tx = await self._ledger.record(session_id, player_id, kind, amount, note)

            result = ResultRecord(
                player_id=player_id,
                player=player,
                kind=kind,
                amount=tx.amount,
                note=tx.note,
            )
            await self._broadcaster.publish(session_id, "recordResult", result.to_wire())

        logger.info(f"Player {player.nickname} {kind.value} {format_amount(tx.amount)} in session {session_id}")
        return result

    async def finalize(self, session_id: str, final_chips_by_player: Dict[str, float]) -> Settlement:
        """
        結算牌局（狀態轉換 -> ended）

        規則：
        - profit = final_chips - buy_in
        - 沒有出現在 final_chips_by_player 的玩家，final_chips / profit 保持空值（不是 0）
        - 沒有玩家的牌局也可以結算（空的結算表）

        返回：
            Settlement（結算後的牌局 + 每位玩家的結算列）

        異常：
            SessionNotFound: 牌局不存在
            AlreadyEnded: 已經結算過（牌局文件不會被改動）
            PlayerNotFound: final_chips_by_player 內有不在名單上的玩家
            InvalidInput: 剩餘籌碼為負數或非有限數
        """
        async with self._locks.with_session_lock(session_id):
            session = await self._load(session_id)
            if session.status == SessionStatus.ENDED:
                raise AlreadyEnded(session_id)

            final_chips: Dict[str, float] = {}
            for player_id, amount in (final_chips_by_player or {}).items():
                self._require_player(session, player_id)
                final_chips[player_id] = validate_amount(amount, label=f"Final chips for player {player_id}")

            for player in session.players:
                if player.id in final_chips:
                    player.final_chips = final_chips[player.id]
                    player.profit = player.final_chips - player.buy_in

            session.status = SessionStatus.ENDED
            session.ended_at = _now()
            session.final_chips = final_chips
            await self._save(session)

            settlement = Settlement(
                session=session,
                summary=[
                    SettlementEntry(
                        player_id=p.id,
                        nickname=p.nickname,
                        buy_in=p.buy_in,
                        final_chips=p.final_chips,
                        profit=p.profit,
                    )
                    for p in session.players
                ],
            )
            await self._broadcaster.publish(session_id, "sessionEnded", settlement.to_wire())

        logger.info(f"Session {session_id} ended with {len(session.players)} players")
        return settlement

    def leave(self, subscriber: Subscriber) -> Optional[str]:
        """連線離開牌局：只取消訂閱，玩家紀錄保留（結算仍需要）"""
        session_id = self._broadcaster.unsubscribe(subscriber)
        if session_id is not None:
            logger.info(f"Subscriber left session {session_id}")
        return session_id

    async def reconcile(self, session_id: str) -> List[str]:
        """
        以交易日誌為準，修正玩家文件上的 buy_in

        用途：
            buy_in() 寫完牌局、寫交易之前中斷時，兩邊會不一致

        返回：
            被修正的玩家 ID 列表

        異常：
            SessionNotFound: 牌局不存在
            InvalidState: 牌局已結束（結算後不可修改）
        """
        async with self._locks.with_session_lock(session_id):
            session = await self._load(session_id)
            self._require_open(session)

            corrected = []
            for player in session.players:
                totals = await self._ledger.totals(session_id, player.id)
                if not math.isclose(totals.buy_in, player.buy_in, abs_tol=1e-9):
                    logger.warning(
                        f"Buy-in drift for player {player.id} in session {session_id}: "
                        f"document={player.buy_in}, ledger={totals.buy_in}"
                    )
                    player.buy_in = totals.buy_in
                    corrected.append(player.id)

            if corrected:
                await self._save(session)

        return corrected

    # ============ 查詢 ============

    async def get(self, session_id: str) -> Session:
        """
        取得牌局

        異常：
            SessionNotFound: 牌局不存在
        """
        return await self._load(session_id)

    async def history(self, session_id: str, player_id: str) -> List[Transaction]:
        return await self._ledger.history(session_id, player_id)

    async def standings(self, session_id: str) -> List[Standing]:
        """每位玩家目前的買入與輸贏（輸贏從交易日誌即時計算）"""
        session = await self._load(session_id)

        standings = []
        for player in session.players:
            totals = await self._ledger.totals(session_id, player.id)
            standings.append(Standing(
                player_id=player.id,
                nickname=player.nickname,
                buy_in=player.buy_in,
                wins=totals.wins,
                losses=totals.losses,
                net=totals.net,
            ))
        return standings
