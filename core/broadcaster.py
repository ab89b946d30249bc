"""
Event Broadcaster：把事件送給訂閱某個牌局的所有連線

訂閱登記表獨立於傳輸層自己的連線管理，測試時可以直接塞假的 subscriber。
subscriber 只需要有 async send_json(message)，FastAPI 的 WebSocket 即符合。
"""
import logging
from typing import Any, Dict, List, Optional, Protocol

logger = logging.getLogger(__name__)


class Subscriber(Protocol):
    async def send_json(self, data: Any) -> None:
        ...


class Broadcaster:
    """
    訂閱登記表 + fan-out

    規則：
    - 一個 subscriber 同時只跟隨一個牌局（重新訂閱會自動離開舊的）
    - 送不出去的 subscriber 直接移除，不重試
    - publish 永遠不會讓原本的指令失敗
    """

    def __init__(self) -> None:
        self._subscribers: Dict[str, List[Subscriber]] = {}
        self._session_of: Dict[int, str] = {}

    def subscribe(self, session_id: str, subscriber: Subscriber) -> None:
        current = self._session_of.get(id(subscriber))
        if current == session_id:
            return
        if current is not None:
            self.unsubscribe(subscriber)

        self._subscribers.setdefault(session_id, []).append(subscriber)
        self._session_of[id(subscriber)] = session_id

    def unsubscribe(self, subscriber: Subscriber) -> Optional[str]:
        """移除 subscriber，回傳它原本跟隨的牌局 ID（沒有則 None）"""
        session_id = self._session_of.pop(id(subscriber), None)
        if session_id is None:
            return None

        # WebSocket 是 Mapping，== 會比較 scope，只能用 identity 比對
        members = [m for m in self._subscribers.get(session_id, []) if m is not subscriber]
        self._subscribers[session_id] = members
        if not members:
            self._subscribers.pop(session_id, None)
        return session_id

    def subscribers(self, session_id: str) -> List[Subscriber]:
        return list(self._subscribers.get(session_id, []))

    def session_of(self, subscriber: Subscriber) -> Optional[str]:
        return self._session_of.get(id(subscriber))

    async def publish(self, session_id: str, event: str, payload: dict) -> int:
        """
        廣播事件給牌局內所有 subscriber

        參數：
            session_id: 牌局 ID
            event: 事件名稱（playerJoined / buyIn / recordResult / sessionEnded）
            payload: 已序列化的資料

        返回：
            成功送達的 subscriber 數量
        """
        message = {"event": event, "data": payload}
        delivered = 0
        dead = []

        for subscriber in self.subscribers(session_id):
            try:
                await subscriber.send_json(message)
                delivered += 1
            except Exception as e:
                logger.warning(f"Dropping subscriber of session {session_id} after failed send: {e}")
                dead.append(subscriber)

        for subscriber in dead:
            self.unsubscribe(subscriber)

        return delivered
