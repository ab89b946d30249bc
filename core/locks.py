"""
並發控制工具

每個牌局一把 asyncio.Lock，讓同一個牌局的指令依序執行
（讀取 → 修改 → 寫回 → 廣播 全程持有），防止 lost update。

不同牌局之間互不阻塞。
"""
import asyncio
import contextlib
from typing import AsyncContextManager, AsyncIterator, Dict


class SessionLocks:
    """
    牌局鎖登記表

    enabled=False 時不做任何序列化，重現舊版行為：
    兩個同時進行的 read-modify-write 可能互相覆蓋（lost update）。
    """

    def __init__(self, enabled: bool = True) -> None:
        self.enabled = enabled
        self._locks: Dict[str, asyncio.Lock] = {}
        # 持有 + 等待中的指令數；歸零時移除該牌局的鎖，不存在的牌局 ID 不會留下紀錄
        self._users: Dict[str, int] = {}

    def active(self) -> int:
        """目前仍有指令持有或等待的牌局數"""
        return len(self._locks)

    def with_session_lock(self, session_id: str) -> AsyncContextManager:
        """
        取得一個牌局的鎖

        範例：
            async with locks.with_session_lock(session_id):
                session = await load(session_id)
                session.players.append(player)
                await save(session)

        參數：
            session_id: 牌局 ID

        返回：
            async context manager（關閉序列化時為 nullcontext）
        """
        if not self.enabled:
            return contextlib.nullcontext()
        return self._hold(session_id)

    @contextlib.asynccontextmanager
    async def _hold(self, session_id: str) -> AsyncIterator[None]:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = self._locks[session_id] = asyncio.Lock()
        self._users[session_id] = self._users.get(session_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[session_id] -= 1
            if self._users[session_id] == 0:
                del self._users[session_id]
                del self._locks[session_id]
