"""
自定義異常類別

集中管理所有業務邏輯異常，方便 API 層統一處理
（HTTP 轉成狀態碼，WebSocket 轉成 error frame）
"""


class LedgerException(Exception):
    """所有記帳異常的基類"""
    pass


# ============ 找不到資源 ============

class NotFound(LedgerException):
    """牌局或玩家不存在"""
    pass


class SessionNotFound(NotFound):
    """牌局不存在"""
    def __init__(self, session_id):
        self.session_id = session_id
        super().__init__(f"Session {session_id} not found")


class PlayerNotFound(NotFound):
    """玩家不存在（或不屬於這個牌局）"""
    def __init__(self, player_id):
        self.player_id = player_id
        super().__init__(f"Player {player_id} not found")


# ============ 狀態 / 輸入異常 ============

class InvalidState(LedgerException):
    """目前的牌局狀態不允許這個指令（例如：加入已結束的牌局）"""
    pass


class AlreadyEnded(InvalidState):
    """牌局已經結算過了，不可重複結算"""
    def __init__(self, session_id):
        self.session_id = session_id
        super().__init__(f"Session {session_id} has already ended")


class InvalidInput(LedgerException):
    """金額為負數或非有限數、交易類型不合法"""
    pass


# ============ 儲存層異常 ============

class StorageUnavailable(LedgerException):
    """儲存後端暫時無法連線"""
    pass
