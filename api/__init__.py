"""
API 層

- sessions：建立 / 查詢牌局
- transactions：查詢玩家交易紀錄
- websocket：即時指令與事件廣播
"""
from fastapi import Request

from core.session_manager import SessionManager


def get_manager(request: Request) -> SessionManager:
    """FastAPI dependency：取得 app 啟動時建立的 SessionManager"""
    return request.app.state.manager
