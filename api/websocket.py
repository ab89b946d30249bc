"""
WebSocket Endpoint：即時指令與事件廣播

每個 frame 都是 {"event": 名稱, "data": {...}}

Inbound：
    joinSession   {sessionId, nickname?, agentRef?}
    buyIn         {sessionId, playerId, amount, note?}
    recordResult  {sessionId, playerId, kind, amount, note?}
    finalize      {sessionId, finalChipsByPlayer}
    leaveSession  {}

Outbound（牌局內所有連線）：
    playerJoined / buyIn / recordResult / sessionEnded

Outbound（只給發出指令的連線）：
    sessionJoined {player, session}   加入成功後告知自己的玩家資料
    error         {message}           指令失敗（不會有任何廣播）
"""
import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from core.exceptions import LedgerException
from core.session_manager import SessionManager
from schemas import (
    BuyInCommand,
    FinalizeCommand,
    JoinSessionCommand,
    RecordResultCommand,
    WebSocketFrame,
)

router = APIRouter(tags=["websocket"])
logger = logging.getLogger(__name__)


async def send_error(websocket: WebSocket, message: str) -> None:
    await websocket.send_json({"event": "error", "data": {"message": message}})


def describe_validation_error(e: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in err['loc']) or 'payload'}: {err['msg']}"
        for err in e.errors()
    )


async def handle_join(manager: SessionManager, websocket: WebSocket, data: dict) -> None:
    command = JoinSessionCommand.model_validate(data)
    result = await manager.join(command.session_id, command.nickname, command.agent_ref, subscriber=websocket)
    session = await manager.get(command.session_id)
    await websocket.send_json({
        "event": "sessionJoined",
        "data": {"player": result.player.to_wire(), "session": session.to_wire()},
    })


async def handle_buy_in(manager: SessionManager, websocket: WebSocket, data: dict) -> None:
    command = BuyInCommand.model_validate(data)
    await manager.buy_in(command.session_id, command.player_id, command.amount, command.note)


async def handle_record_result(manager: SessionManager, websocket: WebSocket, data: dict) -> None:
    command = RecordResultCommand.model_validate(data)
    await manager.record_result(command.session_id, command.player_id, command.kind, command.amount, command.note)


async def handle_finalize(manager: SessionManager, websocket: WebSocket, data: dict) -> None:
    command = FinalizeCommand.model_validate(data)
    await manager.finalize(command.session_id, command.final_chips_by_player)


async def handle_leave(manager: SessionManager, websocket: WebSocket, data: dict) -> None:
    manager.leave(websocket)


HANDLERS = {
    "joinSession": handle_join,
    "buyIn": handle_buy_in,
    "recordResult": handle_record_result,
    "finalize": handle_finalize,
    "leaveSession": handle_leave,
}


async def dispatch(manager: SessionManager, websocket: WebSocket, raw: str) -> None:
    """
    處理一個 inbound frame

    所有錯誤都只回傳給發出指令的連線，不會中斷連線
    """
    try:
        frame = WebSocketFrame.model_validate(json.loads(raw))
    except (ValueError, ValidationError):
        await send_error(websocket, "Malformed message: expected {\"event\": ..., \"data\": {...}}")
        return

    handler = HANDLERS.get(frame.event)
    if handler is None:
        await send_error(websocket, f"Unknown event: {frame.event}")
        return

    try:
        await handler(manager, websocket, frame.data)
    except ValidationError as e:
        await send_error(websocket, f"Invalid {frame.event} payload: {describe_validation_error(e)}")
    except LedgerException as e:
        logger.info(f"Rejected {frame.event}: {e}")
        await send_error(websocket, str(e))
    except Exception as e:
        logger.error(f"Failed to handle {frame.event}: {e}", exc_info=True)
        await send_error(websocket, "Internal error")


@router.websocket("/ws")
async def ledger_socket(websocket: WebSocket):
    """即時連線：接收指令、轉給 SessionManager，事件由 Broadcaster 推送"""
    manager: SessionManager = websocket.app.state.manager
    await websocket.accept()
    logger.info("New WebSocket connection")

    try:
        while True:
            raw = await websocket.receive_text()
            await dispatch(manager, websocket, raw)
    except WebSocketDisconnect:
        logger.info("WebSocket disconnected")
    finally:
        # 斷線只取消訂閱，玩家紀錄保留
        manager.leave(websocket)
