"""
Session API Endpoints

職責：
1. 建立牌局（可選擇讓建立者直接加入）
2. 查詢牌局、即時戰況
3. 以交易日誌修正買入金額
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
import logging

from api import get_manager
from core.exceptions import InvalidState, SessionNotFound, StorageUnavailable
from core.session_manager import SessionManager
from schemas import CreatedSession, CreateSessionRequest, ReconcileResponse, Session, Standing

router = APIRouter(prefix="/api/sessions", tags=["sessions"])
logger = logging.getLogger(__name__)


@router.post("", response_model=CreatedSession)
async def create_session(
    body: Optional[CreateSessionRequest] = None,
    manager: SessionManager = Depends(get_manager)
):
    """
    建立牌局

    參數（皆可省略）：
        name: 牌局名稱，預設「Poker Night YYYY-MM-DD」
        creatorNickname: 建立者暱稱；有給時建立者會成為第一位玩家
        creatorAgentRef: 建立者的外部 agent 參照

    返回：
        - sessionId: 牌局代碼
        - session: 牌局文件
        - player: 建立者（只有給 creatorNickname 時才有）
    """
    body = body or CreateSessionRequest()
    try:
        return await manager.start_session(body.name, body.creator_nickname, body.creator_agent_ref)

    except StorageUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to create session: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{session_id}", response_model=Session)
async def get_session(session_id: str, manager: SessionManager = Depends(get_manager)):
    """取得牌局文件（不存在時 404）"""
    try:
        return await manager.get(session_id)

    except SessionNotFound:
        raise HTTPException(status_code=404, detail="Session not found")
    except StorageUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to get session: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{session_id}/standings", response_model=List[Standing])
async def get_standings(session_id: str, manager: SessionManager = Depends(get_manager)):
    """
    即時戰況

    返回每位玩家：
        - buyIn: 累計買入
        - wins / losses: 從交易紀錄計算的輸贏總和
        - net: wins - losses
    """
    try:
        return await manager.standings(session_id)

    except SessionNotFound:
        raise HTTPException(status_code=404, detail="Session not found")
    except StorageUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to get standings: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{session_id}/reconcile", response_model=ReconcileResponse)
async def reconcile_session(session_id: str, manager: SessionManager = Depends(get_manager)):
    """以交易日誌為準修正玩家的買入金額，回傳被修正的玩家 ID"""
    try:
        corrected = await manager.reconcile(session_id)
        return ReconcileResponse(corrected=corrected)

    except SessionNotFound:
        raise HTTPException(status_code=404, detail="Session not found")
    except InvalidState as e:
        raise HTTPException(status_code=409, detail=str(e))
    except StorageUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to reconcile session: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")
