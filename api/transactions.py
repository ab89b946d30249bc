"""
Transaction API Endpoints

職責：查詢某位玩家在某個牌局的交易紀錄
"""
from typing import List

from fastapi import APIRouter, Depends, HTTPException
import logging

from api import get_manager
from core.exceptions import StorageUnavailable
from core.session_manager import SessionManager
from schemas import Transaction

router = APIRouter(prefix="/api/transactions", tags=["transactions"])
logger = logging.getLogger(__name__)


@router.get("/{session_id}/{player_id}", response_model=List[Transaction])
async def list_transactions(
    session_id: str,
    player_id: str,
    manager: SessionManager = Depends(get_manager)
):
    """
    取得玩家的交易紀錄（舊到新）

    沒有任何交易時回傳空 list，不是 404
    """
    try:
        return await manager.history(session_id, player_id)

    except StorageUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to list transactions: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")
