"""
命名服務：生成牌局代碼、玩家預設暱稱、牌局預設名稱

純計算邏輯，不涉及狀態轉換
"""
import random
import string
from datetime import datetime

NICKNAME_PREFIXES = ["Crayfish", "Shark", "Lucky Star", "Card Sharp", "High Roller", "Dealer", "Rookie", "Old Hand"]


def generate_session_code() -> str:
    """
    生成隨機的 6 位牌局代碼（大寫字母 + 數字）

    範例：K3Z9QA, 7HB2LX

    注意：
    - 不檢查唯一性（由呼叫者負責）
    - 36^6 = 2,176,782,336 種可能，碰撞機率極低
    """
    return ''.join(random.choices(string.ascii_uppercase + string.digits, k=6))


def generate_nickname() -> str:
    """
    為沒有提供暱稱的玩家生成預設暱稱

    格式：「前綴 #N」，N 為 0-9999
    範例：Shark #4821, Rookie #17

    注意：
    - 不保證唯一，玩家以 ID 區分，暱稱只用於顯示
    """
    return f"{random.choice(NICKNAME_PREFIXES)} #{random.randrange(10000)}"


def default_session_name(created_at: datetime) -> str:
    return f"Poker Night {created_at:%Y-%m-%d}"
