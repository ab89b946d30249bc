"""
服務層

這個 package 包含純計算邏輯，不負責狀態轉換：
- NamingService：牌局代碼、玩家暱稱、牌局名稱的生成
"""
