"""
核心業務邏輯層

這個 package 包含所有核心業務邏輯，包括：
- Storage：牌局文件與交易日誌的儲存介面
- Ledger：交易日誌（只新增）
- Session Manager：牌局生命週期與狀態機
- Broadcaster：事件 fan-out
- Locks：並發控制工具
"""
