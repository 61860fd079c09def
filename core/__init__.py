"""
核心業務邏輯層

這個 package 包含排行榜的有狀態部分，包括：
- RoundStateController：回合開始 / 結束開關
- LeaderboardEngine：追蹤人數刷新、註冊、排行榜
- Locks：並發控制工具
"""
