"""
服務層

這個 package 包含不負責狀態轉換的邏輯：
- RankingService：排名計算
- GitHubService：透過 GitHub REST API 取得追蹤人數
"""
