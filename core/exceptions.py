"""
自定義異常類別

集中管理所有業務邏輯異常，方便 API 層統一處理
"""


class LeaderboardException(Exception):
    """所有排行榜異常的基類"""
    pass


# ============ 輸入驗證異常 ============

class InvalidParticipantData(LeaderboardException):
    """註冊資料缺少 github_id 或 username"""
    pass


class InvalidRoundAction(LeaderboardException):
    """回合控制動作不是 'start' 或 'end'"""
    def __init__(self, action):
        self.action = action
        super().__init__(f"Invalid action {action!r}, expected 'start' or 'end'")


# ============ Round 相關異常 ============

class RoundNotStarted(LeaderboardException):
    """註冊需要進行中的回合，但目前沒有"""
    pass


# ============ 外部服務異常 ============

class UpstreamRefreshError(LeaderboardException):
    """無法取得某位參賽者的追蹤人數"""
    def __init__(self, participant, reason):
        self.participant = participant
        self.reason = reason
        super().__init__(f"Refresh failed for {participant}: {reason}")


class StorageError(LeaderboardException):
    """資料庫無法連線，或讀寫失敗"""
    pass


# ============ 認證異常 ============

class NotAuthenticated(LeaderboardException):
    """寫入端點缺少 Bearer token 或 token 錯誤"""
    pass
