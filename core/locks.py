"""
並發控制工具

使用 SELECT ... FOR UPDATE 實現行級鎖（PostgreSQL）。
SQLite 會忽略這個子句，由資料庫本身序列化寫入。

注意：FOR UPDATE 只能鎖住已存在的資料列。
同一筆資料同時被 INSERT 的情況，由呼叫端捕捉 IntegrityError 後重新讀取處理。
"""
from sqlalchemy.orm import Session, Query

from models import Participant, RoundState, ROUND_STATE_ID


def with_round_state_lock(db: Session) -> Query:
    """
    鎖定唯一的 RoundState 資料列

    使用場景：
    - 切換回合狀態時，避免兩個管理員同時按下 start/end 造成 version 交錯

    返回：
        Query object（呼叫 .first() 取得資料列，從未寫入過則為 None）
    """
    return db.query(RoundState).filter(
        RoundState.id == ROUND_STATE_ID
    ).with_for_update(nowait=False)


def with_participant_lock(github_id: str, db: Session) -> Query:
    """
    依 GitHub id 鎖定一位 Participant

    使用場景：
    - 註冊時更新既有參賽者的 username

    參數：
        github_id: GitHub 帳號 id
        db: SQLAlchemy Session

    返回：
        Query object（呼叫 .first() 取得結果）
    """
    return db.query(Participant).filter(
        Participant.github_id == github_id
    ).with_for_update(nowait=False)
