"""
ORM 模型

- Participant：已註冊的 GitHub 帳號與其追蹤人數
- RoundState：唯一一筆，描述回合是否進行中
"""
from sqlalchemy import Boolean, Column, DateTime, Integer, String

from database import Base


ROUND_STATE_ID = 1


class Participant(Base):
    __tablename__ = "participants"

    # 自增主鍵保留註冊順序，同分時用來穩定排序
    id = Column(Integer, primary_key=True, autoincrement=True)
    github_id = Column(String(64), unique=True, nullable=False, index=True)
    username = Column(String(255), nullable=False)
    followers = Column(Integer, nullable=False, default=0)

    def __repr__(self):
        return f"<Participant {self.github_id} ({self.username}) followers={self.followers}>"


class RoundState(Base):
    __tablename__ = "round_state"

    id = Column(Integer, primary_key=True, default=ROUND_STATE_ID)
    started = Column(Boolean, nullable=False, default=False)
    start_time = Column(DateTime(timezone=True), nullable=True)
    end_time = Column(DateTime(timezone=True), nullable=True)
    # 每次 start/end 都 +1，讓輪詢的前端知道狀態變了
    version = Column(Integer, nullable=False, default=0)

    def __repr__(self):
        return f"<RoundState started={self.started} version={self.version}>"
