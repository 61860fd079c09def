"""
Request / Response Schemas（Pydantic）
"""
from datetime import datetime
from typing import Optional, Union

from pydantic import BaseModel, field_validator


# ============ Participant 相關 ============

class ParticipantRegister(BaseModel):
    # 設為 Optional：缺欄位時走 400 而不是 422
    github_id: Optional[Union[str, int]] = None
    username: Optional[str] = None

    @field_validator("github_id", mode="before")
    @classmethod
    def _coerce_github_id(cls, v):
        # 部分前端會把 GitHub id 當成 JSON 數字送來
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v


class StandingsEntryResponse(BaseModel):
    rank: int
    github_id: str
    username: str
    followers: int


class ParticipantResponse(BaseModel):
    message: str
    github_id: str
    username: str
    followers: int


# ============ Round 相關 ============

class RoundControl(BaseModel):
    action: Optional[str] = None


class RoundStateResponse(BaseModel):
    started: bool
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    version: int = 0


class RoundControlResponse(BaseModel):
    message: str
    state: RoundStateResponse
