"""
User（參賽者）API Endpoints

職責：
1. 排行榜讀取（回合進行中時會從 GitHub 刷新）
2. 參賽者註冊
"""
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import SQLAlchemyError
import logging

from schemas import ParticipantRegister, ParticipantResponse, StandingsEntryResponse
from core.leaderboard_engine import LeaderboardEngine
from core.exceptions import InvalidParticipantData, RoundNotStarted, StorageError
from api.dependencies import get_leaderboard_engine, require_participant_token

router = APIRouter(prefix="/api/users", tags=["users"])
logger = logging.getLogger(__name__)


@router.get("", response_model=List[StandingsEntryResponse])
def list_users(engine: LeaderboardEngine = Depends(get_leaderboard_engine)):
    """
    取得目前排行榜（追蹤人數由高到低）

    前端會輪詢這個 endpoint。回合進行中時每次呼叫都會從 GitHub
    刷新所有參賽者；否則直接回傳儲存的值。

    返回：
        [{rank, github_id, username, followers}, ...]，依名次排序
    """
    try:
        standings = engine.list_standings()
        return [
            StandingsEntryResponse(
                rank=entry.rank,
                github_id=entry.github_id,
                username=entry.username,
                followers=entry.followers
            )
            for entry in standings
        ]

    except StorageError as e:
        logger.error(f"Failed to load standings: {e}", exc_info=True)
        raise HTTPException(status_code=503, detail="Storage unavailable")
    except Exception as e:
        logger.error(f"Failed to fetch users: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch users")


@router.post(
    "",
    response_model=ParticipantResponse,
    dependencies=[Depends(require_participant_token)]
)
def register_user(
    data: ParticipantRegister,
    engine: LeaderboardEngine = Depends(get_leaderboard_engine)
):
    """
    註冊參賽者（已存在則更新 username）

    前置條件：
    - github_id 與 username 不可為空
    - 啟用回合限制時，回合必須進行中

    返回：
        - message: "User saved"
        - 儲存後的 github_id / username / followers
    """
    try:
        participant = engine.register_participant(data.github_id, data.username)

        return ParticipantResponse(
            message="User saved",
            github_id=participant.github_id,
            username=participant.username,
            followers=participant.followers
        )

    except InvalidParticipantData as e:
        raise HTTPException(status_code=400, detail=str(e))
    except RoundNotStarted as e:
        raise HTTPException(status_code=409, detail=str(e))
    except (StorageError, SQLAlchemyError) as e:
        logger.error(f"Failed to save user: {e}", exc_info=True)
        raise HTTPException(status_code=503, detail="Storage unavailable")
    except Exception as e:
        logger.error(f"Failed to save user: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to save user")
