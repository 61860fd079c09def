"""
Timer（回合）API Endpoints

- GET  /api/timer：目前回合狀態，所有前端都會輪詢
- POST /api/timer：管理員開始 / 結束回合
"""
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import SQLAlchemyError
import logging

from models import RoundState
from schemas import RoundControl, RoundControlResponse, RoundStateResponse
from core.round_controller import RoundStateController
from core.exceptions import InvalidRoundAction, StorageError
from api.dependencies import get_round_controller, require_admin_token

router = APIRouter(prefix="/api/timer", tags=["timer"])
logger = logging.getLogger(__name__)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite 讀回來的是 naive datetime，寫入時一律是 UTC
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _to_response(state: RoundState) -> RoundStateResponse:
    return RoundStateResponse(
        started=bool(state.started),
        start_time=_as_utc(state.start_time),
        end_time=_as_utc(state.end_time),
        version=state.version or 0
    )


@router.get("", response_model=RoundStateResponse)
def get_timer(controller: RoundStateController = Depends(get_round_controller)):
    """
    取得目前回合狀態

    返回：
        - started: 排行榜是否即時刷新中
        - start_time / end_time: 最近一次轉換的時間（UTC）
        - version: 每次 start/end 都會增加
    """
    try:
        return _to_response(controller.get_state())

    except StorageError as e:
        logger.error(f"Failed to read round state: {e}", exc_info=True)
        raise HTTPException(status_code=503, detail="Storage unavailable")


@router.post(
    "",
    response_model=RoundControlResponse,
    dependencies=[Depends(require_admin_token)]
)
def control_timer(
    data: RoundControl,
    controller: RoundStateController = Depends(get_round_controller)
):
    """
    開始或結束回合（管理員 endpoint）

    Body：
        {"action": "start"} 或 {"action": "end"}

    兩個動作都是冪等的；其他 action 回傳 400。
    """
    try:
        state = controller.apply(data.action)
        return RoundControlResponse(message="Timer updated", state=_to_response(state))

    except InvalidRoundAction as e:
        raise HTTPException(status_code=400, detail=str(e))
    except (StorageError, SQLAlchemyError) as e:
        logger.error(f"Failed to update round state: {e}", exc_info=True)
        raise HTTPException(status_code=503, detail="Storage unavailable")
    except Exception as e:
        logger.error(f"Failed to update timer: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")
