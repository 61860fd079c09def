"""
共用的 FastAPI dependencies

- 組裝：每個請求建立 round controller 與 leaderboard engine
- 認證：寫入端點的 Bearer token 檢查
"""
from typing import Optional
import logging
import secrets

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from database import get_db, get_settings
from core.exceptions import NotAuthenticated
from core.leaderboard_engine import LeaderboardEngine
from core.round_controller import RoundStateController
from services.github_service import get_metric_source

logger = logging.getLogger(__name__)


def get_round_controller(db: Session = Depends(get_db)) -> RoundStateController:
    return RoundStateController(db)


def get_leaderboard_engine(
    db: Session = Depends(get_db),
    round_controller: RoundStateController = Depends(get_round_controller),
    metric_source=Depends(get_metric_source)
) -> LeaderboardEngine:
    settings = get_settings()
    return LeaderboardEngine(
        db,
        round_controller,
        metric_source,
        max_workers=settings.refresh_max_workers,
        require_active_round_for_registration=settings.require_active_round_for_registration
    )


def check_bearer_token(authorization: Optional[str], expected: Optional[str]) -> None:
    """
    驗證 ``Authorization: Bearer <token>`` header

    ``expected`` 未設定（None 或空字串）時不檢查。

    異常：
        NotAuthenticated: 缺少 header、scheme 不是 Bearer，或 token 不符
    """
    if not expected:
        return
    if not authorization:
        raise NotAuthenticated("Missing Authorization header")

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise NotAuthenticated("Expected a Bearer token")
    if not secrets.compare_digest(token.strip().encode(), expected.encode()):
        raise NotAuthenticated("Invalid token")


def _unauthorized(e: NotAuthenticated) -> HTTPException:
    return HTTPException(
        status_code=401,
        detail=str(e),
        headers={"WWW-Authenticate": "Bearer"}
    )


def require_participant_token(authorization: Optional[str] = Header(None)) -> None:
    try:
        check_bearer_token(authorization, get_settings().api_token)
    except NotAuthenticated as e:
        logger.warning(f"Rejected participant write: {e}")
        raise _unauthorized(e)


def require_admin_token(authorization: Optional[str] = Header(None)) -> None:
    try:
        check_bearer_token(authorization, get_settings().admin_token)
    except NotAuthenticated as e:
        logger.warning(f"Rejected admin write: {e}")
        raise _unauthorized(e)
