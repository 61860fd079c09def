"""
Round State Controller：管理唯一的比賽回合開關

職責：
1. 回報回合是否進行中
2. 開始回合
3. 結束回合

原則：
- 只有兩種狀態（未開始 <-> 進行中），兩個轉換隨時都合法
- 每次轉換在返回前就已 commit
- 不在行程內快取，每次呼叫都讀資料庫
"""
from datetime import datetime, timezone
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
import logging

from models import RoundState, ROUND_STATE_ID
from core.locks import with_round_state_lock
from core.exceptions import InvalidRoundAction, StorageError
from database import transactional

logger = logging.getLogger(__name__)

ROUND_ACTIONS = ("start", "end")


def _now() -> datetime:
    return datetime.now(timezone.utc)


class RoundStateController:
    """回合生命週期管理器（綁定單一請求的 Session）"""

    def __init__(self, db: Session):
        self.db = db

    def get_state(self) -> RoundState:
        """
        取得目前儲存的回合狀態

        返回：
            唯一的 RoundState；從未開始過回合時，
            回傳一個未儲存的預設值（started=False）

        異常：
            StorageError: 無法讀取資料庫
        """
        try:
            state = self.db.query(RoundState).filter(
                RoundState.id == ROUND_STATE_ID
            ).first()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to read round state: {e}") from e

        if state is None:
            return RoundState(
                id=ROUND_STATE_ID,
                started=False,
                start_time=None,
                end_time=None,
                version=0
            )
        return state

    def _lock_or_create(self) -> RoundState:
        state = with_round_state_lock(self.db).first()
        if state is not None:
            return state

        state = RoundState(id=ROUND_STATE_ID, started=False, version=0)
        self.db.add(state)
        try:
            self.db.flush()
        except IntegrityError:
            # 另一個管理員同時建立了這一筆：重新讀取並鎖定
            self.db.rollback()
            logger.info("Round state row created concurrently, re-reading")
            state = with_round_state_lock(self.db).one()
        return state

    @transactional
    def start(self) -> RoundState:
        """
        開始（或重新開始）回合

        效果：
            started=True, start_time=now, end_time=None, version+1

        已經進行中時再呼叫，只會更新 start_time。
        """
        state = self._lock_or_create()
        was_started = bool(state.started)

        state.started = True
        state.start_time = _now()
        state.end_time = None
        state.version = (state.version or 0) + 1

        if was_started:
            logger.info(f"Round restarted, start_time refreshed (version={state.version})")
        else:
            logger.info(f"Round started (version={state.version})")
        return state

    @transactional
    def end(self) -> RoundState:
        """
        結束回合

        效果：
            started=False, end_time=now, version+1

        回合未開始時呼叫不算錯誤。
        """
        state = self._lock_or_create()

        state.started = False
        state.end_time = _now()
        state.version = (state.version or 0) + 1

        logger.info(f"Round ended (version={state.version})")
        return state

    def apply(self, action) -> RoundState:
        """
        執行管理員的控制動作

        參數：
            action: "start" 或 "end"

        異常：
            InvalidRoundAction: 其他任何值，不會寫入任何東西
        """
        if action == "start":
            return self.start()
        if action == "end":
            return self.end()
        raise InvalidRoundAction(action)
