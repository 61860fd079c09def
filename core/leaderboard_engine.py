"""
Leaderboard Engine：追蹤人數刷新與排行榜

職責：
1. 註冊 / 更新參賽者（以 GitHub id upsert）
2. 回合進行中時，從 GitHub 刷新每位參賽者的追蹤人數
3. 依追蹤人數排名

list_standings() 流程：
    載入參賽者 -> 讀取回合狀態 -> （進行中）平行抓取
    -> 逐一寫回有變動的值 -> 穩定排序 -> 指派名次

失敗隔離：
- 單一參賽者刷新失敗，沿用資料庫中的舊值
- 單一參賽者寫入失敗，仍回傳剛抓到的新值
- 只有初始載入或讀取回合狀態失敗，才會讓整個呼叫失敗
"""
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import replace
from typing import List
import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from models import Participant
from core.locks import with_participant_lock
from core.exceptions import (
    InvalidParticipantData,
    RoundNotStarted,
    StorageError,
    UpstreamRefreshError
)
from database import transactional
from services.ranking_service import ParticipantSnapshot, StandingsEntry, rank_participants

logger = logging.getLogger(__name__)


class LeaderboardEngine:
    """
    排行榜的讀取路徑與註冊寫入路徑

    參數：
        db: 本次請求的 SQLAlchemy Session
        round_controller: 提供 get_state()，回傳帶有 ``started`` 的物件
        metric_source: 提供 fetch_followers(snapshot) -> int，
            失敗時拋出 UpstreamRefreshError
        max_workers: 同時發出的 GitHub 請求上限
        require_active_round_for_registration: 沒有進行中的回合時拒絕註冊
    """

    def __init__(
        self,
        db: Session,
        round_controller,
        metric_source,
        max_workers: int = 8,
        require_active_round_for_registration: bool = False
    ):
        self.db = db
        self.round_controller = round_controller
        self.metric_source = metric_source
        self.max_workers = max(1, max_workers)
        self.require_active_round_for_registration = require_active_round_for_registration

    # ============ 讀取路徑 ============

    def _load_participants(self) -> List[ParticipantSnapshot]:
        try:
            rows = self.db.query(Participant).order_by(Participant.id).all()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to load participants: {e}") from e
        return [ParticipantSnapshot.from_row(row) for row in rows]

    def list_standings(self) -> List[StandingsEntry]:
        """
        取得目前排行榜（回合進行中時會先從 GitHub 刷新）

        回合未開始：
            不呼叫 GitHub、不寫資料庫，直接用儲存的值排名

        回合進行中：
            每位參賽者一個 GitHub 請求；有變動的值個別寫回；
            失敗者沿用舊值

        異常：
            StorageError: 無法讀取參賽者或回合狀態
        """
        participants = self._load_participants()
        started = bool(self.round_controller.get_state().started)

        if not started or not participants:
            return rank_participants(participants)

        refreshed = self._refresh_all(participants)
        return rank_participants(refreshed)

    def _refresh_all(self, participants: List[ParticipantSnapshot]) -> List[ParticipantSnapshot]:
        # 只有 HTTP 在 worker thread 執行，Session 留在目前的 thread
        fetched = {}
        failed = 0
        workers = min(self.max_workers, len(participants))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {}
            for idx, participant in enumerate(participants):
                future = executor.submit(self.metric_source.fetch_followers, participant)
                futures[future] = idx

            for future in as_completed(futures):
                idx = futures[future]
                participant = participants[idx]
                try:
                    fetched[idx] = future.result()
                except UpstreamRefreshError as e:
                    failed += 1
                    logger.warning(f"Keeping stored followers for {participant.github_id}: {e}")

        results = []
        updated = 0
        for idx, participant in enumerate(participants):
            if idx not in fetched:
                results.append(participant)
                continue
            followers = fetched[idx]
            if followers != participant.followers:
                self._persist_followers(participant.github_id, followers)
                updated += 1
            results.append(replace(participant, followers=followers))

        logger.info(
            f"Refreshed {len(participants)} participants: "
            f"{updated} changed, {failed} kept stored value"
        )
        return results

    def _persist_followers(self, github_id: str, followers: int) -> None:
        """寫回單一參賽者的人數；失敗只記錄，不拋出"""
        try:
            self.db.query(Participant).filter(
                Participant.github_id == github_id
            ).update({Participant.followers: followers}, synchronize_session=False)
            self.db.commit()
        except SQLAlchemyError as e:
            logger.warning(f"Failed to persist followers for {github_id}: {e}")
            self.db.rollback()

    # ============ 寫入路徑 ============

    def register_participant(self, github_id, username) -> Participant:
        """
        註冊參賽者（已存在則更新 username）

        流程：
        1. 驗證輸入（兩個欄位都不可為空）
        2. 視設定要求回合必須進行中
        3. 新參賽者以 followers=0 建立；既有參賽者只更新 username

        參數：
            github_id: GitHub 帳號 id（str 或 int）
            username: GitHub login

        返回：
            儲存後的 Participant

        異常：
            InvalidParticipantData: github_id 或 username 缺少 / 為空
            RoundNotStarted: 啟用了回合限制且回合尚未開始
        """
        github_id = str(github_id).strip() if github_id is not None else ""
        username = str(username).strip() if username is not None else ""
        if not github_id or not username:
            raise InvalidParticipantData("Missing username or github_id")

        if self.require_active_round_for_registration:
            if not self.round_controller.get_state().started:
                raise RoundNotStarted("Registration opens when the round starts")

        return self._upsert_participant(github_id, username)

    @transactional
    def _upsert_participant(self, github_id: str, username: str) -> Participant:
        participant = with_participant_lock(github_id, self.db).first()
        if participant is not None:
            self._rename(participant, username)
            return participant

        participant = Participant(github_id=github_id, username=username, followers=0)
        self.db.add(participant)
        try:
            self.db.flush()
        except IntegrityError:
            # 同一帳號的另一個請求先 INSERT 了：改為更新那一筆
            self.db.rollback()
            logger.info(f"Participant {github_id} inserted concurrently, updating instead")
            participant = self.db.query(Participant).filter(
                Participant.github_id == github_id
            ).one()
            self._rename(participant, username)
            return participant

        logger.info(f"Registered participant {github_id} ({username})")
        return participant

    def _rename(self, participant: Participant, username: str) -> None:
        if participant.username != username:
            logger.info(
                f"Participant {participant.github_id} renamed "
                f"{participant.username} -> {username}"
            )
        participant.username = username
