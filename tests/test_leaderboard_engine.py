from types import SimpleNamespace

import pytest
from sqlalchemy.exc import SQLAlchemyError

from core.exceptions import InvalidParticipantData, RoundNotStarted, StorageError
from core.leaderboard_engine import LeaderboardEngine
from core.round_controller import RoundStateController
from models import Participant
from tests.conftest import FakeMetricSource


class FakeRound:
    def __init__(self, started):
        self.started = started

    def get_state(self):
        return SimpleNamespace(started=self.started)


def stored_followers(db, github_id):
    db.expire_all()
    return db.query(Participant).filter(Participant.github_id == github_id).one().followers


def as_tuples(standings):
    return [(e.rank, e.github_id, e.followers) for e in standings]


# ============ Round inactive ============

def test_inactive_round_returns_stored_values_without_calls(db, add_participant):
    add_participant("a", "x", 50)
    add_participant("b", "y", 80)
    source = FakeMetricSource({"a": 1, "b": 2})

    standings = LeaderboardEngine(db, FakeRound(False), source).list_standings()

    assert as_tuples(standings) == [(0, "b", 80), (1, "a", 50)]
    assert source.calls == []
    assert stored_followers(db, "a") == 50


def test_inactive_round_reads_persisted_state(db, add_participant):
    add_participant("a", "x", 5)
    source = FakeMetricSource({"a": 99})

    engine = LeaderboardEngine(db, RoundStateController(db), source)
    assert as_tuples(engine.list_standings()) == [(0, "a", 5)]
    assert source.calls == []


def test_no_participants(db):
    assert LeaderboardEngine(db, FakeRound(True), FakeMetricSource()).list_standings() == []


# ============ Round active ============

def test_active_round_refreshes_and_persists(db, add_participant, start_round):
    add_participant("a", "x", 50)
    add_participant("b", "y", 80)
    add_participant("c", "z", 10)
    start_round()
    source = FakeMetricSource({"a": 120, "b": 80, "c": 11})

    standings = LeaderboardEngine(db, RoundStateController(db), source).list_standings()

    assert as_tuples(standings) == [(0, "a", 120), (1, "b", 80), (2, "c", 11)]
    assert sorted(source.calls) == ["a", "b", "c"]
    assert stored_followers(db, "a") == 120
    assert stored_followers(db, "b") == 80
    assert stored_followers(db, "c") == 11


def test_single_failure_keeps_stored_value(db, add_participant):
    add_participant("a", "x", 50)
    add_participant("b", "y", 80)
    add_participant("c", "z", 10)
    source = FakeMetricSource({"a": 60, "b": 90, "c": 200}, failing={"b"})

    standings = LeaderboardEngine(db, FakeRound(True), source).list_standings()

    assert as_tuples(standings) == [(0, "c", 200), (1, "b", 80), (2, "a", 60)]
    assert stored_followers(db, "b") == 80
    assert stored_followers(db, "c") == 200


def test_all_failures_fall_back_to_stored(db, add_participant):
    add_participant("a", "x", 3)
    add_participant("b", "y", 4)
    source = FakeMetricSource({}, failing={"a", "b"})

    standings = LeaderboardEngine(db, FakeRound(True), source).list_standings()

    assert as_tuples(standings) == [(0, "b", 4), (1, "a", 3)]
    assert len(source.calls) == 2


def test_one_call_per_participant_even_with_shared_username(db, add_participant):
    add_participant("1", "same", 0)
    add_participant("2", "same", 0)
    source = FakeMetricSource({"1": 5, "2": 6})

    LeaderboardEngine(db, FakeRound(True), source, max_workers=1).list_standings()

    assert sorted(source.calls) == ["1", "2"]


def test_failed_write_still_returns_fresh_value(db, add_participant, monkeypatch):
    add_participant("a", "x", 10)
    source = FakeMetricSource({"a": 42})
    real_commit = db.commit

    def broken_commit():
        raise SQLAlchemyError("write failed")

    monkeypatch.setattr(db, "commit", broken_commit)
    standings = LeaderboardEngine(db, FakeRound(True), source).list_standings()
    monkeypatch.setattr(db, "commit", real_commit)

    assert as_tuples(standings) == [(0, "a", 42)]
    assert stored_followers(db, "a") == 10


def test_ties_keep_registration_order(db, add_participant):
    add_participant("1", "one", 0)
    add_participant("2", "two", 0)
    add_participant("3", "three", 0)
    source = FakeMetricSource({"1": 10, "2": 10, "3": 5})

    standings = LeaderboardEngine(db, FakeRound(True), source).list_standings()

    assert [e.github_id for e in standings] == ["1", "2", "3"]


def test_load_failure_raises_storage_error(db, monkeypatch):
    def broken(*a, **k):
        raise SQLAlchemyError("database is down")

    monkeypatch.setattr(db, "query", broken)
    with pytest.raises(StorageError):
        LeaderboardEngine(db, FakeRound(True), FakeMetricSource()).list_standings()


# ============ Registration ============

def test_register_then_list(db):
    engine = LeaderboardEngine(db, FakeRound(False), FakeMetricSource())
    engine.register_participant("42", "alice")

    assert as_tuples(engine.list_standings()) == [(0, "42", 0)]
    assert engine.list_standings()[0].username == "alice"


def test_register_existing_updates_username_keeps_followers(db, add_participant):
    add_participant("42", "alice", 77)
    engine = LeaderboardEngine(db, FakeRound(False), FakeMetricSource())

    participant = engine.register_participant("42", "alice-renamed")

    assert participant.username == "alice-renamed"
    assert participant.followers == 77
    assert db.query(Participant).count() == 1


def test_register_accepts_numeric_id(db):
    engine = LeaderboardEngine(db, FakeRound(False), FakeMetricSource())
    assert engine.register_participant(583231, "octocat").github_id == "583231"


@pytest.mark.parametrize("github_id,username", [
    ("", "alice"),
    ("42", ""),
    (None, "alice"),
    ("42", None),
    ("  ", "alice"),
])
def test_register_validation(db, github_id, username):
    engine = LeaderboardEngine(db, FakeRound(True), FakeMetricSource())
    with pytest.raises(InvalidParticipantData):
        engine.register_participant(github_id, username)
    assert db.query(Participant).count() == 0


def test_register_gated_on_active_round(db):
    engine = LeaderboardEngine(
        db, FakeRound(False), FakeMetricSource(),
        require_active_round_for_registration=True
    )
    with pytest.raises(RoundNotStarted):
        engine.register_participant("42", "alice")
    assert db.query(Participant).count() == 0

    engine.round_controller = FakeRound(True)
    engine.register_participant("42", "alice")
    assert db.query(Participant).count() == 1


def test_unchanged_count_is_not_written(db, add_participant, monkeypatch):
    add_participant("a", "x", 50)
    add_participant("b", "y", 80)
    source = FakeMetricSource({"a": 50, "b": 81})
    engine = LeaderboardEngine(db, FakeRound(True), source)
    writes = []
    monkeypatch.setattr(engine, "_persist_followers", lambda gid, n: writes.append((gid, n)))

    standings = engine.list_standings()

    assert writes == [("b", 81)]
    assert as_tuples(standings) == [(0, "b", 81), (1, "a", 50)]


def test_unchanged_counts_issue_no_commit(db, add_participant, monkeypatch):
    add_participant("a", "x", 50)
    commits = []
    monkeypatch.setattr(db, "commit", lambda: commits.append(1))

    LeaderboardEngine(db, FakeRound(True), FakeMetricSource({"a": 50})).list_standings()

    assert commits == []


def test_register_survives_concurrent_insert(db, session_factory, monkeypatch):
    import core.leaderboard_engine as engine_module

    real_lock = engine_module.with_participant_lock
    raced = []

    def lock_after_other_insert(github_id, session):
        # another request commits the same account between our SELECT and INSERT
        if not raced:
            raced.append(github_id)
            other = session_factory()
            other.add(Participant(github_id=github_id, username="alice-old", followers=5))
            other.commit()
            other.close()
            return SimpleNamespace(first=lambda: None)
        return real_lock(github_id, session)

    monkeypatch.setattr(engine_module, "with_participant_lock", lock_after_other_insert)
    engine = LeaderboardEngine(db, FakeRound(False), FakeMetricSource())

    participant = engine.register_participant("42", "alice")

    assert raced == ["42"]
    assert participant.username == "alice"
    assert participant.followers == 5
    db.expire_all()
    rows = db.query(Participant).filter(Participant.github_id == "42").all()
    assert [(r.username, r.followers) for r in rows] == [("alice", 5)]
