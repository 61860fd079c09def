import threading

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import models
from database import Base, get_db
from core.exceptions import UpstreamRefreshError
from core.round_controller import RoundStateController
from main import app
from services.github_service import get_metric_source


class FakeMetricSource:
    """Returns canned follower counts and records every lookup"""

    def __init__(self, followers=None, failing=()):
        self.followers = dict(followers or {})
        self.failing = set(failing)
        self.calls = []
        self._lock = threading.Lock()

    def fetch_followers(self, participant):
        with self._lock:
            self.calls.append(participant.github_id)
        if participant.github_id in self.failing or participant.github_id not in self.followers:
            raise UpstreamRefreshError(participant.username, "simulated failure")
        return self.followers[participant.github_id]


@pytest.fixture()
def db_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture()
def metric_source():
    return FakeMetricSource()


@pytest.fixture()
def add_participant(db):
    def _add(github_id, username, followers=0):
        p = models.Participant(github_id=github_id, username=username, followers=followers)
        db.add(p)
        db.commit()
        return p
    return _add


@pytest.fixture()
def start_round(db):
    def _start():
        return RoundStateController(db).start()
    return _start


@pytest.fixture()
def client(session_factory, metric_source):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_metric_source] = lambda: metric_source
    yield TestClient(app)
    app.dependency_overrides.clear()
