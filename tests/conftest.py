import os

os.environ.setdefault("TMDB_API_KEY", "test-token")
os.environ.setdefault("CRON_SECRET", "cron-secret")
os.environ.setdefault("SECRET_KEY", "test-secret")

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

import apps.auth.models  # noqa: F401
import apps.core.models  # noqa: F401
import apps.hive.models  # noqa: F401
from apps.auth.deps import get_current_user
from apps.auth.models import User
from apps.core.tmdb import TMDBService, get_tmdb
from database import get_session


class FakeTMDB:
    """httpx transport handler serving canned TMDB payloads by path."""

    def __init__(self):
        self.routes = {}
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix("/3")
        self.requests.append(request)
        payload = self.routes.get(path)
        if payload is None:
            return httpx.Response(404, json={"status_message": "The resource you requested could not be found."})
        if callable(payload):
            return payload(request)
        return httpx.Response(200, json=payload)

    def paths(self):
        return [r.url.path.removeprefix("/3") for r in self.requests]


def movie_payload(tmdb_id=603, title="The Matrix", release_date="1999-03-31", genres=(28, 878)):
    return {
        "id": tmdb_id,
        "title": title,
        "poster_path": "/matrix.jpg",
        "backdrop_path": "/matrix-bg.jpg",
        "overview": "A hacker learns the truth about reality.",
        "release_date": release_date,
        "genres": [{"id": g, "name": str(g)} for g in genres],
        "external_ids": {"imdb_id": "tt0133093"},
    }


def series_payload(tmdb_id=1399, name="Game of Thrones", seasons=((0, 10), (1, 10), (2, 10))):
    return {
        "id": tmdb_id,
        "name": name,
        "poster_path": "/got.jpg",
        "backdrop_path": None,
        "overview": "Seven noble families fight for control of Westeros.",
        "first_air_date": "2011-04-17",
        "genres": [{"id": 18, "name": "Drama"}],
        "created_by": [{"name": "David Benioff"}, {"name": "D. B. Weiss"}],
        "external_ids": {"imdb_id": "tt0944947"},
        "seasons": [
            {"season_number": n, "episode_count": count, "air_date": f"{2010 + n}-04-17"}
            for n, count in seasons
        ],
    }


def season_episodes(season_number, count, air_dates=None):
    return {
        "episodes": [
            {
                "season_number": season_number,
                "episode_number": n,
                "name": f"Episode {n}",
                "air_date": (air_dates or {}).get(n, f"2011-04-{n:02d}"),
                "overview": "",
                "runtime": 55,
            }
            for n in range(1, count + 1)
        ]
    }


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def engine():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def fake_tmdb():
    fake = FakeTMDB()
    fake.routes["/movie/603"] = movie_payload()
    fake.routes["/movie/603/credits"] = {"crew": [
        {"name": "Lana Wachowski", "job": "Director"},
        {"name": "Lilly Wachowski", "job": "Director"},
        {"name": "Joel Silver", "job": "Producer"},
    ]}
    fake.routes["/tv/1399"] = series_payload()
    return fake


@pytest.fixture
async def tmdb(fake_tmdb):
    service = TMDBService(transport=httpx.MockTransport(fake_tmdb))
    yield service
    await service.close()


def make_user(session, email="alice@example.com", username=None, **fields):
    user = User(email=email, username=username, **fields)
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@pytest.fixture
def user(session):
    return make_user(session, username="alice", name="Alice")


@pytest.fixture
def client(session, fake_tmdb, user):
    from main import app

    opened = []

    async def override_tmdb():
        service = TMDBService(transport=httpx.MockTransport(fake_tmdb))
        opened.append(service)
        try:
            yield service
        finally:
            await service.close()

    state = {"user_id": user.id}

    def override_user():
        if state["user_id"] is None:
            return None
        return session.get(User, state["user_id"])

    app.dependency_overrides[get_session] = lambda: session
    app.dependency_overrides[get_tmdb] = override_tmdb
    app.dependency_overrides[get_current_user] = override_user

    test_client = TestClient(app)
    test_client.login_as = lambda u: state.update(user_id=u.id if u else None)
    test_client.tmdb_clients = opened
    yield test_client
    app.dependency_overrides.clear()
