import pytest

from apps.core.exceptions import NotFoundError
from apps.core.models import HiveStatus, MediaType, Title
from apps.hive.services import HiveService
from apps.profiles.services import ProfileService
from tests.conftest import make_user


@pytest.fixture
def bob(session):
    return make_user(session, email="bob@example.com", username="bob", name="Bob Builder")


def test_follow_toggles(session, user, bob):
    service = ProfileService(session)

    state = service.toggle_follow(user, "bob")
    assert state.following is True
    assert state.total_followers == 1

    state = service.toggle_follow(user, "bob")
    assert state.following is False
    assert state.total_followers == 0


def test_following_yourself_does_nothing(session, user):
    state = ProfileService(session).toggle_follow(user, "alice")

    assert state.following is False
    assert state.total_followers == 0


def test_unknown_username(session, user):
    with pytest.raises(NotFoundError):
        ProfileService(session).toggle_follow(user, "nobody")


def test_profile_shows_hive_stats_and_follows(session, user, bob):
    hive = HiveService(session)
    for n, (media_type, status) in enumerate([
        (MediaType.MOVIE, HiveStatus.FINISHED),
        (MediaType.SERIES, HiveStatus.WATCHING),
        (MediaType.SERIES, HiveStatus.FINISHED),
    ], start=1):
        title = Title(tmdb_id=n, media_type=media_type, name=f"Title {n}")
        session.add(title)
        session.commit()
        hive.upsert_entry(bob, title.id, {"status": status, "is_favourite": n == 2})

    service = ProfileService(session)
    service.toggle_follow(user, "bob")

    profile = service.get_profile("BOB")

    assert profile.user.username == "bob"
    assert profile.stats.total == 3
    assert profile.stats.movies == 1
    assert profile.stats.series == 2
    assert profile.stats.finished == 2
    assert profile.stats.watching == 1
    assert profile.stats.favourites == 1
    assert profile.hive[0].title.name == "Title 3"
    assert profile.total_followers == 1
    assert [f.username for f in profile.followers] == ["alice"]
    assert profile.total_following == 0


def test_profile_does_not_expose_email(session, user):
    profile = ProfileService(session).get_profile("alice")

    assert "email" not in profile.user.model_dump()


def test_search_users_by_username_or_name(session, user, bob):
    make_user(session, email="nousername@example.com", name="Bobby")
    service = ProfileService(session)

    assert [u.username for u in service.search_users("build")] == ["bob"]
    assert [u.username for u in service.search_users("BOB")] == ["bob"]
    assert service.search_users("zzz") == []


def test_discover_lists_profiles_with_follower_counts(session, user, bob):
    make_user(session, email="nousername@example.com")
    ProfileService(session).toggle_follow(user, "bob")

    cards = ProfileService(session).discover()

    assert [(c.username, c.total_followers) for c in cards] == [("alice", 0), ("bob", 1)]


def test_is_following_compares_users_not_usernames(session, bob):
    service = ProfileService(session)
    carol = make_user(session, email="carol@example.com")
    dave = make_user(session, email="dave@example.com")
    service.toggle_follow(carol, "bob")

    assert service.is_following(carol.id, bob.id) is True
    assert service.is_following(dave.id, bob.id) is False
