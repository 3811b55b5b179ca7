from datetime import datetime, timedelta

import pytest
from sqlmodel import select

from apps.core.exceptions import NotFoundError, PermissionDeniedError
from apps.core.models import HiveStatus, MediaType, Title
from apps.core.schemas import TitleRead
from apps.hive.models import AddToHive, HiveEntry, HiveEntryUpdate
from apps.hive.query import HiveQuery, SortKey
from apps.hive.services import HiveService, to_item
from tests.conftest import make_user


def add_title(session, tmdb_id, name, media_type=MediaType.MOVIE, release_date="", genres=()):
    title = Title(tmdb_id=tmdb_id, media_type=media_type, name=name, release_date=release_date, genres=list(genres))
    session.add(title)
    session.commit()
    session.refresh(title)
    return title


@pytest.mark.anyio
async def test_add_creates_entry_with_defaults(session, tmdb, user):
    item = await HiveService(session, tmdb).add_to_hive(user, AddToHive(tmdb_id=603, media_type=MediaType.MOVIE))

    assert item.status == HiveStatus.PLANNED
    assert item.is_favourite is False
    assert item.title.name == "The Matrix"
    assert item.title.genres == [28, 878]


@pytest.mark.anyio
async def test_add_uses_the_users_default_status(session, tmdb):
    user = make_user(session, email="bob@example.com", default_status=HiveStatus.WATCHING)

    item = await HiveService(session, tmdb).add_to_hive(user, AddToHive(tmdb_id=603, media_type=MediaType.MOVIE))

    assert item.status == HiveStatus.WATCHING


@pytest.mark.anyio
async def test_adding_again_updates_only_the_given_fields(session, tmdb, user):
    service = HiveService(session, tmdb)
    first = await service.add_to_hive(user, AddToHive(
        tmdb_id=603, media_type=MediaType.MOVIE, status=HiveStatus.WATCHING, rating=7
    ))

    second = await service.add_to_hive(user, AddToHive(tmdb_id=603, media_type=MediaType.MOVIE, is_favourite=True))

    assert second.id == first.id
    assert second.status == HiveStatus.WATCHING
    assert second.rating == 7
    assert second.is_favourite is True
    assert len(session.exec(select(HiveEntry)).all()) == 1


@pytest.mark.anyio
async def test_two_users_share_one_title(session, tmdb, user):
    bob = make_user(session, email="bob@example.com")
    service = HiveService(session, tmdb)

    a = await service.add_to_hive(user, AddToHive(tmdb_id=603, media_type=MediaType.MOVIE))
    b = await service.add_to_hive(bob, AddToHive(tmdb_id=603, media_type=MediaType.MOVIE))

    assert a.id != b.id
    assert a.title.id == b.title.id


def test_upsert_recovers_from_a_lost_insert_race(session, user, monkeypatch):
    title = add_title(session, 1, "Heat")
    session.add(HiveEntry(user_id=user.id, title_id=title.id, status=HiveStatus.FINISHED))
    session.commit()

    service = HiveService(session)
    real_get_entry = service.get_entry
    calls = []

    def stale_then_real(user_id, title_id):
        # First lookup misses the row another request just inserted
        calls.append(title_id)
        return None if len(calls) == 1 else real_get_entry(user_id, title_id)

    monkeypatch.setattr(service, "get_entry", stale_then_real)

    entry = service.upsert_entry(user, title.id, {"rating": 9.0})

    assert entry.status == HiveStatus.FINISHED
    assert entry.rating == 9.0
    assert len(session.exec(select(HiveEntry)).all()) == 1


def test_update_and_remove_are_owner_only(session, user):
    bob = make_user(session, email="bob@example.com")
    title = add_title(session, 1, "Heat")
    service = HiveService(session)
    entry = service.upsert_entry(user, title.id, {})

    with pytest.raises(PermissionDeniedError):
        service.update_entry(bob.id, entry.id, HiveEntryUpdate(status=HiveStatus.DROPPED))
    with pytest.raises(PermissionDeniedError):
        service.remove_entry(bob.id, entry.id)
    with pytest.raises(NotFoundError):
        service.remove_entry(user.id, 9999)


def test_update_entry_patches_progress(session, user):
    title = add_title(session, 1399, "Game of Thrones", MediaType.SERIES)
    service = HiveService(session)
    entry = service.upsert_entry(user, title.id, {"status": HiveStatus.WATCHING})

    item = service.update_entry(user.id, entry.id, HiveEntryUpdate(current_season=2, current_episode=5))

    assert item.current_season == 2
    assert item.current_episode == 5
    assert item.status == HiveStatus.WATCHING


def test_remove_entry(session, user):
    title = add_title(session, 1, "Heat")
    service = HiveService(session)
    entry = service.upsert_entry(user, title.id, {})

    service.remove_entry(user.id, entry.id)

    assert session.get(HiveEntry, entry.id) is None
    assert session.get(Title, title.id) is not None


@pytest.fixture
def hive(session, user):
    service = HiveService(session)
    rows = [
        ("Heat", MediaType.MOVIE, "1995-12-15", (80,), HiveStatus.FINISHED, True),
        ("Alien", MediaType.MOVIE, "1979-05-25", (27, 878), HiveStatus.PLANNED, False),
        ("Dark", MediaType.SERIES, "2017-12-01", (18, 878), HiveStatus.WATCHING, True),
        ("arrival", MediaType.MOVIE, "2016-11-11", (878,), HiveStatus.WATCHING, False),
        ("Breaking Bad", MediaType.SERIES, "2008-01-20", (18, 80), HiveStatus.DROPPED, False),
    ]
    for n, (name, media_type, release_date, genres, status, favourite) in enumerate(rows, start=1):
        title = add_title(session, n, name, media_type, release_date, genres)
        service.upsert_entry(user, title.id, {"status": status, "is_favourite": favourite})
    return service


def names(page):
    return [item.title.name for item in page.data]


def test_list_defaults_to_status_then_newest_release(hive, user):
    page = hive.list_entries(user.id, HiveQuery())

    assert names(page) == ["Dark", "arrival", "Alien", "Heat", "Breaking Bad"]
    assert page.total == 5


def test_list_filters_combine(hive, user):
    page = hive.list_entries(user.id, HiveQuery(type=[MediaType.MOVIE], genres=[878]))
    assert sorted(names(page)) == ["Alien", "arrival"]

    page = hive.list_entries(user.id, HiveQuery(title="AR"))
    assert names(page) == ["Dark", "arrival"]

    page = hive.list_entries(user.id, HiveQuery(favourite=True, status=[HiveStatus.FINISHED]))
    assert names(page) == ["Heat"]


def test_list_sorts_by_several_keys(hive, user):
    page = hive.list_entries(user.id, HiveQuery(sort=[SortKey.parse("type"), SortKey.parse("-title")]))

    assert names(page) == ["Heat", "arrival", "Alien", "Dark", "Breaking Bad"]


def test_list_title_sort_ignores_case(hive, user):
    page = hive.list_entries(user.id, HiveQuery(sort=[SortKey.parse("title")]))

    assert names(page) == ["Alien", "arrival", "Breaking Bad", "Dark", "Heat"]


def test_list_pages(hive, user):
    query = HiveQuery(sort=[SortKey.parse("release_date")], per_page=2, page=2)
    page = hive.list_entries(user.id, query)

    assert names(page) == ["Breaking Bad", "arrival"]
    assert page.total == 5

    assert hive.list_entries(user.id, HiveQuery(page=9)).data == []


def test_list_only_shows_own_entries(hive, session):
    bob = make_user(session, email="bob@example.com")

    assert hive.list_entries(bob.id, HiveQuery()).total == 0


def test_dashboard_counts(hive, session, user):
    entry = session.exec(select(HiveEntry).join(Title).where(Title.name == "arrival")).one()
    entry.updated_at = datetime.utcnow() + timedelta(minutes=5)
    session.add(entry)
    session.commit()

    dashboard = hive.dashboard(user.id)

    assert dashboard.stats.total == 5
    assert dashboard.stats.watching == 2
    assert dashboard.stats.finished == 1
    assert dashboard.stats.planned == 1
    assert dashboard.stats.favourites == 2
    assert dashboard.stats.progress_value == 20
    assert [item.title.name for item in dashboard.watching_items] == ["arrival", "Dark"]


def test_dashboard_for_empty_hive(session, user):
    dashboard = HiveService(session).dashboard(user.id)

    assert dashboard.stats.total == 0
    assert dashboard.stats.progress_value == 0
    assert dashboard.watching_items == []


def test_status_update_leaves_progress_alone(session, user):
    title = add_title(session, 1399, "Game of Thrones", MediaType.SERIES)
    service = HiveService(session)
    entry = service.upsert_entry(user, title.id, {
        "status": HiveStatus.WATCHING, "current_season": 3, "current_episode": 4, "is_favourite": True,
    })

    item = service.update_entry(user.id, entry.id, HiveEntryUpdate(status=HiveStatus.ON_HOLD))

    assert item.status == HiveStatus.ON_HOLD
    assert (item.current_season, item.current_episode, item.is_favourite) == (3, 4, True)


@pytest.mark.parametrize("sort", [[], ["title"], ["-release_date", "type"], ["-status"]])
def test_status_filter_holds_under_any_sort(hive, user, sort):
    query = HiveQuery(status=[HiveStatus.FINISHED, HiveStatus.WATCHING], sort=[SortKey.parse(s) for s in sort])

    page = hive.list_entries(user.id, query)

    assert page.total == 3
    assert {item.status for item in page.data} == {HiveStatus.FINISHED, HiveStatus.WATCHING}


def test_items_are_built_from_expired_rows(session, user):
    title = add_title(session, 603, "The Matrix", genres=(28,))
    entry = HiveEntry(user_id=user.id, title_id=title.id, status=HiveStatus.WATCHING)
    session.add(entry)
    session.commit()

    session.expire_all()
    item = to_item(entry, title)

    assert item.status == HiveStatus.WATCHING
    assert item.title.name == "The Matrix"
    assert item.title.genres == [28]
    assert TitleRead.from_title(title).tmdb_id == 603
