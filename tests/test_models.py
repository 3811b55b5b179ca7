import pytest
from pydantic import ValidationError

from apps.core.models import HiveStatus, MediaType, Title
from apps.hive.models import AddToHive, HiveEntryUpdate


@pytest.mark.parametrize("value, expected", [
    ("FINISHED", HiveStatus.FINISHED),
    ("on_hold", HiveStatus.ON_HOLD),
    ("UPCOMING", HiveStatus.PLANNED),
    ("PENDING", HiveStatus.PLANNED),
    ("UNFINISHED", HiveStatus.ON_HOLD),
    (" watching ", HiveStatus.WATCHING),
])
def test_status_accepts_both_vocabularies(value, expected):
    assert HiveStatus.from_legacy(value) == expected


def test_unknown_status_is_rejected():
    with pytest.raises(ValueError):
        HiveStatus.from_legacy("BINGED")


def test_media_type_maps_to_tmdb_paths():
    assert MediaType.MOVIE.tmdb_path == "movie"
    assert MediaType.SERIES.tmdb_path == "tv"
    assert MediaType.from_tmdb("tv") == MediaType.SERIES
    with pytest.raises(ValueError):
        MediaType.from_tmdb("person")


def test_legacy_status_is_translated_on_input():
    update = HiveEntryUpdate(status="UPCOMING")
    assert update.status == HiveStatus.PLANNED


def test_update_only_marks_given_fields_as_set():
    update = HiveEntryUpdate(is_favourite=True)
    assert update.model_dump(exclude_unset=True) == {"is_favourite": True}


def test_add_request_validates_ranges():
    with pytest.raises(ValidationError):
        AddToHive(tmdb_id=0, media_type="MOVIE")
    with pytest.raises(ValidationError):
        AddToHive(tmdb_id=603, media_type="MOVIE", rating=11)
    with pytest.raises(ValidationError):
        AddToHive(tmdb_id=603, media_type="PODCAST")


def test_genre_ids_reads_legacy_json_strings():
    assert Title(tmdb_id=1, media_type=MediaType.MOVIE, name="x", genres=[28, 12]).genre_ids() == [28, 12]
    assert Title(tmdb_id=1, media_type=MediaType.MOVIE, name="x", genres="[18, 80]").genre_ids() == [18, 80]
    assert Title(tmdb_id=1, media_type=MediaType.MOVIE, name="x", genres="oops").genre_ids() == []

