from datetime import timedelta

from prunarr.models.media import MediaItem, MediaType
from prunarr.services.sync import deletion_candidate
from tests.fakes import NOW


def test_to_dict_includes_countdown_only_with_now():
    item = MediaItem(id="radarr-1", media_type=MediaType.MOVIE, title="Heat",
                     deletion_date=NOW + timedelta(days=5, hours=1), rule_retention="30d")
    assert "days_until_due" not in item.to_dict()
    data = item.to_dict(NOW)
    assert data["days_until_due"] == 5
    assert data["type"] == "movie"
    assert data["retention"] == "30d"
    assert data["match_status"] == "not_found"


def test_deletion_candidate_shape():
    item = MediaItem(
        id="sonarr-2", media_type=MediaType.TV_SHOW, title="Andor", year=2022, file_size=10,
        added_at=NOW - timedelta(days=40), deletion_date=NOW - timedelta(days=10),
        deletion_reason="global tv retention 30d", rule_kind="global", rule_retention="30d",
        is_requested=True, requested_by_username="alice",
    )
    data = deletion_candidate(item, NOW)
    assert data["type"] == "tv_show"
    assert data["days_overdue"] == 10
    assert data["rule"] == "global tv retention 30d"
    assert data["requested_by_username"] == "alice"
    assert data["reason"].startswith("This TV show was added 40 days ago.")
