from datetime import date, datetime

import httplib2
import pytest

from training_dashboard.errors import ConfigurationError
from training_dashboard.models import Activity, Race
from training_dashboard.sheets import (
    DrivePhotoFinder,
    RaceSheet,
    match_photo,
    parse_race_row,
    photo_prefix,
    sync_races,
)


class FakePhotoFinder:
    def __init__(self, photos=None):
        self.photos = photos or {}
        self.calls = []

    def find(self, race_name):
        self.calls.append(race_name)
        return self.photos.get(race_name)


def sheet_row(**overrides):
    row = {
        "name": "Berlin Marathon",
        "date": "2024-09-29",
        "distance": "42195",
        "moving_time": "12600",
        "total_elevation_gain": "30",
        "location_city": "Berlin",
        "location_state": "",
        "location_country": "Germany",
        "description": "Flat and fast",
        "type": "Road",
        "placement": "1520",
        "category": "M35",
        "featured": "TRUE",
    }
    row.update(overrides)
    return row


class TestParseRow:

    def test_parses_numbers_dates_and_flags(self):
        race = parse_race_row(sheet_row())

        assert race["name"] == "Berlin Marathon"
        assert race["date"] == date(2024, 9, 29)
        assert race["distance"] == 42195.0
        assert race["moving_time"] == 12600
        assert race["placement"] == 1520
        assert race["location_state"] is None
        assert race["race_type"] == "Road"
        assert race["featured"] is True

    def test_us_style_date_and_blank_numbers(self):
        race = parse_race_row(sheet_row(date="10/13/2024", placement="", distance="n/a", featured=""))

        assert race["date"] == date(2024, 10, 13)
        assert race["placement"] is None
        assert race["distance"] is None
        assert race["featured"] is False

    def test_infinite_number_is_blank(self):
        race = parse_race_row(sheet_row(placement="inf", moving_time="-Infinity"))

        assert race["placement"] is None
        assert race["moving_time"] is None

    def test_missing_name_or_date(self):
        with pytest.raises(ValueError):
            parse_race_row(sheet_row(name=" "))
        with pytest.raises(ValueError):
            parse_race_row(sheet_row(date=""))
        with pytest.raises(ValueError):
            parse_race_row(sheet_row(date="sometime in May"))


class TestPhotoLookup:

    FILES = [
        {"id": "1", "name": "Boston-Marathon-finish.jpg", "webViewLink": "https://drive/1"},
        {"id": "2", "name": "berlin-marathon-2024.JPG", "webViewLink": "https://drive/2"},
    ]

    def test_prefix_replaces_whitespace_runs(self):
        assert photo_prefix("  Berlin   Marathon ") == "berlin-marathon"

    def test_case_insensitive_prefix_match(self):
        assert match_photo(self.FILES, "Berlin Marathon") == "https://drive/2"
        assert match_photo(self.FILES, "boston marathon") == "https://drive/1"
        assert match_photo(self.FILES, "Chicago Marathon") is None

    def test_no_folder_configured(self, tmp_path):
        finder = DrivePhotoFinder("", str(tmp_path / "client_secret.json"))
        assert finder.find("Berlin Marathon") is None

    def test_missing_credentials_degrade_to_none(self, tmp_path):
        finder = DrivePhotoFinder("folder-id", str(tmp_path / "missing.json"))
        assert finder.find("Berlin Marathon") is None

    def test_api_error_degrades_to_none(self, tmp_path, monkeypatch):
        credentials = tmp_path / "client_secret.json"
        credentials.write_text("{}")
        finder = DrivePhotoFinder("folder-id", str(credentials))

        def broken():
            raise ValueError("Service account info was not in the expected format")

        monkeypatch.setattr(finder, "_list_files", broken)
        assert finder.find("Berlin Marathon") is None

    def test_transport_error_does_not_fail_sync(self, db_session, tmp_path, monkeypatch):
        credentials = tmp_path / "client_secret.json"
        credentials.write_text("{}")
        finder = DrivePhotoFinder("folder-id", str(credentials))

        def unreachable():
            raise httplib2.ServerNotFoundError("Unable to find the server at www.googleapis.com")

        monkeypatch.setattr(finder, "_list_files", unreachable)
        report = sync_races(db_session, [{"name": "Berlin Marathon", "date": "2024-09-29"}], finder)

        assert (report.synced, report.failed) == (1, 0)
        assert db_session.query(Race).one().photo_url is None


class TestRaceSheetConfiguration:

    def test_sheet_id_is_mandatory(self, tmp_path):
        credentials = tmp_path / "client_secret.json"
        credentials.write_text("{}")
        with pytest.raises(ConfigurationError):
            RaceSheet("", str(credentials))

    def test_credentials_are_mandatory(self, tmp_path):
        with pytest.raises(ConfigurationError):
            RaceSheet("sheet-id", str(tmp_path / "missing.json"))


class TestSyncRaces:

    def test_creates_activity_and_race(self, db_session):
        finder = FakePhotoFinder({"Berlin Marathon": "https://drive/2"})

        report = sync_races(db_session, [sheet_row()], finder)

        assert (report.synced, report.failed) == (1, 0)
        activity = db_session.query(Activity).one()
        assert activity.id < 0
        assert activity.type == "Run"
        assert activity.source == "sheet"
        assert activity.start_date == datetime(2024, 9, 29)
        assert activity.featured is True
        race = db_session.query(Race).one()
        assert race.activity_id == activity.id
        assert race.placement == 1520
        assert race.photo_url == "https://drive/2"

    def test_links_existing_strava_activity(self, db_session, make_activity):
        existing = make_activity(
            "2024-09-29T09:15:00", 42300.0, id=555, name="Berlin Marathon", location_city=None,
        )

        sync_races(db_session, [sheet_row()], FakePhotoFinder())

        assert db_session.query(Activity).count() == 1
        db_session.refresh(existing)
        assert existing.distance == 42300.0
        assert existing.location_city == "Berlin"
        assert existing.featured is True
        assert db_session.query(Race).one().activity_id == 555

    def test_resync_does_not_duplicate(self, db_session):
        sync_races(db_session, [sheet_row()], FakePhotoFinder())
        sync_races(db_session, [sheet_row(placement="1500")], FakePhotoFinder())

        assert db_session.query(Activity).count() == 1
        assert db_session.query(Race).one().placement == 1500

    def test_bad_rows_are_skipped(self, db_session):
        rows = [
            sheet_row(name="Race A", date="2024-04-01"),
            sheet_row(name="", date="2024-05-01"),
            sheet_row(name="Race B", date="not a date"),
            sheet_row(name="Race C", date="2024-06-01"),
        ]

        report = sync_races(db_session, rows)

        assert (report.synced, report.failed) == (2, 2)
        assert sorted(a.name for a in db_session.query(Activity).all()) == ["Race A", "Race C"]
        ids = sorted(a.id for a in db_session.query(Activity).all())
        assert ids == [-2, -1]
