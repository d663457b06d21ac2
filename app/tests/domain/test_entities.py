import pytest

from app.domain.entities import (
    DestinationTarget, MergeResult, MigrationJob, Playlist, TargetKind, TrackRef,
)


class TestTrackRef:

    def test_artist_and_artists_fill_each_other(self):
        from_list = TrackRef(title="Song", artists=["A", "B"])
        from_artist = TrackRef(title="Song", artist="A")

        assert from_list.artist == "A"
        assert from_list.artists == ("A", "B")
        assert from_artist.artists == ("A",)

    def test_is_hashable(self):
        assert len({TrackRef(title="Song", artist="A"), TrackRef(title="Song", artist="A")}) == 1


class TestDestinationTarget:

    def test_constructors(self):
        assert DestinationTarget.favorites().kind == TargetKind.FAVORITES
        assert DestinationTarget.new_playlist("Mix").name == "Mix"
        assert DestinationTarget.existing_playlist("pl1").playlist_id == "pl1"

    def test_requires_name_or_id(self):
        with pytest.raises(ValueError):
            DestinationTarget.new_playlist("")
        with pytest.raises(ValueError):
            DestinationTarget.existing_playlist("")

    def test_from_json(self):
        assert DestinationTarget.from_json({"type": "favorites"}) == DestinationTarget.favorites()
        assert DestinationTarget.from_json({"type": "new_playlist", "name": "Mix"}).name == "Mix"
        assert DestinationTarget.from_json({"type": "existing_playlist", "playlist_id": "p"}).playlist_id == "p"

    def test_from_json_rejects_unknown_type(self):
        with pytest.raises(ValueError):
            DestinationTarget.from_json({"type": "album"})

    @pytest.mark.parametrize("data", ["favorites", ["favorites"], None])
    def test_from_json_rejects_non_object(self, data):
        with pytest.raises(ValueError):
            DestinationTarget.from_json(data)


def test_migration_job_presizes_results():
    job = MigrationJob(source_items=[TrackRef(title="a", artist="b")] * 3,
                       destination_target=DestinationTarget.favorites())

    assert job.results == [None, None, None]


def test_playlist_and_merge_result_json():
    assert Playlist(id="p", name="Mix", track_count=3, owner_id="me").to_json() == {
        "id": "p", "name": "Mix", "tracks_total": 3, "owner": "me",
    }
    assert MergeResult(True, 2, 1, False, error="boom").to_json() == {
        "success": True, "tracks_added": 2, "tracks_skipped": 1, "source_deleted": False, "error": "boom",
    }
