from app.application.merge import PlaylistMergeEngine
from app.domain.entities import MergeJob, TrackRef
from app.domain.errors import Unauthorized, ValidationError
from app.tests.fakes import FakeCatalog


def tracks(*ids):
    return [TrackRef(title=f"Title {i}", artist="Artist", external_id=i) for i in ids]


class TestPlaylistMergeEngine:
    """Tests for merging two playlists on the same catalog."""

    def setup_method(self):
        self.adapter = FakeCatalog()
        self.adapter.add_playlist("A", tracks("t1", "t2", "t3"))
        self.adapter.add_playlist("B", tracks("t3", "t4", "t5", "t6", "t7"))
        self.engine = PlaylistMergeEngine(self.adapter)

    def test_merge_adds_missing_and_deletes_source(self):
        result = self.engine.merge(MergeJob("A", "B"))

        assert result.success is True
        assert result.tracks_added == 2
        assert result.tracks_skipped == 1
        assert result.source_deleted is True
        assert result.error is None
        assert "A" not in self.adapter.playlists
        assert [t.external_id for t in self.adapter.playlists["B"]] == ["t3", "t4", "t5", "t6", "t7", "t1", "t2"]

    def test_counts_cover_whole_source_including_internal_duplicates(self):
        self.adapter.add_playlist("A", tracks("t1", "t1", "t4", "t8"))

        result = self.engine.merge(MergeJob("A", "B"))

        assert result.tracks_added == 2
        assert result.tracks_skipped == 2
        assert result.tracks_added + result.tracks_skipped == 4

    def test_same_source_and_target_is_rejected(self):
        result = self.engine.merge(MergeJob("B", "B"))

        assert result.success is False
        assert result.source_deleted is False
        assert self.adapter.calls == []

    def test_failed_delete_keeps_added_tracks(self):
        self.adapter.delete_error = Unauthorized("fake: not owner", provider='fake', status=403)

        result = self.engine.merge(MergeJob("A", "B"))

        assert result.success is True
        assert result.tracks_added == 2
        assert result.source_deleted is False
        assert "not deleted" in result.error
        assert len(self.adapter.playlists["B"]) == 7

    def test_failed_add_does_not_delete_source(self):
        self.adapter.write_errors.append(ValidationError("fake: HTTP 400", provider='fake', status=400))

        result = self.engine.merge(MergeJob("A", "B"))

        assert result.success is False
        assert result.source_deleted is False
        assert "delete_playlist" not in self.adapter.calls
        assert "A" in self.adapter.playlists

    def test_unreadable_playlist_fails_merge(self):
        result = self.engine.merge(MergeJob("A", "missing"))

        assert result.success is False
        assert "Could not read playlists" in result.error
        assert self.adapter.mutation_calls() == []

    def test_fully_overlapping_source_is_still_deleted(self):
        self.adapter.add_playlist("A", tracks("t4", "t5"))

        result = self.engine.merge(MergeJob("A", "B"))

        assert result.tracks_added == 0
        assert result.tracks_skipped == 2
        assert result.source_deleted is True
        assert "add_playlist_batch" not in self.adapter.calls
