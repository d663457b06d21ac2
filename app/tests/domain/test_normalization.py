from app.domain.entities import TrackRef


def test_normalize_string_basic_cases():
    from app.domain.normalization import normalize_string

    assert normalize_string("Hello World") == "hello world"
    assert normalize_string("Héllo Wörld!") == "hello world"
    assert normalize_string("Song (Live)") == "song"
    assert normalize_string("Song [Bonus Track]") == "song"
    assert normalize_string("Song feat. Someone") == "song"
    assert normalize_string("A & B") == "a and b"
    assert normalize_string(None) == ""


def test_normalize_string_strips_dash_suffixes():
    from app.domain.normalization import normalize_string

    assert normalize_string("Heroes - 2017 Remaster") == "heroes"
    assert normalize_string("Song - Live at Wembley") == "song"
    assert normalize_string("Re-Wind") == "re wind"


def test_normalize_artist_drops_leading_article():
    from app.domain.normalization import normalize_artist

    assert normalize_artist("The Beatles") == "beatles"
    assert normalize_artist("Theory of a Deadman") == "theory of a deadman"


def test_primary_artist_prefers_list_then_comma_string():
    from app.domain.normalization import primary_artist, split_artists

    assert primary_artist(["Daft Punk", "Pharrell Williams"]) == "Daft Punk"
    assert primary_artist([], "Daft Punk, Pharrell Williams") == "Daft Punk"
    assert primary_artist([], None) == ""
    assert split_artists(" A ,B,, C ") == ["A", "B", "C"]


def test_artists_match_any_candidate_artist():
    from app.domain.normalization import artists_match

    assert artists_match("Sigur Rós", ["Other", "Sigur Ros"])
    assert not artists_match("Sigur Rós", ["Other"])
    assert not artists_match("", ["Other"])


def test_titles_equal_and_overlap():
    from app.domain.normalization import titles_equal, titles_overlap

    assert titles_equal("Song (Remastered)", "song")
    assert not titles_equal("", "")
    assert titles_overlap("Song", "Song Acoustic")
    assert titles_overlap("Song Acoustic", "Song")
    assert not titles_overlap("Song", "")


def test_build_query_uses_title_and_primary_artist():
    from app.domain.normalization import build_query

    track = TrackRef(title="Get Lucky", artists=("Daft Punk", "Pharrell Williams"))
    assert build_query(track) == "Get Lucky Daft Punk"
