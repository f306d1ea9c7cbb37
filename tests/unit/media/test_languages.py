"""Tests for language normalization and track suffixes."""

import pytest

from anitorrent.media.languages import (
    assign_variants,
    audio_suffix,
    normalize_language,
    subtitle_suffix,
    unique_suffix,
)
from anitorrent.media.models import TrackKind
from conftest import make_track

AUDIO = TrackKind.AUDIO
SUB = TrackKind.SUBTITLE


@pytest.mark.parametrize(
    ("code", "expected"),
    [(None, "und"), ("", "und"), ("es-419", "spa"), ("EN", "eng"), ("jpn", "jpn"), ("pt_BR", "por")],
)
def test_normalize_language(code: str | None, expected: str) -> None:
    """Test codes reduce to a 3-letter primary language."""
    assert normalize_language(code) == expected


class TestAssignVariants:
    """Tests for Spanish variant inference."""

    def test_untagged_next_to_latino_is_castilian(self) -> None:
        """Test an untagged Spanish track beside a Latin one is castilian."""
        tracks = assign_variants(
            [make_track(SUB, 0, "spa", title=""), make_track(SUB, 1, "spa", title="Latin")]
        )

        assert [t.language_variant for t in tracks] == ["castilian (inferred)", "latino"]
        assert [subtitle_suffix(t, tracks) for t in tracks] == ["spa", "lat"]

    def test_untagged_next_to_castilian_is_latino(self) -> None:
        """Test the mirror case."""
        tracks = assign_variants(
            [make_track(SUB, 0, "spa", title="Castellano"), make_track(SUB, 1, "spa")]
        )
        assert [t.language_variant for t in tracks] == ["castilian", "latino (inferred)"]

    def test_by_order(self) -> None:
        """Test untagged tracks are labeled by position."""
        tracks = assign_variants([make_track(AUDIO, 0, "spa"), make_track(AUDIO, 1, "spa")])

        assert [t.language_variant for t in tracks] == [
            "castilian (by order)",
            "latino (by order)",
        ]
        assert [audio_suffix(t, tracks) for t in tracks] == ["spa", "lat"]

    def test_both_known_leaves_unknown(self) -> None:
        """Test a third untagged track is unknown when both variants exist."""
        tracks = assign_variants(
            [
                make_track(SUB, 0, "spa", title="Latino"),
                make_track(SUB, 1, "spa", title="España"),
                make_track(SUB, 2, "spa"),
            ]
        )
        assert tracks[2].language_variant == "unknown"
        assert subtitle_suffix(tracks[2], tracks) == "lat"

    def test_lone_untagged_spanish_is_castilian(self) -> None:
        """Test a single untagged Spanish audio track is named spa."""
        tracks = assign_variants([make_track(AUDIO, 0, "jpn"), make_track(AUDIO, 1, "spa")])

        assert tracks[1].language_variant == "castilian (by order)"
        assert audio_suffix(tracks[1], tracks) == "spa"

    def test_forced_subtitles_skip_inference(self) -> None:
        """Test forced tracks are labeled forced and do not count as full tracks."""
        tracks = assign_variants(
            [
                make_track(SUB, 0, "spa", forced=True),
                make_track(SUB, 1, "spa", title="Latino Forzado"),
                make_track(SUB, 2, "spa"),
            ]
        )

        assert [t.language_variant for t in tracks] == [
            "forced",
            "latino forced",
            "castilian (by order)",
        ]
        assert subtitle_suffix(tracks[0], tracks) == "spa_forced"
        assert subtitle_suffix(tracks[1], tracks) == "lat_forced"

    def test_non_spanish_untouched(self) -> None:
        """Test other languages get no variant."""
        tracks = assign_variants([make_track(AUDIO, 0, "jpn")])
        assert tracks[0].language_variant is None


class TestSuffixes:
    """Tests for audio and subtitle suffixes."""

    def test_audio_suffixes(self) -> None:
        """Test japanese is bare and unknown languages are "unk"."""
        tracks = assign_variants(
            [make_track(AUDIO, 0, "jpn"), make_track(AUDIO, 1, "eng"), make_track(AUDIO, 2, "und")]
        )
        assert [audio_suffix(t, tracks) for t in tracks] == [None, "eng", "unk"]

    def test_nominated_latino_audio(self) -> None:
        """Test a nominated track overrides variant labels."""
        tracks = assign_variants([make_track(AUDIO, 0, "spa"), make_track(AUDIO, 1, "spa")])

        assert audio_suffix(tracks[0], tracks, latino_track=0) == "lat"
        assert audio_suffix(tracks[1], tracks, latino_track=0) == "spa"

    def test_subtitle_codes(self) -> None:
        """Test subtitle suffixes use 2-letter codes where known."""
        tracks = [make_track(SUB, 0, "eng"), make_track(SUB, 1, "por"), make_track(SUB, 2, "und")]
        assert [subtitle_suffix(t, tracks) for t in tracks] == ["en", "pt", "unk"]


class TestUniqueSuffix:
    """Tests for unique_suffix."""

    def test_collisions_numbered(self) -> None:
        """Test repeated suffixes get _1, _2 appended."""
        used: set[str | None] = set()
        results = [unique_suffix("lat", used) for _ in range(3)]
        assert results == ["lat", "lat_1", "lat_2"]

    def test_bare_collision_uses_fallback(self) -> None:
        """Test a second bare name falls back to the given base."""
        used: set[str | None] = set()

        assert unique_suffix(None, used, fallback="jpn") is None
        assert unique_suffix(None, used, fallback="jpn") == "jpn_1"
