"""Language normalization, Spanish variant inference and file-name suffixes."""

import re

from anitorrent.media.models import Track, TrackKind

LATINO = "latino"
CASTILIAN = "castilian"
FORCED = "forced"

_LATINO_PATTERN = re.compile(r"es-419|\blatin|\blatam\b|latinoam", re.IGNORECASE)
_CASTILIAN_PATTERN = re.compile(
    r"es-es\b|castilian|castellano|espa[ñn]a|\bspain\b|european", re.IGNORECASE
)
_FORCED_PATTERN = re.compile(r"\bforced\b|forzado", re.IGNORECASE)

# ISO 639-1 -> 639-2 for the languages seen in practice
_THREE_LETTER = {
    "ar": "ara",
    "de": "deu",
    "en": "eng",
    "es": "spa",
    "fr": "fra",
    "id": "ind",
    "it": "ita",
    "ja": "jpn",
    "ko": "kor",
    "pt": "por",
    "ru": "rus",
    "zh": "zho",
    "ger": "deu",
    "fre": "fra",
    "chi": "zho",
}

_SUBTITLE_CODES = {
    "eng": "en",
    "por": "pt",
    "jpn": "ja",
    "fra": "fr",
    "deu": "de",
    "ita": "it",
}


def normalize_language(code: str | None) -> str:
    """Return a 3-letter language code, "und" when unknown.

    IETF tags are reduced to their primary subtag ("es-419" -> "spa").
    """
    if not code:
        return "und"
    primary = code.strip().lower().replace("_", "-").split("-")[0]
    if not primary:
        return "und"
    return _THREE_LETTER.get(primary, primary)


def is_spanish(track: Track) -> bool:
    return track.language_code == "spa"


def _haystack(track: Track) -> str:
    return " ".join(part for part in (track.title, track.language_tag) if part)


def is_forced(track: Track) -> bool:
    return track.kind is TrackKind.SUBTITLE and (
        track.forced or bool(_FORCED_PATTERN.search(_haystack(track)))
    )


def explicit_spanish_variant(track: Track) -> str | None:
    """Variant named by the track's own title or language tag, if any."""
    text = _haystack(track)
    if _LATINO_PATTERN.search(text):
        return LATINO
    if _CASTILIAN_PATTERN.search(text):
        return CASTILIAN
    return None


def assign_variants(tracks: list[Track]) -> list[Track]:
    """Label language variants on tracks of one kind.

    Spanish tracks named latino/castilian by their title or tag keep that
    label. Untagged Spanish tracks are labeled from their neighbours:

    - a latino track exists and no castilian one: "castilian (inferred)"
    - a castilian track exists and no latino one: "latino (inferred)"
    - neither exists: the first Spanish track is "castilian (by order)",
      later ones "latino (by order)"
    - both exist: "unknown"

    Forced subtitle tracks take part in none of this; they are labeled
    "forced", prefixed with their explicit variant if they have one.

    Returns:
        New Track objects in the original order
    """
    spanish_full = [t for t in tracks if is_spanish(t) and not is_forced(t)]
    explicit = {t.track_index: explicit_spanish_variant(t) for t in spanish_full}
    has_latino = LATINO in explicit.values()
    has_castilian = CASTILIAN in explicit.values()

    labeled: list[Track] = []
    for track in tracks:
        variant: str | None = None
        if is_forced(track):
            base = explicit_spanish_variant(track) if is_spanish(track) else None
            variant = f"{base} {FORCED}" if base else FORCED
        elif is_spanish(track):
            variant = explicit[track.track_index]
            if variant is None:
                if has_latino and not has_castilian:
                    variant = f"{CASTILIAN} (inferred)"
                elif has_castilian and not has_latino:
                    variant = f"{LATINO} (inferred)"
                elif not has_latino and not has_castilian:
                    position = spanish_full.index(track)
                    variant = f"{CASTILIAN} (by order)" if position == 0 else f"{LATINO} (by order)"
                else:
                    variant = "unknown"
        labeled.append(track.model_copy(update={"language_variant": variant}))
    return labeled


def _spanish_suffix(
    track: Track, tracks: list[Track], latino_track: int | None = None
) -> str:
    if latino_track is not None:
        return "lat" if track.track_index == latino_track else "spa"

    variant = track.language_variant or ""
    if variant.startswith(LATINO):
        return "lat"
    if variant.startswith(CASTILIAN) or variant == FORCED:
        return "spa"

    # "unknown" variant: position decides
    spanish = [t for t in tracks if is_spanish(t) and not is_forced(t)]
    return "spa" if spanish.index(track) == 0 else "lat"


def audio_suffix(
    track: Track, tracks: list[Track], latino_track: int | None = None
) -> str | None:
    """File-name suffix for an audio track; None means the bare name.

    Args:
        track: Track to name
        tracks: All audio tracks of the file, variants assigned
        latino_track: track_index the user nominated as Latino Spanish
    """
    if track.language_code == "jpn":
        return None
    if is_spanish(track):
        return _spanish_suffix(track, tracks, latino_track)
    return track.language_code if track.language_code != "und" else "unk"


def subtitle_suffix(track: Track, tracks: list[Track]) -> str:
    """File-name suffix for a subtitle track ("lat", "spa", "en", "pt", ...)."""
    if is_spanish(track):
        suffix = _spanish_suffix(track, tracks)
    elif track.language_code == "und":
        suffix = "unk"
    else:
        suffix = _SUBTITLE_CODES.get(track.language_code, track.language_code)
    if is_forced(track):
        suffix = f"{suffix}_{FORCED}"
    return suffix


def unique_suffix(suffix: str | None, used: set[str | None], fallback: str = "unk") -> str | None:
    """Return suffix, or suffix_1, suffix_2, ... if already used; records the result."""
    if suffix not in used:
        used.add(suffix)
        return suffix
    base = suffix or fallback
    counter = 1
    while f"{base}_{counter}" in used:
        counter += 1
    result = f"{base}_{counter}"
    used.add(result)
    return result
