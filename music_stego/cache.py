"""Caching for the analysis pipeline.

Forensic operations on the same file (scoring, baseline comparison,
chi-square) all start from the same parse and statistics. This module
memoizes those stages per byte string with LRU caches so a file is parsed
and measured once no matter how many analyses run over it.

The parse stage and the statistics stage are cached separately, so a
change of decode parameters reuses the parsed document.
"""

from functools import lru_cache

from music_stego.decoder import analyze_document
from music_stego.midi_codec import parse
from music_stego.models import DecodeParams, MidiDocument, MusicAnalysis

PARSE_CACHE_SIZE = 32
ANALYSIS_CACHE_SIZE = 64


# Stage 1: Parsing
@lru_cache(maxsize=PARSE_CACHE_SIZE)
def cached_parse(data: bytes) -> MidiDocument:
    """Cached version of MIDI parsing.

    Args:
        data: MIDI file bytes.

    Returns:
        Parsed MidiDocument. Treat it as read-only, it is shared.
    """
    return parse(data)


# Stage 2: Statistics
@lru_cache(maxsize=ANALYSIS_CACHE_SIZE)
def cached_analysis(data: bytes, mode: str | None = None, key: str = "c_major") -> MusicAnalysis:
    """Cached version of the per-file statistical bundle.

    Builds upon the cached parse so different decode parameters share it.

    Args:
        data: MIDI file bytes.
        mode: Encoding mode name, or None to auto-detect.
        key: Musical key.

    Returns:
        MusicAnalysis for the file. Treat it as read-only, it is shared.
    """
    return analyze_document(cached_parse(data), DecodeParams(mode=mode, key=key))


def clear_all_caches() -> None:
    """Clear all caches to free memory."""
    cached_parse.cache_clear()
    cached_analysis.cache_clear()


def get_cache_info() -> dict:
    """Get hit/miss statistics for each cache."""
    return {
        "parse": cached_parse.cache_info(),
        "analysis": cached_analysis.cache_info(),
    }
