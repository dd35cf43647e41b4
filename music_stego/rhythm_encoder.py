"""
Rhythm-based encoding and rhythm statistics.

Each character becomes eight notes, one per bit of its 8-bit code, most
significant bit first: a set bit is a quarter-length note (0.5 beats) and a
clear bit an eighth (0.25 beats). The pitches only decorate the rhythm by
walking up the key's base scale.

The module also holds the rhythm statistics used by the decoder and the
forensic analyzer, including a heuristic detector for exactly this kind of
encoding.
"""

import logging
from types import MappingProxyType

from music_stego.models import Note, RhythmAnalysis, RhythmDetection
from music_stego.models.settings_models import DEFAULT_KEY
from music_stego.stats import histogram, shannon_entropy

logger = logging.getLogger(__name__)

BASE_PITCHES = MappingProxyType(
    {
        "c_major": (60, 62, 64, 65, 67, 69, 71, 72),
        "a_minor": (57, 59, 60, 62, 64, 65, 67, 69),
        "g_major": (55, 57, 59, 60, 62, 64, 66, 67),
        "d_major": (62, 64, 66, 67, 69, 71, 73, 74),
    }
)

BITS_PER_CHAR = 8
ONE_DURATION = 0.5
ZERO_DURATION = 0.25
BIT_THRESHOLD = 0.4
RHYTHM_VELOCITY = 80
DURATIONS = (0.25, 0.375, 0.5, 0.75, 1.0)


def get_base_pitches(key: str) -> tuple[int, ...]:
    return BASE_PITCHES.get(key, BASE_PITCHES[DEFAULT_KEY])


def char_to_rhythm_sequence(
    char: str, key: str = DEFAULT_KEY, start_position: int = 0
) -> list[Note]:
    """Encode one character as eight notes whose durations carry its bits.

    Args:
        char: Character to encode. Code points above 127 become ``?``.
        key: Musical key choosing the decorative pitches.
        start_position: Position of the first note.

    Returns:
        Eight notes, most significant bit first.
    """
    code = ord(char)
    if code > 127:
        logger.debug(f"Character {char!r} is outside 7-bit ASCII, encoding '?'")
        code = ord("?")

    pitches = get_base_pitches(key)
    bits = format(code, "08b")
    return [
        Note(
            pitch=pitches[idx % len(pitches)],
            duration=ONE_DURATION if bit == "1" else ZERO_DURATION,
            velocity=RHYTHM_VELOCITY,
            position=start_position + idx,
        )
        for idx, bit in enumerate(bits)
    ]


def rhythm_sequence_to_char(notes: list[Note]) -> str:
    """Decode a group of eight notes back to a character.

    Notes at least 0.4 beats long are read as 1 bits. Groups that are not
    exactly eight notes long, and codes outside 1-127, decode to ``?``.
    """
    if len(notes) != BITS_PER_CHAR:
        return "?"
    bits = "".join("1" if note.duration >= BIT_THRESHOLD else "0" for note in notes)
    code = int(bits, 2)
    if 0 < code < 128:
        return chr(code)
    return "?"


def char_to_duration(char: str) -> float:
    """Pick a duration from the code point of ``char`` (code mod 5)."""
    return DURATIONS[ord(char) % len(DURATIONS)]


def _syncopation_index(notes: list[Note]) -> float:
    # Beats 1 and 3 (counting from 0) are the weak beats of a 4/4 bar
    if not notes:
        return 0.0
    weak = sum(1 for note in notes if note.position % 4 in (1, 3))
    return weak / len(notes)


def analyze_rhythm_patterns(notes: list[Note]) -> RhythmAnalysis:
    """Compute duration statistics for a note sequence.

    Args:
        notes: Notes to analyse, in order.

    Returns:
        RhythmAnalysis with totals, duration histogram, entropy and the
        syncopation index.
    """
    durations = [note.duration for note in notes]
    if not durations:
        return RhythmAnalysis()

    distribution = histogram(durations)
    return RhythmAnalysis(
        note_count=len(durations),
        total_duration=sum(durations),
        rhythm_variety=len(distribution),
        duration_distribution=distribution,
        average_duration=sum(durations) / len(durations),
        rhythm_entropy=shannon_entropy(durations),
        syncopation_index=_syncopation_index(notes),
    )


def _entropy_score(entropy: float) -> float:
    if entropy < 1.0:
        return 1.0 - entropy
    if entropy > 3.0:
        return min((entropy - 2.5) / 2.0, 1.0)
    return 0.0


def _variety_score(variety: int, total: int) -> float:
    ratio = variety / max(total, 1)
    if ratio > 0.8:
        return 1.0
    if ratio < 0.1:
        return 0.8
    return 0.0


def _syncopation_score(syncopation: float) -> float:
    return 0.9 if abs(syncopation - 0.5) < 0.05 else 0.0


def detect_rhythm_encoding(notes: list[Note]) -> RhythmDetection:
    """Score how strongly a rhythm looks like it carries data.

    Durations that are too uniform or too random, a distinct-duration ratio
    that is very high or very low, and a syncopation index pinned at 0.5
    each raise the score.

    Args:
        notes: Notes to score.

    Returns:
        RhythmDetection with the three component scores, their mean and
        the boolean indicators. An empty sequence scores 0.
    """
    if not notes:
        return RhythmDetection()

    analysis = analyze_rhythm_patterns(notes)
    entropy_score = _entropy_score(analysis.rhythm_entropy)
    variety_score = _variety_score(analysis.rhythm_variety, len(notes))
    syncopation_score = _syncopation_score(analysis.syncopation_index)

    return RhythmDetection(
        entropy_score=entropy_score,
        variety_score=variety_score,
        syncopation_score=syncopation_score,
        suspicion_score=(entropy_score + variety_score + syncopation_score) / 3,
        entropy_anomaly=entropy_score > 0.6,
        unusual_variety=variety_score > 0.7,
        suspicious_syncopation=syncopation_score > 0.8,
    )
