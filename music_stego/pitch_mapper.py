"""
Character to pitch mapping over diatonic scales.

Letters walk up the scale of the chosen key, seven letters per octave,
starting at middle C (MIDI 60). Digits sit on the chromatic run starting
at C5 (MIDI 72) and every other character lands somewhere in the three
octaves above C3. A space is a rest.

Letters H to M share the digit band 72-81, so a digit is struck with an
accent velocity that letters never use. ``note_to_char`` relies on that
accent to tell the two apart.
"""

import logging
from functools import lru_cache
from types import MappingProxyType

import music21

from music_stego.models import Note, PitchAnalysis
from music_stego.models.settings_models import DEFAULT_KEY
from music_stego.stats import describe, histogram, shannon_entropy

logger = logging.getLogger(__name__)

SCALES = MappingProxyType(
    {
        "c_major": (0, 2, 4, 5, 7, 9, 11),
        "a_minor": (0, 2, 3, 5, 7, 8, 10),
        "g_major": (0, 2, 4, 5, 7, 9, 11),
        "d_major": (0, 2, 4, 6, 7, 9, 11),
    }
)

BASE_PITCH = 60
DIGIT_BASE_PITCH = 72
OTHER_BASE_PITCH = 48
NOTE_DURATION = 0.5
NOTE_VELOCITY = 80
DIGIT_VELOCITY = 100
REST_UNIT = 0.5


def get_scale_notes(key: str) -> tuple[int, ...]:
    """Return the semitone offsets of the scale for ``key``.

    Unknown keys fall back to C major.
    """
    scale = SCALES.get(key)
    if scale is None:
        logger.debug(f"No scale for key {key!r}, using {DEFAULT_KEY}")
        return SCALES[DEFAULT_KEY]
    return scale


def _letter_index(char: str) -> int | None:
    if len(char) != 1 or not char.isascii() or not char.isalpha():
        return None
    return ord(char.upper()) - ord("A")


def letter_pitch(index: int, key: str = DEFAULT_KEY) -> int:
    """Pitch of the letter with alphabet index ``index`` (A = 0)."""
    scale = get_scale_notes(key)
    octave, degree = divmod(index, len(scale))
    return BASE_PITCH + octave * 12 + scale[degree]


@lru_cache(maxsize=8)
def _letter_pitches(key: str) -> dict[int, str]:
    return {letter_pitch(i, key): chr(ord("A") + i) for i in range(26)}


def char_to_pitch(char: str, key: str = DEFAULT_KEY, position: int = 0) -> Note:
    """Map one character to a note.

    Args:
        char: Character to map.
        key: Musical key whose scale the letters follow.
        position: Index of the note in its sequence.

    Returns:
        A rest for a space, otherwise a half-beat note.
    """
    if char == " ":
        return Note(pitch=0, duration=NOTE_DURATION, velocity=0, position=position)

    index = _letter_index(char)
    if index is not None:
        pitch = letter_pitch(index, key)
        velocity = NOTE_VELOCITY
    elif char.isascii() and char.isdigit():
        pitch = DIGIT_BASE_PITCH + int(char)
        velocity = DIGIT_VELOCITY
    else:
        pitch = OTHER_BASE_PITCH + ord(char) % 36
        velocity = NOTE_VELOCITY

    return Note(
        pitch=pitch, duration=NOTE_DURATION, velocity=velocity, position=position
    )


def _nearest_scale_char(pitch: int, key: str) -> str:
    scale = get_scale_notes(key)
    octave, semitone = divmod(pitch - BASE_PITCH, 12)
    degree = min(range(len(scale)), key=lambda i: abs(scale[i] - semitone))
    index = octave * len(scale) + degree
    if 0 <= index < 26:
        return chr(ord("A") + index)
    return "?"


def pitch_to_char(pitch: int, key: str = DEFAULT_KEY) -> str:
    """Map a pitch back to a character.

    Pitch 0 is a space and the band 72-81 is read as digits. Any other
    pitch snaps to the nearest scale degree of its octave; degrees outside
    A-Z give ``?``.
    """
    if pitch == 0:
        return " "
    if DIGIT_BASE_PITCH <= pitch <= DIGIT_BASE_PITCH + 9:
        return str(pitch - DIGIT_BASE_PITCH)
    return _nearest_scale_char(pitch, key)


def note_to_char(note: Note, key: str = DEFAULT_KEY) -> str:
    """Map a note back to text, using its velocity to resolve digits.

    A rest gives one space per half beat of silence. Inside the digit band
    an accented note is a digit, an unaccented note on a letter pitch is
    that letter, and anything else is a digit.

    Args:
        note: Note to decode.
        key: Musical key the note was encoded in.

    Returns:
        One or more characters.
    """
    if note.is_rest:
        return " " * max(1, round(note.duration / REST_UNIT))
    if DIGIT_BASE_PITCH <= note.pitch <= DIGIT_BASE_PITCH + 9:
        if note.velocity != DIGIT_VELOCITY:
            letter = _letter_pitches(key).get(note.pitch)
            if letter is not None:
                return letter
        return str(note.pitch - DIGIT_BASE_PITCH)
    return pitch_to_char(note.pitch, key)


def pitch_to_note_name(pitch: int) -> str:
    """Convert a MIDI note number to a note name (e.g., "C4").

    Args:
        pitch: MIDI note number (0-127); 0 is a rest.

    Returns:
        The pitch name with octave, or "rest".
    """
    if pitch == 0:
        return "rest"
    p = music21.pitch.Pitch()
    p.midi = pitch
    return p.nameWithOctave


def analyze_pitch_distribution(notes: list[Note]) -> PitchAnalysis:
    """Compute pitch statistics over the sounding notes.

    Rests are ignored.

    Args:
        notes: Notes to analyse.

    Returns:
        PitchAnalysis with mean, median, spread, entropy and the pitch
        class histogram. All zeros when nothing sounds.
    """
    pitches = [note.pitch for note in notes if not note.is_rest]
    if not pitches:
        return PitchAnalysis()

    mean, median, std_dev = describe(pitches)
    return PitchAnalysis(
        note_count=len(pitches),
        mean=mean,
        median=median,
        std_dev=std_dev,
        entropy=shannon_entropy(pitches),
        lowest=min(pitches),
        highest=max(pitches),
        pitch_class_distribution=histogram(p % 12 for p in pitches),
    )
