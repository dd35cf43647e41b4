"""
Message encoding: text to notes to MIDI bytes.

A message is turned into a melody by one of four layer strategies, an
optional decorative chord track is generated to make the result sound (and
measure) more like ordinary music, and both are serialized as a format-1
MIDI file.
"""

import logging
import math

from music_stego.midi_codec import serialize
from music_stego.models import EncodeParams, EncodingInfo, EncodingMode, Note, PitchRange
from music_stego.models.settings_models import DEFAULT_KEY, resolve_params
from music_stego.pitch_mapper import char_to_pitch, pitch_to_note_name
from music_stego.rhythm_encoder import char_to_duration, char_to_rhythm_sequence
from music_stego.stats import histogram

logger = logging.getLogger(__name__)

INTERVAL_START_PITCH = 60
INTERVAL_LOW = 48
INTERVAL_HIGH = 84
INTERVAL_DURATION = 0.5
INTERVAL_VELOCITY = 80

HARMONY_ROOTS = {"c_major": 48, "a_minor": 45, "g_major": 43, "d_major": 50}
PROGRESSION = (0, 5, 7, 0)
TRIAD = (0, 4, 7)
SECTION_LENGTH = 4
HARMONY_DURATION = 2.0
HARMONY_VELOCITY = 50


def _encode_pitch(text: str, key: str) -> list[Note]:
    return [char_to_pitch(char, key, idx) for idx, char in enumerate(text)]


def _encode_rhythm(text: str, key: str) -> list[Note]:
    notes: list[Note] = []
    for char in text:
        notes.extend(char_to_rhythm_sequence(char, key, start_position=len(notes)))
    return notes


def _encode_interval(text: str, key: str) -> list[Note]:
    notes = []
    pitch = INTERVAL_START_PITCH
    for idx, char in enumerate(text):
        pitch += ord(char) % 12
        if pitch > INTERVAL_HIGH:
            pitch -= 12
        elif pitch < INTERVAL_LOW:
            pitch += 12
        notes.append(
            Note(
                pitch=pitch,
                duration=INTERVAL_DURATION,
                velocity=INTERVAL_VELOCITY,
                position=idx,
            )
        )
    return notes


def _encode_multi_layer(text: str, key: str) -> list[Note]:
    # Pitch, duration and velocity each carry the character independently
    return [
        char_to_pitch(char, key, idx).model_copy(
            update={
                "duration": char_to_duration(char),
                "velocity": 60 + ord(char) % 40,
            }
        )
        for idx, char in enumerate(text)
    ]


LAYER_ENCODERS = {
    EncodingMode.PITCH: _encode_pitch,
    EncodingMode.RHYTHM: _encode_rhythm,
    EncodingMode.INTERVAL: _encode_interval,
    EncodingMode.MULTI_LAYER: _encode_multi_layer,
}


def encode_to_notes(
    text: str,
    mode: EncodingMode | str = EncodingMode.MULTI_LAYER,
    key: str = DEFAULT_KEY,
) -> list[Note]:
    """Turn a message into a melody.

    Args:
        text: Message to hide.
        mode: Encoding strategy.
        key: Musical key for the scale lookups.

    Returns:
        Melody notes in playing order.
    """
    mode = EncodingMode.coerce(mode)
    return LAYER_ENCODERS[mode](text, key)


def generate_harmony(notes: list[Note], key: str = DEFAULT_KEY) -> list[Note]:
    """Generate a I-IV-V-I chord accompaniment for a melody.

    Every four melody notes get one major triad. The chords carry no
    payload.

    Args:
        notes: Melody notes.
        key: Musical key choosing the chord root.

    Returns:
        Harmony notes, three per section.
    """
    root = HARMONY_ROOTS.get(key, HARMONY_ROOTS[DEFAULT_KEY])
    harmony = []
    for section in range(math.ceil(len(notes) / SECTION_LENGTH)):
        chord_root = root + PROGRESSION[section % len(PROGRESSION)]
        harmony.extend(
            Note(
                pitch=chord_root + offset,
                duration=HARMONY_DURATION,
                velocity=HARMONY_VELOCITY,
                position=section * SECTION_LENGTH,
            )
            for offset in TRIAD
        )
    return harmony


def encode(text: str, params: EncodeParams | None = None, **options) -> bytes:
    """Hide a message in a MIDI file.

    Args:
        text: Message to hide.
        params: Encoding parameters.
        **options: Overrides for individual parameters (tempo, key, mode,
            add_harmony).

    Returns:
        Format-1 MIDI file bytes with a melody and a harmony track.

    Raises:
        pydantic.ValidationError: If the tempo is out of range.
    """
    params = resolve_params(params, EncodeParams, options)
    notes = encode_to_notes(text, params.mode, params.key)
    harmony = generate_harmony(notes, params.key) if params.add_harmony else []
    logger.debug(
        f"Encoded {len(text)} characters as {len(notes)} notes "
        f"({params.mode.value}, {params.key}, {len(harmony)} harmony notes)"
    )
    return serialize(notes, harmony, params.tempo)


def encoding_info(text: str, params: EncodeParams | None = None, **options) -> EncodingInfo:
    """Describe the melody a message would be encoded as.

    Args:
        text: Message to describe.
        params: Encoding parameters.
        **options: Overrides for individual parameters.

    Returns:
        EncodingInfo with note counts, length, pitch range and intervals.
    """
    params = resolve_params(params, EncodeParams, options)
    notes = encode_to_notes(text, params.mode, params.key)
    harmony = generate_harmony(notes, params.key) if params.add_harmony else []
    pitches = [note.pitch for note in notes if not note.is_rest]

    pitch_range = PitchRange()
    if pitches:
        lowest, highest = min(pitches), max(pitches)
        pitch_range = PitchRange(
            lowest=lowest,
            highest=highest,
            span=highest - lowest,
            lowest_name=pitch_to_note_name(lowest),
            highest_name=pitch_to_note_name(highest),
        )

    return EncodingInfo(
        character_count=len(text),
        note_count=len(notes),
        harmony_note_count=len(harmony),
        duration_beats=sum(note.duration for note in notes),
        pitch_range=pitch_range,
        interval_distribution=histogram(abs(b - a) for a, b in zip(pitches, pitches[1:])),
        encoding_mode=params.mode,
        musical_key=params.key,
    )
