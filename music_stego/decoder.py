"""
Message decoding and per-file statistics.

The decoder reads the melody (first) track of a MIDI file, pairs its note
events back into notes and inverts the encoding layer. When the layer is
not given it is guessed from the shape of the melody:

- Two or more durations over at least eight notes: rhythm
- Pitch entropy above 2.5 bits: pitch
- Any leap wider than a fifth: interval
- Otherwise: multi-layer

Multi-layer decoding reads the pitch channel only. The duration and
velocity channels written by the encoder are not consulted, so digits that
share a pitch with a letter come back as that letter.
"""

import logging

from music_stego.encoder import INTERVAL_START_PITCH
from music_stego.midi_codec import StructuralError, events_to_notes, pair_events, parse
from music_stego.models import (
    DecodeParams,
    EncodingDetection,
    EncodingMode,
    IntervalAnalysis,
    MidiDocument,
    MusicAnalysis,
    Note,
)
from music_stego.models.settings_models import DEFAULT_KEY, resolve_params
from music_stego.pitch_mapper import analyze_pitch_distribution, note_to_char
from music_stego.rhythm_encoder import (
    BITS_PER_CHAR,
    analyze_rhythm_patterns,
    detect_rhythm_encoding,
    rhythm_sequence_to_char,
)
from music_stego.stats import histogram

logger = logging.getLogger(__name__)

WIDE_INTERVAL = 7
PITCH_ENTROPY_THRESHOLD = 2.5


class DecodeError(Exception):
    """Exception raised when a MIDI file holds nothing to decode."""

    pass


def sounding(notes: list[Note]) -> list[Note]:
    return [note for note in notes if not note.is_rest]


def extract_melody_notes(document: MidiDocument) -> list[Note]:
    """Return the notes and rests of the first track.

    Raises:
        StructuralError: If no track could be read because the file is
            damaged.
        DecodeError: If the file declares no tracks.
    """
    if not document.tracks:
        if document.errors:
            raise StructuralError(document.errors[0])
        raise DecodeError("No tracks found in MIDI data")
    return events_to_notes(document.tracks[0].events, document.ticks_per_beat)


def has_wide_intervals(notes: list[Note]) -> bool:
    return any(abs(b.pitch - a.pitch) > WIDE_INTERVAL for a, b in zip(notes, notes[1:]))


def determine_encoding_mode(
    notes: list[Note], mode: EncodingMode | None = None
) -> EncodingMode:
    """Pick the layer to invert.

    Args:
        notes: Sounding melody notes.
        mode: Explicit mode, or None to classify the notes.

    Returns:
        The explicit mode, or the classified one.
    """
    if mode is not None:
        return EncodingMode.coerce(mode)

    rhythm = analyze_rhythm_patterns(notes)
    if rhythm.rhythm_variety >= 2 and len(notes) >= BITS_PER_CHAR:
        detected = EncodingMode.RHYTHM
    elif analyze_pitch_distribution(notes).entropy > PITCH_ENTROPY_THRESHOLD:
        detected = EncodingMode.PITCH
    elif has_wide_intervals(notes):
        detected = EncodingMode.INTERVAL
    else:
        detected = EncodingMode.MULTI_LAYER

    logger.debug(f"Auto-detected encoding mode: {detected.value}")
    return detected


def _decode_pitch(notes: list[Note], key: str) -> str:
    return "".join(note_to_char(note, key) for note in notes)


def _decode_rhythm(notes: list[Note], key: str) -> str:
    notes = sounding(notes)
    return "".join(
        rhythm_sequence_to_char(notes[i : i + BITS_PER_CHAR])
        for i in range(0, len(notes), BITS_PER_CHAR)
    )


def _decode_interval(notes: list[Note], key: str) -> str:
    # The step mod 12 is the code point mod 12; A-L cover all twelve residues
    chars = []
    previous = INTERVAL_START_PITCH
    for note in sounding(notes):
        residue = (note.pitch - previous) % 12
        chars.append(chr(ord("A") + (residue - ord("A")) % 12))
        previous = note.pitch
    return "".join(chars)


LAYER_DECODERS = {
    EncodingMode.PITCH: _decode_pitch,
    EncodingMode.RHYTHM: _decode_rhythm,
    EncodingMode.INTERVAL: _decode_interval,
    EncodingMode.MULTI_LAYER: _decode_pitch,
}


def decode_notes(notes: list[Note], mode: EncodingMode, key: str = DEFAULT_KEY) -> str:
    """Invert one encoding layer over a melody, rests included."""
    return LAYER_DECODERS[EncodingMode.coerce(mode)](notes, key)


def decode(data: bytes, params: DecodeParams | None = None, **options) -> str:
    """Recover a hidden message from MIDI bytes.

    Args:
        data: MIDI file bytes.
        params: Decoding parameters.
        **options: Overrides for individual parameters (mode, key).

    Returns:
        The decoded message.

    Raises:
        StructuralError: If the file header is damaged or no track can be
            read.
        DecodeError: If the file has no tracks.
    """
    params = resolve_params(params, DecodeParams, options)
    document = parse(data)
    notes = extract_melody_notes(document)
    mode = determine_encoding_mode(sounding(notes), params.mode)
    return decode_notes(notes, mode, params.key)


def analyze_intervals(notes: list[Note]) -> IntervalAnalysis:
    """Statistics of the signed steps between adjacent sounding notes."""
    pitches = [note.pitch for note in sounding(notes)]
    intervals = [b - a for a, b in zip(pitches, pitches[1:])]
    if not intervals:
        return IntervalAnalysis()

    distribution = histogram(intervals)
    return IntervalAnalysis(
        intervals=intervals,
        mean_interval=sum(intervals) / len(intervals),
        max_interval=max(intervals),
        min_interval=min(intervals),
        interval_variety=len(distribution),
        interval_distribution=distribution,
    )


def _rhythm_score(notes: list[Note]) -> float:
    variety = analyze_rhythm_patterns(notes).rhythm_variety
    if variety >= 2 and len(notes) >= BITS_PER_CHAR:
        return 0.8
    if variety >= 2:
        return 0.5
    return 0.2


def _pitch_score(notes: list[Note]) -> float:
    entropy = analyze_pitch_distribution(notes).entropy
    if entropy > 3.0:
        return 0.9
    if entropy > 2.0:
        return 0.7
    return 0.4


def _interval_score(notes: list[Note]) -> float:
    wide = has_wide_intervals(notes)
    if wide and analyze_intervals(notes).interval_variety > 5:
        return 0.7
    if wide:
        return 0.5
    return 0.3


def suggest_encoding_modes(notes: list[Note]) -> list[tuple[EncodingMode, float]]:
    """Rank the rhythm, pitch and interval layers by how well they fit.

    Args:
        notes: Sounding melody notes.

    Returns:
        (mode, score) pairs, highest score first.
    """
    scores = [
        (EncodingMode.RHYTHM, _rhythm_score(notes)),
        (EncodingMode.PITCH, _pitch_score(notes)),
        (EncodingMode.INTERVAL, _interval_score(notes)),
    ]
    return sorted(scores, key=lambda item: item[1], reverse=True)


def texture_notes(document: MidiDocument) -> list[Note]:
    """Sounding notes of every track, merged in onset order."""
    paired = []
    for track in document.tracks:
        paired.extend(pair_events(track.events, document.ticks_per_beat))
    return [note for _, _, note in sorted(paired, key=lambda item: item[0])]


def analyze_notes(
    notes: list[Note],
    texture: list[Note] | None = None,
    mode: EncodingMode | None = None,
) -> MusicAnalysis:
    """Build the statistical bundle for a melody.

    Args:
        notes: Melody notes; rests are ignored.
        texture: Every sounding note of the piece, used for the
            rhythm-encoding suspicion. Defaults to the melody.
        mode: Explicit mode, or None to classify the melody.

    Returns:
        MusicAnalysis describing a single-track piece.
    """
    notes = sounding(notes)
    rhythm = analyze_rhythm_patterns(notes)
    detection = detect_rhythm_encoding(notes if texture is None else texture)

    return MusicAnalysis(
        note_count=len(notes),
        duration_beats=rhythm.total_duration,
        track_count=1,
        pitch_analysis=analyze_pitch_distribution(notes),
        rhythm_analysis=rhythm,
        interval_analysis=analyze_intervals(notes),
        encoding_detection=EncodingDetection(
            detected_mode=determine_encoding_mode(notes, mode),
            likely_modes=suggest_encoding_modes(notes),
            rhythm_suspicion=detection.suspicion_score,
            indicators=detection,
        ),
    )


def analyze_document(
    document: MidiDocument, params: DecodeParams | None = None
) -> MusicAnalysis:
    """Build the statistical bundle for a parsed document."""
    params = params or DecodeParams()
    analysis = analyze_notes(
        extract_melody_notes(document), texture_notes(document), params.mode
    )
    return analysis.model_copy(
        update={
            "track_count": len(document.tracks),
            "complete": document.complete,
            "tempo": document.tempo,
        }
    )


def analyze(data: bytes, params: DecodeParams | None = None, **options) -> MusicAnalysis:
    """Compute the statistical bundle of a MIDI file.

    Works whether or not the file decodes to a meaningful message.

    Args:
        data: MIDI file bytes.
        params: Decoding parameters.
        **options: Overrides for individual parameters.

    Returns:
        MusicAnalysis of the melody, with rhythm-encoding suspicion
        measured over every track.
    """
    params = resolve_params(params, DecodeParams, options)
    return analyze_document(parse(data), params)
