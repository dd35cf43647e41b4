"""Core domain models for music steganography.

The note is the unit every layer of the system speaks: encoders produce
notes from characters, the MIDI codec turns notes into events and back,
and the analyzer computes its statistics over them.
"""

import logging
from enum import Enum

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class EncodingMode(str, Enum):
    """Strategy used to turn characters into notes.

    Auto-detection is not a mode of its own: a decoder that is not told the
    mode classifies the notes into one of these four.
    """

    PITCH = "pitch"
    RHYTHM = "rhythm"
    INTERVAL = "interval"
    MULTI_LAYER = "multi_layer"

    @classmethod
    def coerce(cls, value) -> "EncodingMode":
        """Resolve a mode from an enum member or a loosely spelled name.

        "MultiLayer", "multi-layer" and "multi_layer" all resolve to
        MULTI_LAYER. Unknown values fall back to MULTI_LAYER.

        Args:
            value: EncodingMode member or string name.

        Returns:
            The matching EncodingMode.
        """
        if isinstance(value, cls):
            return value
        wanted = "".join(ch for ch in str(value).lower() if ch.isalnum())
        for mode in cls:
            if mode.value.replace("_", "") == wanted:
                return mode
        logger.warning(f"Unknown encoding mode {value!r}, using multi_layer")
        return cls.MULTI_LAYER


class Note(BaseModel):
    """A single note (or rest) in a melody.

    Attributes:
        pitch: MIDI note number (0-127). Pitch 0 marks a rest.
        duration: Length in beats (positive).
        velocity: MIDI velocity (0-127).
        position: Ordering index. Encoders use the index in the sequence,
            the decoder uses the beat on which the note starts.
    """

    pitch: int = Field(..., ge=0, le=127, description="MIDI note number, 0 = rest")
    duration: float = Field(..., gt=0, description="Duration in beats")
    velocity: int = Field(80, ge=0, le=127, description="MIDI velocity")
    position: int = Field(0, ge=0, description="Ordering index")

    class Config:
        frozen = True

    @property
    def is_rest(self) -> bool:
        return self.pitch == 0


class EventType(str, Enum):
    """Kinds of track events the codec reads and writes."""

    NOTE_ON = "note_on"
    NOTE_OFF = "note_off"
    META = "meta"


class MidiEvent(BaseModel):
    """A single timed event inside a MIDI track.

    Attributes:
        type: Note on, note off or meta event.
        tick: Absolute time in MIDI ticks.
        channel: MIDI channel (0-15).
        pitch: MIDI note number for note events.
        velocity: MIDI velocity for note events.
        meta_type: Meta event type byte (0x51 tempo, 0x2F end of track).
        data: Raw meta event payload.
    """

    type: EventType = Field(..., description="Event kind")
    tick: int = Field(..., ge=0, description="Absolute time in MIDI ticks")
    channel: int = Field(0, ge=0, le=15, description="MIDI channel")
    pitch: int = Field(0, ge=0, le=127, description="MIDI note number")
    velocity: int = Field(0, ge=0, le=127, description="MIDI velocity")
    meta_type: int | None = Field(None, ge=0, le=127, description="Meta event type")
    data: bytes = Field(b"", description="Meta event payload")

    @property
    def starts_note(self) -> bool:
        return self.type == EventType.NOTE_ON and self.velocity > 0

    @property
    def ends_note(self) -> bool:
        """Whether the event releases a note.

        A note on with velocity 0 counts as a note off.
        """
        return self.type == EventType.NOTE_OFF or (
            self.type == EventType.NOTE_ON and self.velocity == 0
        )


class Track(BaseModel):
    """Tick-ordered events of one MIDI track.

    Attributes:
        channel: Channel the track's notes play on.
        events: Events sorted by tick.
        complete: False when parsing stopped before the end of the track.
        error: Description of the problem that stopped parsing.
    """

    channel: int = Field(0, ge=0, le=15, description="MIDI channel")
    events: list[MidiEvent] = Field(default_factory=list, description="Track events")
    complete: bool = Field(True, description="Whether the track was fully read")
    error: str | None = Field(None, description="Parse error, if any")


class MidiDocument(BaseModel):
    """In-memory form of a Standard MIDI File.

    Attributes:
        format: SMF format (the encoder always writes 1).
        ticks_per_beat: Header division.
        tempo: Tempo in beats per minute from the first tempo event.
        tracks: Tracks in file order, melody first.
        errors: Structural problems met while reading the tracks.
    """

    format: int = Field(1, ge=0, le=2, description="SMF format")
    ticks_per_beat: int = Field(480, ge=1, description="Ticks per quarter note")
    tempo: float = Field(120.0, gt=0, description="Tempo in BPM")
    tracks: list[Track] = Field(default_factory=list, description="Tracks")
    errors: list[str] = Field(default_factory=list, description="Parse errors")

    @property
    def complete(self) -> bool:
        return not self.errors and all(track.complete for track in self.tracks)
