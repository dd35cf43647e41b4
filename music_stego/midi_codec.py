"""Standard MIDI File reading and writing.

This module converts note sequences to format-1 Standard MIDI Files and
parses such files back into tracks of timed events. The byte layout is
written by hand so that every frame of the file is under our control, while
tempo conversions follow mido so the output interoperates with standard
tooling.

Parsing degrades gracefully: a broken header is an error, but a broken
track only stops that track. The events read before the break are kept and
the track is flagged incomplete.
"""

import logging
import struct
from collections import defaultdict, deque

import mido

from music_stego.models import EventType, MidiDocument, MidiEvent, Note, Track

logger = logging.getLogger(__name__)

TICKS_PER_BEAT = 480
DEFAULT_TEMPO = 120
MAX_VLQ_CONTINUATION_BYTES = 4
MAX_VLQ_VALUE = 1 << 28

HEADER_MAGIC = b"MThd"
TRACK_MAGIC = b"MTrk"
HEADER_LENGTH = 6

NOTE_OFF = 0x80
NOTE_ON = 0x90
META = 0xFF
META_TEMPO = 0x51
META_END_OF_TRACK = 0x2F


class MidiCodecError(Exception):
    """Base exception for MIDI codec errors."""

    pass


class StructuralError(MidiCodecError):
    """Exception raised when the byte stream is not a valid MIDI file."""

    pass


def encode_vlq(value: int) -> bytes:
    """Encode an integer as a MIDI variable-length quantity.

    Args:
        value: Integer in [0, 2**28).

    Returns:
        Big-endian base-128 bytes, continuation bit set on all but the last.

    Raises:
        ValueError: If value is out of range.
    """
    if not 0 <= value < MAX_VLQ_VALUE:
        raise ValueError(f"VLQ value out of range: {value}")

    out = [value & 0x7F]
    value >>= 7
    while value:
        out.append((value & 0x7F) | 0x80)
        value >>= 7
    return bytes(reversed(out))


def decode_vlq(data: bytes, offset: int = 0) -> tuple[int, int]:
    """Decode a variable-length quantity starting at ``offset``.

    Args:
        data: Byte buffer.
        offset: Index of the first byte of the quantity.

    Returns:
        Tuple of (value, offset just past the quantity).

    Raises:
        StructuralError: If the data ends mid-quantity or more than four
            continuation bytes are present.
    """
    value = 0
    for _ in range(MAX_VLQ_CONTINUATION_BYTES + 1):
        if offset >= len(data):
            raise StructuralError("Variable-length quantity is truncated")
        byte = data[offset]
        offset += 1
        value = (value << 7) | (byte & 0x7F)
        if not byte & 0x80:
            return value, offset
    raise StructuralError(
        f"Variable-length quantity exceeds {MAX_VLQ_CONTINUATION_BYTES} "
        "continuation bytes"
    )


# Writing


def notes_to_events(notes: list[Note], channel: int = 0) -> tuple[list[MidiEvent], int]:
    """Lay notes end to end as note on/off pairs.

    Rests advance time without producing events.

    Args:
        notes: Notes in playing order.
        channel: MIDI channel for the events.

    Returns:
        Tuple of (tick-sorted events, tick at which the last note ends).
    """
    events: list[MidiEvent] = []
    tick = 0
    for note in notes:
        ticks = round(note.duration * TICKS_PER_BEAT)
        if note.is_rest:
            tick += ticks
            continue

        ticks = max(ticks, 1)
        events.append(
            MidiEvent(
                type=EventType.NOTE_ON,
                tick=tick,
                channel=channel,
                pitch=note.pitch,
                velocity=max(note.velocity, 1),
            )
        )
        events.append(
            MidiEvent(
                type=EventType.NOTE_OFF,
                tick=tick + ticks,
                channel=channel,
                pitch=note.pitch,
            )
        )
        tick += ticks

    return sorted(events, key=lambda e: e.tick), tick


def _tempo_event(tempo: float) -> MidiEvent:
    microseconds = int(mido.bpm2tempo(tempo))
    return MidiEvent(
        type=EventType.META,
        tick=0,
        meta_type=META_TEMPO,
        data=microseconds.to_bytes(3, "big"),
    )


def build_track(notes: list[Note], channel: int, tempo: float) -> Track:
    """Build one track: tempo, the notes, then end-of-track."""
    note_events, end_tick = notes_to_events(notes, channel)
    end_of_track = MidiEvent(type=EventType.META, tick=end_tick, meta_type=META_END_OF_TRACK)
    return Track(channel=channel, events=[_tempo_event(tempo), *note_events, end_of_track])


def build_document(
    notes: list[Note],
    harmony_notes: list[Note] | None = None,
    tempo: float = DEFAULT_TEMPO,
) -> MidiDocument:
    """Build a two-track document: melody on channel 0, harmony on channel 1.

    Args:
        notes: Melody notes.
        harmony_notes: Harmony notes, or None for an empty harmony track.
        tempo: Tempo in beats per minute.

    Returns:
        MidiDocument ready for serialization.
    """
    return MidiDocument(
        format=1,
        ticks_per_beat=TICKS_PER_BEAT,
        tempo=tempo,
        tracks=[
            build_track(notes, 0, tempo),
            build_track(harmony_notes or [], 1, tempo),
        ],
    )


def _event_bytes(event: MidiEvent) -> bytes:
    if event.type == EventType.NOTE_ON:
        return bytes([NOTE_ON | event.channel, event.pitch, event.velocity])
    if event.type == EventType.NOTE_OFF:
        return bytes([NOTE_OFF | event.channel, event.pitch, 0])
    return bytes([META, event.meta_type]) + encode_vlq(len(event.data)) + event.data


def serialize_track(track: Track) -> bytes:
    """Serialize a track as an ``MTrk`` chunk with delta-time prefixes."""
    payload = bytearray()
    previous = 0
    for event in track.events:
        payload += encode_vlq(event.tick - previous)
        payload += _event_bytes(event)
        previous = event.tick
    return struct.pack(">4sI", TRACK_MAGIC, len(payload)) + bytes(payload)


def serialize_document(document: MidiDocument) -> bytes:
    """Serialize a document to Standard MIDI File bytes."""
    header = struct.pack(
        ">4sIHHH",
        HEADER_MAGIC,
        HEADER_LENGTH,
        document.format,
        len(document.tracks),
        document.ticks_per_beat,
    )
    return header + b"".join(serialize_track(track) for track in document.tracks)


def serialize(
    notes: list[Note],
    harmony_notes: list[Note] | None = None,
    tempo: float = DEFAULT_TEMPO,
) -> bytes:
    """Encode melody and harmony notes as a format-1 MIDI file.

    Args:
        notes: Melody notes.
        harmony_notes: Harmony notes, may be empty.
        tempo: Tempo in beats per minute.

    Returns:
        MIDI file bytes.
    """
    return serialize_document(build_document(notes, harmony_notes, tempo))


# Reading


def _read_data_bytes(payload: bytes, offset: int, count: int) -> bytes:
    chunk = payload[offset : offset + count]
    if len(chunk) < count:
        raise StructuralError("Event is truncated")
    if any(byte & 0x80 for byte in chunk):
        raise StructuralError(f"Invalid data byte in event at offset {offset}")
    return chunk


def parse_track(payload: bytes) -> Track:
    """Parse the payload of one ``MTrk`` chunk.

    Stops at the first malformed frame and returns what was read so far.
    Channel messages may omit a repeated status byte (running status).

    Args:
        payload: Chunk payload without the chunk header.

    Returns:
        Track with its events; ``complete`` is False if parsing stopped
        early or no end-of-track event was found.
    """
    events: list[MidiEvent] = []
    channel: int | None = None
    running_status: int | None = None
    tick = 0
    offset = 0

    try:
        while offset < len(payload):
            delta, offset = decode_vlq(payload, offset)
            tick += delta
            if offset >= len(payload):
                raise StructuralError("Event is truncated after its delta time")

            byte = payload[offset]
            if byte & 0x80:
                status = byte
                offset += 1
            elif running_status is not None:
                status = running_status
            else:
                raise StructuralError(
                    f"Data byte 0x{byte:02X} without a preceding status byte"
                )

            if status == META:
                running_status = None
                meta_type = _read_data_bytes(payload, offset, 1)[0]
                length, offset = decode_vlq(payload, offset + 1)
                data = payload[offset : offset + length]
                if len(data) < length:
                    raise StructuralError("Meta event is truncated")
                offset += length
                events.append(
                    MidiEvent(type=EventType.META, tick=tick, meta_type=meta_type, data=data)
                )
                if meta_type == META_END_OF_TRACK:
                    return Track(channel=channel or 0, events=events)
            elif status & 0xF0 in (NOTE_ON, NOTE_OFF):
                running_status = status
                pitch, velocity = _read_data_bytes(payload, offset, 2)
                offset += 2
                if channel is None:
                    channel = status & 0x0F
                events.append(
                    MidiEvent(
                        type=EventType.NOTE_ON if status & 0xF0 == NOTE_ON else EventType.NOTE_OFF,
                        tick=tick,
                        channel=status & 0x0F,
                        pitch=pitch,
                        velocity=velocity,
                    )
                )
            else:
                raise StructuralError(f"Unsupported status byte 0x{status:02X}")

        raise StructuralError("Track ends without an end-of-track event")
    except StructuralError as e:
        return Track(channel=channel or 0, events=events, complete=False, error=str(e))


def parse(data: bytes, strict: bool = False) -> MidiDocument:
    """Parse Standard MIDI File bytes.

    Args:
        data: MIDI file bytes.
        strict: Raise on the first damaged track instead of keeping the
            events read so far.

    Returns:
        MidiDocument with every track that could be read. Problems met in
        the track chunks are listed in ``errors``.

    Raises:
        StructuralError: If the header chunk is invalid, or in strict mode
            if any track is damaged.
    """
    if len(data) < 14:
        raise StructuralError("MIDI header is truncated")

    magic, length, fmt, track_count, division = struct.unpack_from(">4sIHHH", data)
    if magic != HEADER_MAGIC:
        raise StructuralError(f"Bad header magic {magic!r}")
    if length != HEADER_LENGTH:
        raise StructuralError(f"Bad header length {length}")
    if division & 0x8000 or division == 0:
        raise StructuralError(f"Unsupported time division 0x{division:04X}")

    tracks: list[Track] = []
    errors: list[str] = []
    offset = 8 + length

    for index in range(track_count):
        if offset + 8 > len(data):
            errors.append(f"Track {index}: chunk header is truncated")
            break
        chunk_magic, chunk_length = struct.unpack_from(">4sI", data, offset)
        if chunk_magic != TRACK_MAGIC:
            errors.append(f"Track {index}: bad chunk magic {chunk_magic!r}")
            break

        offset += 8
        payload = data[offset : offset + chunk_length]
        offset += chunk_length
        track = parse_track(payload)
        if len(payload) < chunk_length:
            track = track.model_copy(
                update={
                    "complete": False,
                    "error": track.error
                    or f"Chunk declares {chunk_length} bytes, {len(payload)} present",
                }
            )
        tracks.append(track)
        if track.error:
            errors.append(f"Track {index}: {track.error}")

    if errors:
        if strict:
            raise StructuralError(errors[0])
        for error in errors:
            logger.warning(f"Partial MIDI parse: {error}")

    return MidiDocument(
        format=fmt,
        ticks_per_beat=division,
        tempo=_first_tempo(tracks),
        tracks=tracks,
        errors=errors,
    )


def _first_tempo(tracks: list[Track]) -> float:
    for track in tracks:
        for event in track.events:
            if event.meta_type == META_TEMPO and len(event.data) == 3:
                return mido.tempo2bpm(int.from_bytes(event.data, "big"))
    return float(DEFAULT_TEMPO)


# Event pairing


def pair_events(
    events: list[MidiEvent], ticks_per_beat: int = TICKS_PER_BEAT
) -> list[tuple[int, int, Note]]:
    """Match note ons with note offs.

    Each note on is paired with the nearest later unused note off of the
    same pitch and channel. Note ons without a partner are dropped.

    Args:
        events: Track events in file order.
        ticks_per_beat: Header division.

    Returns:
        List of (onset tick, release tick, note) sorted by onset. The note
        position is the beat on which it starts.
    """
    releases: dict[tuple[int, int], deque[int]] = defaultdict(deque)
    for idx, event in enumerate(events):
        if event.ends_note:
            releases[(event.channel, event.pitch)].append(idx)

    paired = []
    for idx, event in enumerate(events):
        if not event.starts_note:
            continue
        queue = releases[(event.channel, event.pitch)]
        while queue and queue[0] < idx:
            queue.popleft()
        if not queue:
            continue

        release = events[queue.popleft()]
        ticks = max(release.tick - event.tick, 1)
        note = Note(
            pitch=event.pitch,
            duration=ticks / ticks_per_beat,
            velocity=event.velocity,
            position=event.tick // ticks_per_beat,
        )
        paired.append((event.tick, event.tick + ticks, note))

    return sorted(paired, key=lambda item: item[0])


def _rest(start: int, end: int, ticks_per_beat: int) -> Note:
    return Note(
        pitch=0,
        duration=(end - start) / ticks_per_beat,
        velocity=0,
        position=start // ticks_per_beat,
    )


def events_to_notes(
    events: list[MidiEvent], ticks_per_beat: int = TICKS_PER_BEAT
) -> list[Note]:
    """Rebuild a note sequence, rests included, from track events.

    Silence before the first note, between notes and before the
    end-of-track event becomes rest notes.

    Args:
        events: Track events in file order.
        ticks_per_beat: Header division.

    Returns:
        Notes and rests ordered by onset.
    """
    end_tick = max(
        (e.tick for e in events if e.meta_type == META_END_OF_TRACK), default=0
    )

    notes: list[Note] = []
    cursor = 0
    for onset, release, note in pair_events(events, ticks_per_beat):
        if onset > cursor:
            notes.append(_rest(cursor, onset, ticks_per_beat))
        notes.append(note)
        cursor = max(cursor, release)

    if end_tick > cursor:
        notes.append(_rest(cursor, end_tick, ticks_per_beat))
    return notes
