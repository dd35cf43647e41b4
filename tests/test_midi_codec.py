import io
import struct

import mido
import pytest

from music_stego.midi_codec import (
    StructuralError,
    build_document,
    decode_vlq,
    encode_vlq,
    events_to_notes,
    pair_events,
    parse,
    serialize,
    serialize_track,
)
from music_stego.models import EventType, MidiEvent, Note


@pytest.mark.parametrize(
    "value, encoded",
    [
        (0, b"\x00"),
        (0x40, b"\x40"),
        (0x7F, b"\x7f"),
        (0x80, b"\x81\x00"),
        (0x2000, b"\xc0\x00"),
        (0x3FFF, b"\xff\x7f"),
        (0x100000, b"\xc0\x80\x00"),
        (0x0FFFFFFF, b"\xff\xff\xff\x7f"),
    ],
)
def test_vlq_known_values(value, encoded) -> None:
    assert encode_vlq(value) == encoded
    assert decode_vlq(encoded) == (value, len(encoded))


@pytest.mark.parametrize("value", [-1, 1 << 28])
def test_encode_vlq_out_of_range(value):
    with pytest.raises(ValueError):
        encode_vlq(value)


def test_decode_vlq_offset():
    assert decode_vlq(b"\xff\x81\x00\x05", 1) == (128, 3)


def test_decode_vlq_allows_four_continuation_bytes():
    assert decode_vlq(b"\x81\x80\x80\x80\x00") == (1 << 28, 5)


def test_decode_vlq_rejects_fifth_continuation_byte():
    with pytest.raises(StructuralError):
        decode_vlq(b"\x81\x80\x80\x80\x80\x00")


def test_decode_vlq_truncated():
    with pytest.raises(StructuralError):
        decode_vlq(b"\x81")


def test_serialize_header(scale_notes):
    data = serialize(scale_notes)
    assert data[:14] == struct.pack(">4sIHHH", b"MThd", 6, 1, 2, 480)
    assert data.count(b"MTrk") == 2


def test_serialize_tempo_and_end_of_track(scale_notes):
    data = serialize(scale_notes, tempo=120)
    # 500000 microseconds per quarter note
    assert b"\xff\x51\x03\x07\xa1\x20" in data
    assert data.endswith(b"\xff\x2f\x00")


def test_serialize_track_bytes():
    track = build_document([Note(pitch=60, duration=1.0, velocity=64)]).tracks[0]
    chunk = serialize_track(track)
    payload = (
        b"\x00\xff\x51\x03\x07\xa1\x20"
        b"\x00\x90\x3c\x40"
        b"\x83\x60\x80\x3c\x00"
        b"\x00\xff\x2f\x00"
    )
    assert chunk == b"MTrk" + struct.pack(">I", len(payload)) + payload


def test_codec_reproduces_pitch_and_duration(scale_notes):
    notes = scale_notes + [Note(pitch=90, duration=0.375), Note(pitch=40, duration=1.0)]
    doc = parse(serialize(notes))
    decoded = events_to_notes(doc.tracks[0].events, doc.ticks_per_beat)
    assert [n.pitch for n in decoded] == [n.pitch for n in notes]
    for original, parsed in zip(notes, decoded):
        assert parsed.duration == pytest.approx(original.duration, abs=1 / 480)


def test_rests_survive_round_trip():
    rest = Note(pitch=0, duration=0.5, velocity=0)
    a = Note(pitch=60, duration=0.5)
    doc = parse(serialize([rest, a, rest, rest, a, rest]))
    decoded = events_to_notes(doc.tracks[0].events)
    assert [n.pitch for n in decoded] == [0, 60, 0, 60, 0]
    assert [n.duration for n in decoded] == [0.5, 0.5, 1.0, 0.5, 0.5]


def test_zero_velocity_note_is_still_written():
    doc = parse(serialize([Note(pitch=60, duration=0.5, velocity=0)]))
    notes = events_to_notes(doc.tracks[0].events)
    assert len(notes) == 1
    assert notes[0].velocity == 1


def test_decoded_position_is_onset_beat(scale_notes):
    doc = parse(serialize(scale_notes))
    notes = events_to_notes(doc.tracks[0].events)
    assert [n.position for n in notes] == [0, 0, 1, 1, 2, 2, 3, 3]


def test_parse_reads_tempo():
    assert parse(serialize([], tempo=90)).tempo == pytest.approx(90)


def test_corrupted_header_magic(scale_notes):
    data = b"MThx" + serialize(scale_notes)[4:]
    with pytest.raises(StructuralError):
        parse(data)


@pytest.mark.parametrize(
    "data",
    [b"", b"MThd\x00\x00", struct.pack(">4sIHHH", b"MThd", 7, 1, 1, 480)],
)
def test_invalid_header(data):
    with pytest.raises(StructuralError):
        parse(data)


def _two_track_file(second_payload):
    first = serialize_track(build_document([Note(pitch=60, duration=0.5)]).tracks[0])
    second = b"MTrk" + struct.pack(">I", len(second_payload)) + second_payload
    return struct.pack(">4sIHHH", b"MThd", 6, 1, 2, 480) + first + second


def test_bad_status_keeps_events_read_so_far():
    # note on, then an unsupported status byte 0xF5
    data = _two_track_file(b"\x00\x90\x3c\x40\x60\xf5\x00")
    doc = parse(data)
    assert doc.tracks[0].complete
    assert not doc.tracks[1].complete
    assert len(doc.tracks[1].events) == 1
    assert doc.tracks[1].events[0].type == EventType.NOTE_ON
    assert len(doc.errors) == 1
    assert not doc.complete


def test_strict_parse_raises():
    data = _two_track_file(b"\x00\x90\x3c\x40\x60\xf5\x00")
    with pytest.raises(StructuralError):
        parse(data, strict=True)


def test_vlq_overflow_stops_track():
    data = _two_track_file(b"\x00\x90\x3c\x40\x81\x80\x80\x80\x80\x00\x80\x3c\x00")
    track = parse(data).tracks[1]
    assert not track.complete
    assert "continuation" in track.error


def test_missing_end_of_track_is_incomplete():
    track = parse(_two_track_file(b"\x00\x90\x3c\x40\x60\x80\x3c\x00")).tracks[1]
    assert not track.complete
    assert len(track.events) == 2


def test_truncated_file_keeps_earlier_tracks(scale_notes):
    data = serialize(scale_notes)
    doc = parse(data[:-3])
    assert doc.tracks[0].complete
    assert not doc.tracks[1].complete
    assert len(events_to_notes(doc.tracks[0].events)) == 8


def test_bad_track_magic_stops_reading(scale_notes):
    data = serialize(scale_notes)
    second = data.index(b"MTrk", 14 + 4)
    doc = parse(data[:second] + b"XTrk" + data[second + 4 :])
    assert len(doc.tracks) == 1
    assert "magic" in doc.errors[0]


def test_pairing_matches_nearest_later_release():
    events = [
        MidiEvent(type=EventType.NOTE_ON, tick=0, pitch=60, velocity=80),
        MidiEvent(type=EventType.NOTE_ON, tick=0, pitch=62, velocity=80),
        MidiEvent(type=EventType.NOTE_OFF, tick=10, pitch=62),
        MidiEvent(type=EventType.NOTE_OFF, tick=20, pitch=60),
        MidiEvent(type=EventType.NOTE_ON, tick=20, pitch=60, velocity=80),
        MidiEvent(type=EventType.NOTE_OFF, tick=25, pitch=60),
        MidiEvent(type=EventType.NOTE_ON, tick=30, pitch=64, velocity=80),
    ]
    paired = pair_events(events, ticks_per_beat=10)
    assert [(n.pitch, n.duration) for _, _, n in paired] == [
        (60, 2.0),
        (62, 1.0),
        (60, 0.5),
    ]


def test_pairing_respects_channel():
    events = [
        MidiEvent(type=EventType.NOTE_ON, tick=0, channel=0, pitch=60, velocity=80),
        MidiEvent(type=EventType.NOTE_OFF, tick=5, channel=1, pitch=60),
        MidiEvent(type=EventType.NOTE_OFF, tick=10, channel=0, pitch=60),
    ]
    (_, release, note), = pair_events(events, ticks_per_beat=10)
    assert release == 10
    assert note.duration == 1.0


def test_mido_reads_serialized_file(scale_notes):
    data = serialize(scale_notes, [Note(pitch=48, duration=2.0, velocity=50)])
    mid = mido.MidiFile(file=io.BytesIO(data))
    assert mid.type == 1
    assert mid.ticks_per_beat == 480
    assert len(mid.tracks) == 2
    note_ons = [m for m in mid.tracks[0] if m.type == "note_on"]
    assert [m.note for m in note_ons] == [n.pitch for n in scale_notes]
    tempos = [m.tempo for m in mid.tracks[0] if m.type == "set_tempo"]
    assert tempos == [500000]


def test_parse_mido_file_with_running_status():
    mid = mido.MidiFile(type=1, ticks_per_beat=480)
    track = mido.MidiTrack()
    track.append(mido.MetaMessage("set_tempo", tempo=mido.bpm2tempo(100), time=0))
    # note_on with velocity 0 as release lets mido write running status
    track.append(mido.Message("note_on", note=60, velocity=64, time=0))
    track.append(mido.Message("note_on", note=60, velocity=0, time=480))
    track.append(mido.Message("note_on", note=62, velocity=64, time=0))
    track.append(mido.Message("note_on", note=62, velocity=0, time=240))
    mid.tracks.append(track)
    buf = io.BytesIO()
    mid.save(file=buf)

    doc = parse(buf.getvalue())
    assert doc.complete
    assert doc.tempo == pytest.approx(100)
    notes = events_to_notes(doc.tracks[0].events)
    assert [(n.pitch, n.duration) for n in notes] == [(60, 1.0), (62, 0.5)]


def test_empty_track_round_trip():
    doc = parse(serialize([]))
    assert doc.complete
    assert events_to_notes(doc.tracks[1].events) == []
    # tempo and end-of-track only
    assert len(doc.tracks[1].events) == 2
