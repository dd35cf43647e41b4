import pytest
from music_stego.models import MidiEvent, Note, EventType


@pytest.fixture
def valid_note():
    return Note(pitch=60, duration=0.5, velocity=80, position=0)


@pytest.fixture
def valid_note_on():
    return MidiEvent(type=EventType.NOTE_ON, tick=0, channel=0, pitch=60, velocity=80)
