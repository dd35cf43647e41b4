import pytest

from music_stego.cache import clear_all_caches
from music_stego.encoder import encode
from music_stego.models import Note


@pytest.fixture(autouse=True)
def fresh_caches():
    clear_all_caches()
    yield
    clear_all_caches()


@pytest.fixture
def scale_notes():
    # C major scale, one half-beat note per position
    return [
        Note(pitch=p, duration=0.5, velocity=80, position=i)
        for i, p in enumerate([60, 62, 64, 65, 67, 69, 71, 72])
    ]


@pytest.fixture
def hello_pitch_midi():
    return encode("HELLO", mode="pitch")


@pytest.fixture
def sos_rhythm_midi():
    return encode("SOS", mode="rhythm")


@pytest.fixture
def make_notes():
    # Notes of a single pitch with the given durations, positions 0..n-1
    def _make(durations, pitch=60):
        return [
            Note(pitch=pitch, duration=d, velocity=80, position=i)
            for i, d in enumerate(durations)
        ]

    return _make
