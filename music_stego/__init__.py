"""Hide text in MIDI music and detect music that hides text.

The encoder turns a message into a melody (through pitch, rhythm, interval
or combined layers) with an optional decorative harmony, written as a
format-1 Standard MIDI File. The decoder inverts it. The analyzer scores
any MIDI file for the statistical traces such encodings leave.

Example:
    Round trip through the pitch layer:

    >>> from music_stego import encode, decode
    >>> data = encode("HELLO", mode="pitch")
    >>> decode(data, mode="pitch")
    'HELLO'
"""

from music_stego.analyzer import analyze_file as analyze
from music_stego.decoder import decode
from music_stego.encoder import encode, encoding_info

__all__ = ["analyze", "decode", "encode", "encoding_info"]
