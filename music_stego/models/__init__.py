"""Domain models for the music steganography package.

This module provides a centralized location for all data models used by
the encoder, decoder and analyzer. It includes:

- Core domain models (Note, MidiEvent, Track, MidiDocument, EncodingMode)
- Configuration parameters for encoding and decoding
- Analysis results and forensic verdicts

All models are built using Pydantic for data validation, ensuring type
safety and clear interfaces between components.
"""

# Re-export core models
from music_stego.models.core_models import (
    EncodingMode,
    EventType,
    MidiDocument,
    MidiEvent,
    Note,
    Track,
)

# Re-export setting models
from music_stego.models.settings_models import (
    DecodeParams,
    EncodeParams,
    SUPPORTED_KEYS,
)

# Re-export analysis models
from music_stego.models.analysis_models import (
    AnalysisResult,
    BinaryPatternReport,
    ChiSquareResult,
    EncodingDetection,
    EncodingInfo,
    IntervalAnalysis,
    MusicAnalysis,
    NaturalComparison,
    PatternVerdict,
    PitchAnalysis,
    PitchRange,
    RhythmAnalysis,
    RhythmDetection,
    RiskLevel,
    SuspicionScores,
)
