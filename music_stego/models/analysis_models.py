"""Models for analysis and detection results.

These models carry the statistics computed over a note sequence and the
verdicts derived from them. Each stage of the analysis pipeline returns
one of these models so that stages can be tested in isolation and the
final report can be rendered from plain data.
"""

from enum import Enum

from pydantic import BaseModel, Field

from music_stego.models.core_models import EncodingMode


class PitchAnalysis(BaseModel):
    """Descriptive statistics of the pitches in a melody.

    Attributes:
        note_count: Number of notes analysed.
        mean: Mean MIDI pitch.
        median: Median MIDI pitch.
        std_dev: Population standard deviation of the pitches.
        entropy: Shannon entropy of the pitch histogram in bits.
        lowest: Lowest pitch, 0 for an empty melody.
        highest: Highest pitch, 0 for an empty melody.
        pitch_class_distribution: Counts of pitch classes (pitch mod 12).
    """

    note_count: int = Field(0, ge=0, description="Notes analysed")
    mean: float = Field(0.0, description="Mean pitch")
    median: float = Field(0.0, description="Median pitch")
    std_dev: float = Field(0.0, ge=0, description="Pitch standard deviation")
    entropy: float = Field(0.0, ge=0, description="Pitch entropy in bits")
    lowest: int = Field(0, ge=0, le=127, description="Lowest pitch")
    highest: int = Field(0, ge=0, le=127, description="Highest pitch")
    pitch_class_distribution: dict[int, int] = Field(
        default_factory=dict, description="Pitch class counts"
    )


class RhythmAnalysis(BaseModel):
    """Duration and placement statistics of a melody.

    Attributes:
        note_count: Number of notes analysed.
        total_duration: Sum of durations in beats.
        rhythm_variety: Number of distinct durations.
        duration_distribution: Counts per duration value.
        average_duration: Mean duration in beats.
        rhythm_entropy: Shannon entropy of the duration histogram in bits.
        syncopation_index: Fraction of notes on beats 1 or 3 of a 4/4 bar
            (counting from 0).
    """

    note_count: int = Field(0, ge=0)
    total_duration: float = Field(0.0, ge=0)
    rhythm_variety: int = Field(0, ge=0)
    duration_distribution: dict[float, int] = Field(default_factory=dict)
    average_duration: float = Field(0.0, ge=0)
    rhythm_entropy: float = Field(0.0, ge=0)
    syncopation_index: float = Field(0.0, ge=0, le=1)


class RhythmDetection(BaseModel):
    """Heuristic scores for rhythm-based encoding.

    Attributes:
        entropy_score: Suspicion from duration entropy.
        variety_score: Suspicion from the distinct-duration ratio.
        syncopation_score: Suspicion from the syncopation index.
        suspicion_score: Mean of the three scores.
        entropy_anomaly: Entropy score above 0.6.
        unusual_variety: Variety score above 0.7.
        suspicious_syncopation: Syncopation score above 0.8.
    """

    entropy_score: float = Field(0.0, ge=0, le=1)
    variety_score: float = Field(0.0, ge=0, le=1)
    syncopation_score: float = Field(0.0, ge=0, le=1)
    suspicion_score: float = Field(0.0, ge=0, le=1)
    entropy_anomaly: bool = False
    unusual_variety: bool = False
    suspicious_syncopation: bool = False


class IntervalAnalysis(BaseModel):
    """Statistics of the signed steps between adjacent pitches.

    Attributes:
        intervals: Signed intervals in semitones.
        mean_interval: Mean signed interval.
        max_interval: Largest signed interval.
        min_interval: Smallest signed interval.
        interval_variety: Number of distinct intervals.
        interval_distribution: Counts per signed interval.
    """

    intervals: list[int] = Field(default_factory=list)
    mean_interval: float = 0.0
    max_interval: int = 0
    min_interval: int = 0
    interval_variety: int = Field(0, ge=0)
    interval_distribution: dict[int, int] = Field(default_factory=dict)


class EncodingDetection(BaseModel):
    """What the decoder believes about how a melody was encoded.

    Attributes:
        detected_mode: Mode the auto-detect classifier picks.
        likely_modes: Candidate modes ranked by score, highest first.
        rhythm_suspicion: Rhythm-encoding suspicion over all tracks.
        indicators: Full rhythm detection result.
    """

    detected_mode: EncodingMode
    likely_modes: list[tuple[EncodingMode, float]] = Field(default_factory=list)
    rhythm_suspicion: float = Field(0.0, ge=0, le=1)
    indicators: RhythmDetection = Field(default_factory=RhythmDetection)


class MusicAnalysis(BaseModel):
    """Statistical bundle for one MIDI file.

    Built independently of whether the file decodes to a message.
    """

    note_count: int = Field(0, ge=0, description="Sounding melody notes")
    duration_beats: float = Field(0.0, ge=0, description="Melody length in beats")
    track_count: int = Field(0, ge=0)
    complete: bool = True
    tempo: float = Field(120.0, gt=0)
    pitch_analysis: PitchAnalysis = Field(default_factory=PitchAnalysis)
    rhythm_analysis: RhythmAnalysis = Field(default_factory=RhythmAnalysis)
    interval_analysis: IntervalAnalysis = Field(default_factory=IntervalAnalysis)
    encoding_detection: EncodingDetection


class RiskLevel(str, Enum):
    MINIMAL = "minimal"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class SuspicionScores(BaseModel):
    """Per-dimension suspicion scores, each in [0, 1]."""

    pitch_entropy: float = Field(0.0, ge=0, le=1)
    rhythm_regularity: float = Field(0.0, ge=0, le=1)
    interval_unnaturalness: float = Field(0.0, ge=0, le=1)
    encoding_pattern: float = Field(0.0, ge=0, le=1)

    def __getitem__(self, name: str) -> float:
        return getattr(self, name)

    @property
    def overall(self) -> float:
        values = list(self.model_dump().values())
        return sum(values) / len(values)


class AnalysisResult(BaseModel):
    """Verdict of the forensic analyzer.

    Attributes:
        scores: Per-dimension suspicion scores.
        overall_suspicion_score: Mean of the per-dimension scores.
        risk_level: Band the overall score falls in.
        anomalies: Human-readable anomaly descriptions.
        recommendations: Suggested follow-up actions.
        analysis: Statistics the scores were derived from.
    """

    scores: SuspicionScores
    overall_suspicion_score: float = Field(..., ge=0, le=1)
    risk_level: RiskLevel
    anomalies: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    analysis: MusicAnalysis


class NaturalComparison(BaseModel):
    """Distance of a melody from the natural-music baseline.

    All distances are clamped to [0, 1].
    """

    pitch_distance: float = Field(..., ge=0, le=1)
    rhythm_distance: float = Field(..., ge=0, le=1)
    interval_distance: float = Field(..., ge=0, le=1)
    overall_deviation: float = Field(..., ge=0, le=1)
    interpretation: str


class ChiSquareResult(BaseModel):
    """Goodness-of-fit of a pitch-class histogram against tonal music."""

    chi_square: float = Field(..., ge=0)
    degrees_of_freedom: int
    p_value: float = Field(..., ge=0, le=1)
    significant: bool
    interpretation: str


class PatternVerdict(str, Enum):
    HIGHLY_SUSPICIOUS = "highly_suspicious"
    SUSPICIOUS = "suspicious"
    POSSIBLY_SUSPICIOUS = "possibly_suspicious"
    APPEARS_NATURAL = "appears_natural"


class BinaryPatternReport(BaseModel):
    """Binary-data signatures found in a duration sequence.

    Attributes:
        perfect_alternation: Durations alternate between exactly two values.
        regular_periodicity: A short duration pattern repeats from the start.
        entropy_uniformity: Duration entropy is flat across the melody.
        bit_like_durations: Exactly two durations in a ratio near 2:1.
        pattern_count: Number of signatures found.
        suspicion_score: pattern_count / 4.
        verdict: Band the pattern count falls in.
    """

    perfect_alternation: bool = False
    regular_periodicity: bool = False
    entropy_uniformity: bool = False
    bit_like_durations: bool = False
    pattern_count: int = Field(0, ge=0, le=4)
    suspicion_score: float = Field(0.0, ge=0, le=1)
    verdict: PatternVerdict = PatternVerdict.APPEARS_NATURAL

    @property
    def indicators(self) -> dict[str, bool]:
        return {
            "perfect_alternation": self.perfect_alternation,
            "regular_periodicity": self.regular_periodicity,
            "entropy_uniformity": self.entropy_uniformity,
            "bit_like_durations": self.bit_like_durations,
        }


class PitchRange(BaseModel):
    lowest: int = Field(0, ge=0, le=127)
    highest: int = Field(0, ge=0, le=127)
    span: int = Field(0, ge=0)
    lowest_name: str = ""
    highest_name: str = ""


class EncodingInfo(BaseModel):
    """Summary of what encoding a message would produce.

    Attributes:
        character_count: Characters in the message.
        note_count: Melody notes produced, rests included.
        harmony_note_count: Harmony notes produced.
        duration_beats: Melody length in beats.
        pitch_range: Range of the sounding melody notes.
        interval_distribution: Counts of absolute adjacent intervals.
        encoding_mode: Mode used.
        musical_key: Key used.
    """

    character_count: int = Field(0, ge=0)
    note_count: int = Field(0, ge=0)
    harmony_note_count: int = Field(0, ge=0)
    duration_beats: float = Field(0.0, ge=0)
    pitch_range: PitchRange = Field(default_factory=PitchRange)
    interval_distribution: dict[int, int] = Field(default_factory=dict)
    encoding_mode: EncodingMode
    musical_key: str
