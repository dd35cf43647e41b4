"""
Forensic analysis of MIDI files for hidden messages.

Music that carries an encoded message tends to be statistically unusual:
pitches spread too evenly or too narrowly, rhythms built from one or two
durations, melodic steps that repeat mechanically. This module scores a
file along four such dimensions, compares it with a fixed baseline of
Western tonal music, looks for binary-data signatures in its durations and
renders the findings as a text report.

Scores are heuristic values in [0, 1], 0 meaning natural and 1 meaning
highly suspicious.
"""

import logging
import math
from datetime import datetime, timezone
from types import MappingProxyType

from music_stego.cache import cached_analysis
from music_stego.decoder import analyze_notes as build_analysis
from music_stego.models import (
    AnalysisResult,
    BinaryPatternReport,
    ChiSquareResult,
    DecodeParams,
    IntervalAnalysis,
    MusicAnalysis,
    NaturalComparison,
    Note,
    PatternVerdict,
    PitchAnalysis,
    RhythmAnalysis,
    RiskLevel,
    SuspicionScores,
)
from music_stego.models.settings_models import resolve_params
from music_stego.stats import histogram, probabilities, shannon_entropy

logger = logging.getLogger(__name__)

# Pitch class frequencies of typical Western tonal music
NATURAL_PITCH_CLASSES = MappingProxyType(
    {
        0: 0.15,
        2: 0.12,
        4: 0.13,
        5: 0.11,
        7: 0.14,
        9: 0.12,
        11: 0.10,
        1: 0.04,
        3: 0.03,
        6: 0.03,
        8: 0.02,
        10: 0.01,
    }
)
NATURAL_RHYTHM_ENTROPY = 2.0
NATURAL_INTERVALS = MappingProxyType(
    {0: 0.20, 1: 0.10, 2: 0.15, 3: 0.12, 4: 0.10, 5: 0.08, 7: 0.10, 12: 0.05}
)
PROBABILITY_FLOOR = 0.001
SIGNIFICANCE_LEVEL = 0.05

RECOMMENDATION_BANDS = (
    (
        0.7,
        [
            "URGENT: High probability of steganographic content",
            "Recommend immediate manual inspection",
            "Consider running specialized steganalysis tools",
            "Extract and analyze note sequences for patterns",
        ],
    ),
    (
        0.5,
        [
            "Moderate suspicion warrants further investigation",
            "Run additional statistical tests",
            "Attempt decoding with known algorithms",
        ],
    ),
    (
        0.3,
        [
            "Low suspicion but some anomalies present",
            "Monitor if part of larger dataset",
        ],
    ),
    (
        0.0,
        [
            "File appears to be natural music",
            "No immediate action required",
        ],
    ),
)

DEVIATION_BANDS = (
    (0.8, "Extremely atypical - highly suspicious"),
    (0.6, "Significantly different from natural music"),
    (0.4, "Moderately different - warrants inspection"),
    (0.2, "Slightly unusual but possibly natural"),
)


# Suspicion scoring


def score_pitch_entropy(pitch: PitchAnalysis) -> float:
    """Natural melodies sit between 1.5 and 3.0 bits of pitch entropy."""
    if pitch.note_count == 0:
        return 0.0
    entropy = pitch.entropy
    if entropy > 3.5:
        return 0.9
    if entropy < 1.0:
        return 0.8
    if entropy > 3.0 or entropy < 1.5:
        return 0.5
    return 0.1


def score_rhythm_regularity(rhythm: RhythmAnalysis) -> float:
    """Very few distinct durations suggest a binary rhythm channel."""
    variety = rhythm.rhythm_variety
    if rhythm.note_count == 0:
        return 0.0
    if variety == 1:
        return 0.95
    if variety == 2 and rhythm.note_count >= 8:
        return 0.85
    if variety <= 2:
        return 0.7
    return 0.2


def score_interval_patterns(interval: IntervalAnalysis) -> float:
    """Repeated or consistently wide steps are unnatural."""
    if not interval.intervals:
        return 0.0
    if interval.interval_variety == 1:
        return 0.9
    if abs(interval.mean_interval) > 7:
        return 0.7
    if interval.interval_variety <= 2:
        return 0.6
    return 0.2


def calculate_suspicion_scores(analysis: MusicAnalysis) -> SuspicionScores:
    return SuspicionScores(
        pitch_entropy=score_pitch_entropy(analysis.pitch_analysis),
        rhythm_regularity=score_rhythm_regularity(analysis.rhythm_analysis),
        interval_unnaturalness=score_interval_patterns(analysis.interval_analysis),
        encoding_pattern=analysis.encoding_detection.rhythm_suspicion,
    )


def classify_risk_level(score: float) -> RiskLevel:
    if score >= 0.7:
        return RiskLevel.HIGH
    if score >= 0.5:
        return RiskLevel.MEDIUM
    if score >= 0.3:
        return RiskLevel.LOW
    return RiskLevel.MINIMAL


def detect_anomalies(scores: SuspicionScores, analysis: MusicAnalysis) -> list[str]:
    anomalies = []
    if scores.pitch_entropy > 0.5:
        anomalies.append("Unusual pitch entropy detected")
    if scores.rhythm_regularity > 0.6:
        anomalies.append("Suspicious rhythm regularity")
    if scores.interval_unnaturalness > 0.6:
        anomalies.append("Unnatural melodic intervals")
    if scores.encoding_pattern >= 0.5:
        anomalies.append("Rhythm encoding signature detected")
    if analysis.encoding_detection.indicators.entropy_anomaly:
        anomalies.append("Entropy anomaly in rhythm patterns")
    return anomalies


def generate_recommendations(score: float, anomalies: list[str]) -> list[str]:
    """Pick follow-up actions for a suspicion score.

    Args:
        score: Overall suspicion score.
        anomalies: Anomalies found in the file.

    Returns:
        Recommendations; a clean bill of health when nothing was found.
    """
    if not anomalies:
        return ["No significant anomalies detected", "File appears to be legitimate music"]

    base = [
        "Save this file for further forensic analysis",
        "Compare against known legitimate music from same source",
    ]
    for threshold, additional in RECOMMENDATION_BANDS:
        if score >= threshold:
            return base + additional
    return base


def evaluate(analysis: MusicAnalysis) -> AnalysisResult:
    """Score a statistical bundle and derive the verdict."""
    scores = calculate_suspicion_scores(analysis)
    overall = scores.overall
    anomalies = detect_anomalies(scores, analysis)
    return AnalysisResult(
        scores=scores,
        overall_suspicion_score=overall,
        risk_level=classify_risk_level(overall),
        anomalies=anomalies,
        recommendations=generate_recommendations(overall, anomalies),
        analysis=analysis,
    )


def analyze_file(data: bytes, params: DecodeParams | None = None, **options) -> AnalysisResult:
    """Analyze a MIDI file for signs of a hidden message.

    Args:
        data: MIDI file bytes.
        params: Decoding parameters used for mode classification.
        **options: Overrides for individual parameters (mode, key).

    Returns:
        AnalysisResult with per-dimension scores, overall score, risk level,
        anomalies and recommendations.

    Raises:
        StructuralError: If the file header is damaged or no track can be
            read.
    """
    params = resolve_params(params, DecodeParams, options)
    mode = params.mode.value if params.mode else None
    result = evaluate(cached_analysis(bytes(data), mode, params.key))
    logger.info(
        f"Analysis complete: suspicion {result.overall_suspicion_score:.3f} "
        f"({result.risk_level.value})"
    )
    return result


def analyze_notes(notes: list[Note]) -> AnalysisResult:
    """Analyze a note sequence without a MIDI container.

    Note positions are used as beat indices for the syncopation measure.
    """
    return evaluate(build_analysis(notes))


# Baseline comparison


def distribution_distance(observed: dict, expected: dict) -> float:
    """Kullback-Leibler style distance between two distributions.

    Computes sum(p * ln(p / q)) over the union of keys with both p and q
    floored at 0.001, clamped to [0, 1].
    """
    divergence = 0.0
    for key in set(observed) | set(expected):
        p = max(observed.get(key, 0.0), PROBABILITY_FLOOR)
        q = max(expected.get(key, 0.0), PROBABILITY_FLOOR)
        divergence += p * math.log(p / q)
    return min(abs(divergence), 1.0)


def entropy_distance(observed: float, expected: float) -> float:
    return min(abs(observed - expected) / expected, 1.0)


def interpret_deviation(deviation: float) -> str:
    for threshold, text in DEVIATION_BANDS:
        if deviation > threshold:
            return text
    return "Consistent with natural music patterns"


def compare_analysis(analysis: MusicAnalysis) -> NaturalComparison:
    """Measure how far a statistical bundle is from natural music."""
    pitch_distance = distribution_distance(
        probabilities(analysis.pitch_analysis.pitch_class_distribution),
        NATURAL_PITCH_CLASSES,
    )
    rhythm_distance = entropy_distance(
        analysis.rhythm_analysis.rhythm_entropy, NATURAL_RHYTHM_ENTROPY
    )
    interval_distance = distribution_distance(
        probabilities(histogram(abs(i) for i in analysis.interval_analysis.intervals)),
        NATURAL_INTERVALS,
    )
    overall = (pitch_distance + rhythm_distance + interval_distance) / 3
    return NaturalComparison(
        pitch_distance=pitch_distance,
        rhythm_distance=rhythm_distance,
        interval_distance=interval_distance,
        overall_deviation=overall,
        interpretation=interpret_deviation(overall),
    )


def compare_to_natural_music(
    data: bytes, params: DecodeParams | None = None, **options
) -> NaturalComparison:
    """Compare a MIDI file with the natural-music baseline.

    Args:
        data: MIDI file bytes.
        params: Decoding parameters.
        **options: Overrides for individual parameters.

    Returns:
        NaturalComparison with pitch, rhythm and interval distances, their
        mean and a qualitative interpretation.
    """
    params = resolve_params(params, DecodeParams, options)
    mode = params.mode.value if params.mode else None
    return compare_analysis(cached_analysis(bytes(data), mode, params.key))


# Binary pattern detection


def _perfect_alternation(durations: list[float]) -> bool:
    if len(durations) < 4 or len(set(durations)) != 2:
        return False
    return all(a != b for a, b in zip(durations, durations[1:]))


def _regular_periodicity(durations: list[float]) -> bool:
    if len(durations) < 8:
        return False
    for period in range(2, 5):
        windows = [
            tuple(durations[start : start + period])
            for start in range(0, 4 * period, period)
            if start + period <= len(durations)
        ]
        if len(windows) >= 2 and len(set(windows)) == 1:
            return True
    return False


def _entropy_uniformity(durations: list[float]) -> bool:
    if len(durations) < 16:
        return False
    size = len(durations) // 4
    entropies = [shannon_entropy(durations[i * size : (i + 1) * size]) for i in range(4)]
    return max(entropies) - min(entropies) < 0.5


def _bit_like_durations(durations: list[float]) -> bool:
    unique = sorted(set(durations))
    if len(unique) != 2:
        return False
    return abs(unique[1] / unique[0] - 2.0) < 0.3


def detect_binary_encoding_patterns(notes: list[Note]) -> BinaryPatternReport:
    """Look for signatures of binary data in note durations.

    Args:
        notes: Notes in playing order.

    Returns:
        BinaryPatternReport with the four indicators, their count, a score
        of count / 4 and a verdict.
    """
    durations = [note.duration for note in notes]
    indicators = {
        "perfect_alternation": _perfect_alternation(durations),
        "regular_periodicity": _regular_periodicity(durations),
        "entropy_uniformity": _entropy_uniformity(durations),
        "bit_like_durations": _bit_like_durations(durations),
    }
    count = sum(indicators.values())
    if count >= 3:
        verdict = PatternVerdict.HIGHLY_SUSPICIOUS
    elif count == 2:
        verdict = PatternVerdict.SUSPICIOUS
    elif count == 1:
        verdict = PatternVerdict.POSSIBLY_SUSPICIOUS
    else:
        verdict = PatternVerdict.APPEARS_NATURAL

    return BinaryPatternReport(
        **indicators,
        pattern_count=count,
        suspicion_score=count / len(indicators),
        verdict=verdict,
    )


# Chi-square test


def _chi_square_p_value(chi_square: float, df: int) -> float:
    # Wilson-Hilferty: (X/df)^(1/3) is roughly normal
    z = ((chi_square / df) ** (1 / 3) - (1 - 2 / (9 * df))) / math.sqrt(2 / (9 * df))
    p = 1 - 0.5 * (1 + math.erf(z / math.sqrt(2)))
    return min(max(p, 0.0), 1.0)


def chi_square_test(pitch_class_distribution: dict[int, int]) -> ChiSquareResult:
    """Test a pitch-class histogram against typical tonal music.

    Args:
        pitch_class_distribution: Counts per pitch class (0-11).

    Returns:
        ChiSquareResult with the statistic, 11 degrees of freedom, an
        approximate p-value and whether it is significant at 5%.
    """
    total = sum(pitch_class_distribution.values())
    chi_square = 0.0
    for pitch_class, frequency in NATURAL_PITCH_CLASSES.items():
        expected = frequency * total
        if expected > 0:
            observed = pitch_class_distribution.get(pitch_class, 0)
            chi_square += (observed - expected) ** 2 / expected

    df = len(NATURAL_PITCH_CLASSES) - 1
    p_value = _chi_square_p_value(chi_square, df)
    significant = p_value < SIGNIFICANCE_LEVEL
    return ChiSquareResult(
        chi_square=chi_square,
        degrees_of_freedom=df,
        p_value=p_value,
        significant=significant,
        interpretation=(
            "Distribution significantly differs from natural music"
            if significant
            else "Distribution appears natural"
        ),
    )


# Reporting

RULE = "=" * 63
SUB_RULE = "-" * 62


def _section(title: str, lines: list[str]) -> list[str]:
    return [title, SUB_RULE, *lines, ""]


def generate_report(result: AnalysisResult) -> str:
    """Render an analysis result as a plain-text report.

    Args:
        result: Result of analyze_file or analyze_notes.

    Returns:
        Multi-line report with assessment, scores, anomalies, statistics
        and recommendations.
    """
    analysis = result.analysis
    scores = [
        f"  {name.replace('_', ' ').capitalize()}: {value:.3f}"
        for name, value in result.scores.model_dump().items()
    ]
    anomalies = [f"  {idx}. {text}" for idx, text in enumerate(result.anomalies, 1)]
    recommendations = [
        f"  {idx}. {text}" for idx, text in enumerate(result.recommendations, 1)
    ]
    generated = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")

    lines = [RULE, "MUSIC STEGANOGRAPHY ANALYSIS REPORT", RULE, ""]
    lines += _section(
        "OVERALL ASSESSMENT",
        [
            f"Suspicion Score: {result.overall_suspicion_score:.3f} / 1.0",
            f"Risk Level: {result.risk_level.value.upper()}",
        ],
    )
    lines += _section("DETECTION SCORES", scores)
    lines += _section("ANOMALIES DETECTED", anomalies or ["  None detected"])
    lines += _section(
        "STATISTICAL ANALYSIS",
        [
            f"Note Count: {analysis.note_count}",
            f"Duration: {analysis.duration_beats:.2f} beats",
            f"Pitch Entropy: {analysis.pitch_analysis.entropy:.3f} bits",
            f"Rhythm Entropy: {analysis.rhythm_analysis.rhythm_entropy:.3f} bits",
        ],
    )
    lines += _section("RECOMMENDATIONS", recommendations)
    lines += [RULE, f"Report generated: {generated}", RULE]
    return "\n".join(lines) + "\n"
