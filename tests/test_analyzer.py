import pytest

from music_stego.analyzer import (
    NATURAL_PITCH_CLASSES,
    analyze_file,
    analyze_notes,
    chi_square_test,
    classify_risk_level,
    compare_to_natural_music,
    detect_binary_encoding_patterns,
    distribution_distance,
    entropy_distance,
    generate_recommendations,
    generate_report,
    interpret_deviation,
)
from music_stego.encoder import encode
from music_stego.midi_codec import StructuralError
from music_stego.models import Note, PatternVerdict, RiskLevel


def test_bit_like_durations(make_notes):
    report = detect_binary_encoding_patterns(make_notes([0.25, 0.5, 0.5, 0.25, 0.5]))
    assert report.bit_like_durations
    assert not report.perfect_alternation
    assert report.pattern_count == 1
    assert report.suspicion_score == pytest.approx(0.25)
    assert report.verdict is PatternVerdict.POSSIBLY_SUSPICIOUS


def test_alternating_bits_are_highly_suspicious(make_notes):
    report = detect_binary_encoding_patterns(make_notes([0.25, 0.5] * 4))
    assert report.perfect_alternation
    assert report.regular_periodicity
    assert report.bit_like_durations
    assert not report.entropy_uniformity
    assert report.verdict is PatternVerdict.HIGHLY_SUSPICIOUS


def test_repeating_bar_is_suspicious(make_notes):
    report = detect_binary_encoding_patterns(make_notes([0.25, 0.5, 0.75, 1.0] * 4))
    assert report.regular_periodicity
    assert report.entropy_uniformity
    assert report.pattern_count == 2
    assert report.verdict is PatternVerdict.SUSPICIOUS


def test_varied_rhythm_appears_natural(make_notes):
    report = detect_binary_encoding_patterns(make_notes([1.0, 0.5, 0.75, 0.25, 1.5]))
    assert report.pattern_count == 0
    assert report.verdict is PatternVerdict.APPEARS_NATURAL


def test_single_duration_scores_high_regularity(make_notes):
    result = analyze_notes(make_notes([0.5] * 8))
    assert result.scores.rhythm_regularity >= 0.9


def test_many_even_durations_score_low_regularity(make_notes):
    durations = [0.25, 0.375, 0.5, 0.75, 1.0, 1.5] * 2
    result = analyze_notes(make_notes(durations))
    assert result.scores.rhythm_regularity < 0.3


def test_repeated_interval_is_unnatural():
    notes = [Note(pitch=60 + 2 * i, duration=0.5, position=i) for i in range(6)]
    result = analyze_notes(notes)
    assert result.scores.interval_unnaturalness == pytest.approx(0.9)
    assert "Unnatural melodic intervals" in result.anomalies


def test_harmony_lowers_suspicion():
    with_harmony = analyze_file(encode("HELLO WORLD", mode="multi_layer", add_harmony=True))
    without = analyze_file(encode("HELLO WORLD", mode="multi_layer", add_harmony=False))
    assert with_harmony.overall_suspicion_score < without.overall_suspicion_score


def test_rhythm_file_is_flagged(sos_rhythm_midi):
    result = analyze_file(sos_rhythm_midi)
    assert result.scores.rhythm_regularity == pytest.approx(0.85)
    assert "Suspicious rhythm regularity" in result.anomalies
    assert result.recommendations[0] == "Save this file for further forensic analysis"
    assert result.overall_suspicion_score == pytest.approx(result.scores.overall)


def test_analyze_file_rejects_bad_header(hello_pitch_midi):
    with pytest.raises(StructuralError):
        analyze_file(b"MThx" + hello_pitch_midi[4:])


def test_empty_melody_scores_zero():
    result = analyze_notes([])
    assert result.overall_suspicion_score == 0.0
    assert result.risk_level is RiskLevel.MINIMAL
    assert result.anomalies == []
    assert result.recommendations == [
        "No significant anomalies detected",
        "File appears to be legitimate music",
    ]


@pytest.mark.parametrize(
    "score, level",
    [
        (0.95, RiskLevel.HIGH),
        (0.7, RiskLevel.HIGH),
        (0.5, RiskLevel.MEDIUM),
        (0.3, RiskLevel.LOW),
        (0.29, RiskLevel.MINIMAL),
    ],
)
def test_classify_risk_level(score, level) -> None:
    assert classify_risk_level(score) is level


def test_recommendations_by_band():
    urgent = generate_recommendations(0.8, ["Suspicious rhythm regularity"])
    assert urgent[:2] == [
        "Save this file for further forensic analysis",
        "Compare against known legitimate music from same source",
    ]
    assert "URGENT: High probability of steganographic content" in urgent
    calm = generate_recommendations(0.1, ["Unusual pitch entropy detected"])
    assert "File appears to be natural music" in calm


def test_distribution_distance():
    assert distribution_distance(NATURAL_PITCH_CLASSES, NATURAL_PITCH_CLASSES) == pytest.approx(0.0)
    # all mass on a rare pitch class is far from the baseline
    assert distribution_distance({10: 1.0}, NATURAL_PITCH_CLASSES) == 1.0


def test_entropy_distance():
    assert entropy_distance(2.0, 2.0) == 0.0
    assert entropy_distance(3.0, 2.0) == pytest.approx(0.5)
    assert entropy_distance(7.0, 2.0) == 1.0


@pytest.mark.parametrize(
    "deviation, text",
    [
        (0.9, "Extremely atypical - highly suspicious"),
        (0.7, "Significantly different from natural music"),
        (0.5, "Moderately different - warrants inspection"),
        (0.3, "Slightly unusual but possibly natural"),
        (0.1, "Consistent with natural music patterns"),
    ],
)
def test_interpret_deviation(deviation, text) -> None:
    assert interpret_deviation(deviation) == text


def test_compare_to_natural_music(sos_rhythm_midi):
    comparison = compare_to_natural_music(sos_rhythm_midi)
    for value in (
        comparison.pitch_distance,
        comparison.rhythm_distance,
        comparison.interval_distance,
    ):
        assert 0.0 <= value <= 1.0
    assert comparison.overall_deviation == pytest.approx(
        (comparison.pitch_distance + comparison.rhythm_distance + comparison.interval_distance)
        / 3
    )
    # two durations in near-equal shares: about 1 bit against a 2 bit baseline
    assert comparison.rhythm_distance == pytest.approx(0.5, abs=0.01)


def test_chi_square_natural_distribution():
    counts = {pc: round(freq * 100) for pc, freq in NATURAL_PITCH_CLASSES.items()}
    result = chi_square_test(counts)
    assert result.chi_square == pytest.approx(0.0, abs=1e-9)
    assert result.degrees_of_freedom == 11
    assert not result.significant
    assert result.interpretation == "Distribution appears natural"


def test_chi_square_single_pitch_class():
    result = chi_square_test({1: 100})
    assert result.significant
    assert result.p_value < 0.05
    assert result.interpretation == "Distribution significantly differs from natural music"


def test_report_sections(sos_rhythm_midi):
    report = generate_report(analyze_file(sos_rhythm_midi))
    for heading in (
        "MUSIC STEGANOGRAPHY ANALYSIS REPORT",
        "OVERALL ASSESSMENT",
        "DETECTION SCORES",
        "ANOMALIES DETECTED",
        "STATISTICAL ANALYSIS",
        "RECOMMENDATIONS",
        "Report generated:",
    ):
        assert heading in report
    assert "Rhythm regularity: 0.850" in report
    assert "Note Count: 24" in report
    assert "1. " in report


def test_report_without_anomalies():
    report = generate_report(analyze_notes([]))
    assert "None detected" in report
    assert "Risk Level: MINIMAL" in report
