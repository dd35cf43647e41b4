from music_stego.analyzer import analyze_file, compare_to_natural_music
from music_stego.cache import cached_parse, clear_all_caches, get_cache_info


def test_repeat_analysis_hits_cache(hello_pitch_midi):
    analyze_file(hello_pitch_midi)
    analyze_file(hello_pitch_midi)
    info = get_cache_info()
    assert info["analysis"].hits == 1
    assert info["analysis"].misses == 1
    assert info["parse"].misses == 1


def test_new_mode_reuses_parse(hello_pitch_midi):
    analyze_file(hello_pitch_midi)
    analyze_file(hello_pitch_midi, mode="pitch")
    info = get_cache_info()
    assert info["analysis"].misses == 2
    assert info["parse"].hits == 1


def test_comparison_shares_analysis(sos_rhythm_midi):
    analyze_file(sos_rhythm_midi)
    compare_to_natural_music(sos_rhythm_midi)
    assert get_cache_info()["analysis"].hits == 1


def test_cached_parse_returns_same_document(hello_pitch_midi):
    assert cached_parse(hello_pitch_midi) is cached_parse(hello_pitch_midi)


def test_clear_all_caches(hello_pitch_midi):
    analyze_file(hello_pitch_midi)
    clear_all_caches()
    info = get_cache_info()
    assert info["parse"].currsize == 0
    assert info["analysis"].currsize == 0
