import pytest

from music_stego.stats import describe, histogram, probabilities, shannon_entropy


def test_histogram_is_ordered():
    assert list(histogram([3, 1, 3, 2]).items()) == [(1, 1), (2, 1), (3, 2)]


@pytest.mark.parametrize(
    "values, bits",
    [([], 0.0), ([5, 5, 5], 0.0), ([1, 2], 1.0), ([1, 2, 3, 4], 2.0)],
)
def test_shannon_entropy(values, bits) -> None:
    assert shannon_entropy(values) == pytest.approx(bits)


def test_describe():
    mean, median, std = describe([1, 2, 3, 10])
    assert mean == pytest.approx(4.0)
    assert median == pytest.approx(2.5)
    assert std == pytest.approx(3.5355339)
    assert describe([]) == (0.0, 0.0, 0.0)


def test_probabilities():
    assert probabilities({"a": 1, "b": 3}) == {"a": 0.25, "b": 0.75}
    assert probabilities({}) == {}
