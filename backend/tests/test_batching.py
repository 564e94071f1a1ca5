import pytest

from services.batching import chunked


class TestChunked:
    def test_exact_multiple(self):
        assert list(chunked(range(6), 3)) == [[0, 1, 2], [3, 4, 5]]

    def test_remainder_in_last_chunk(self):
        assert list(chunked("abcdefg", 3)) == [["a", "b", "c"], ["d", "e", "f"], ["g"]]

    def test_empty_input(self):
        assert list(chunked([], 10)) == []

    def test_smaller_than_one_chunk(self):
        assert list(chunked([1, 2], 10)) == [[1, 2]]

    def test_rejects_non_positive_size(self):
        with pytest.raises(ValueError):
            list(chunked([1], 0))
