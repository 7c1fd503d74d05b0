"""Tests for core/binary_size.py"""

import pytest

from memory_estimator.core.binary_size import analyze_binary_size, categorize_binary_size
from memory_estimator.core.errors import BinaryReadError
from memory_estimator.models.types import SizeCategory


class TestCategorize:

    @pytest.mark.parametrize("size,expected", [
        (0, SizeCategory.TINY),
        (50_000, SizeCategory.TINY),
        (50_001, SizeCategory.SMALL),
        (100_000, SizeCategory.SMALL),
        (100_001, SizeCategory.MEDIUM),
        (200_000, SizeCategory.MEDIUM),
        (200_001, SizeCategory.LARGE),
        (500_000, SizeCategory.LARGE),
        (500_001, SizeCategory.VERY_LARGE),
        (1_000_000, SizeCategory.VERY_LARGE),
        (1_000_001, SizeCategory.HUGE),
    ])
    def test_boundaries_are_inclusive_upper_bounds(self, size, expected):
        assert categorize_binary_size(size) == expected

    def test_labels(self):
        assert SizeCategory.TINY.label == "Tiny (< 50KB)"
        assert SizeCategory.HUGE.label == "Huge (> 1MB)"


class TestAnalyzeBinarySize:

    def test_reads_file_length(self, tmp_path):
        path = tmp_path / "mod.wasm"
        path.write_bytes(b"\x00" * 60_000)
        metrics = analyze_binary_size(path)
        assert metrics.size_bytes == 60_000
        assert metrics.size_category == SizeCategory.SMALL
        assert metrics.size_mb == pytest.approx(60_000 / (1024 * 1024))

    def test_missing_file_raises(self, tmp_path):
        missing = tmp_path / "nope.wasm"
        with pytest.raises(BinaryReadError) as exc:
            analyze_binary_size(missing)
        assert exc.value.path == str(missing)
        assert isinstance(exc.value.cause, FileNotFoundError)
