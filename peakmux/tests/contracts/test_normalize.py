"""
Contract tests for linear peak normalization.
"""

import pytest

from peakmux.audio.normalize import normalize, validate_range
from peakmux.audio.peak_reducer import INT16_MAX, INT16_MIN
from peakmux.errors import MalformedInput


class TestNormalize:
    """Range mapping."""

    def test_endpoints_map_to_target_bounds(self):
        assert normalize(INT16_MIN) == 0.0
        assert normalize(INT16_MAX) == 1.0

    def test_endpoints_into_custom_range(self):
        assert normalize(INT16_MIN, to_low=-1.0, to_high=1.0) == -1.0
        assert normalize(INT16_MAX, to_low=-1.0, to_high=1.0) == 1.0

    def test_zero_maps_near_midpoint(self):
        assert normalize(0) == pytest.approx(0.5, abs=1e-4)

    def test_rounded_to_six_digits(self):
        value = normalize(1234)
        assert value == round(value, 6)
        assert value == 0.518837

    def test_reversed_target_range(self):
        assert normalize(INT16_MIN, to_low=1.0, to_high=0.0) == 1.0
        assert normalize(INT16_MAX, to_low=1.0, to_high=0.0) == 0.0

    def test_monotonic_in_value(self):
        values = [normalize(v) for v in (-30000, -100, 0, 100, 30000)]
        assert values == sorted(values)


class TestValidateRange:
    """Normalization range validation."""

    def test_none_disables_normalization(self):
        assert validate_range(None) is None

    def test_accepts_list_of_two_numbers(self):
        assert validate_range([0, 1]) == (0.0, 1.0)
        assert validate_range((-1, 1.5)) == (-1.0, 1.5)

    @pytest.mark.parametrize("bad", [[1], [0, 1, 2], [], ["a", "b"], 5])
    def test_rejects_malformed_range(self, bad):
        with pytest.raises(MalformedInput):
            validate_range(bad)
