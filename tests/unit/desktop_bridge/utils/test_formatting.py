"""Unit tests for formatting utilities.

Example Run:
    pytest tests/unit/desktop_bridge/utils/test_formatting.py -v
"""

import pytest

from desktop_bridge.utils.formatting import format_percentage, sanitize_topic


class TestSanitizeTopic:
    """Test suite for sanitize_topic."""

    @pytest.mark.parametrize(
        "name, expected",
        [
            ("My PC Name", "my_pc_name"),
            ("eDP-1", "edp-1"),
            ("alsa_output.pci-0000_00_1f.3.analog-stereo", "alsa_output_pci-0000_00_1f_3_analog-stereo"),
            ("a/b+c#d", "a_b_c_d"),
            ("  spaced  ", "spaced"),
            ("__", ""),
        ],
    )
    def test_sanitize(self, name, expected):
        assert sanitize_topic(name) == expected

    def test_no_wildcards_left(self):
        assert not any(c in sanitize_topic("$SYS/#/+") for c in "$/#+")


def test_format_percentage():
    assert format_percentage(45) == "45%"
