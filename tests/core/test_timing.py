"""
Tests for the section Timer.
"""

import pytest

from pystratperm.core.timing import Timer


class TestTimer:

    def test_sections_accumulate(self):
        timer = Timer()
        timer.start()
        with timer.section("replicates"):
            pass
        with timer.section("replicates"):
            pass
        timer.stop()
        result = timer.result()
        assert set(result) == {"total_seconds", "replicates"}
        assert result["total_seconds"] >= result["replicates"] >= 0.0

    def test_stop_before_start(self):
        with pytest.raises(RuntimeError, match="before start"):
            Timer().stop()

    def test_result_before_stop(self):
        timer = Timer()
        timer.start()
        with pytest.raises(RuntimeError, match="before stop"):
            timer.result()
