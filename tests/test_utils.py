import logging
import time

import pytest
import structlog

from tooldex.errors import ConfigurationError
from tooldex.logging import configure_logging
from tooldex.utils import Stopwatch, clip


class TestClip:
    def test_short_text_untouched(self):
        assert clip("REST client", 20) == "REST client"

    def test_cuts_on_word_boundary(self):
        assert clip("API testing and mock servers", 15) == "API testing…"

    def test_collapses_whitespace(self):
        assert clip("API\n  testing", 20) == "API testing"

    def test_single_long_word(self):
        assert clip("x" * 30, 10) == "x" * 9 + "…"


class TestStopwatch:
    def test_elapsed_grows(self):
        timer = Stopwatch()
        time.sleep(0.01)
        assert timer.elapsed_ms >= 10


class TestConfigureLogging:
    @pytest.fixture(autouse=True)
    def reset(self):
        yield
        structlog.reset_defaults()

    def test_quiets_third_party_loggers(self):
        configure_logging("DEBUG", colors=False)
        assert logging.getLogger("LiteLLM").level == logging.WARNING

    def test_unknown_level(self):
        with pytest.raises(ConfigurationError, match="verbose"):
            configure_logging("verbose")
