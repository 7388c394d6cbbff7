import logging

import pytest

from errors import NotConfiguredError, SearchExhaustedError, best_effort


def test_best_effort_returns_result():
    assert best_effort(lambda a, b=0: a + b, 1, b=2) == 3


def test_best_effort_logs_and_returns_default(caplog):
    def boom():
        raise RuntimeError("upstream down")

    with caplog.at_level(logging.WARNING):
        assert best_effort(boom, default="fallback", label="Odds lookup") == "fallback"

    assert "Odds lookup failed: upstream down" in caplog.text


def test_best_effort_copies_mutable_defaults():
    shared = []

    def boom():
        raise ValueError("bad payload")

    result = best_effort(boom, default=shared)
    result.append("x")

    assert shared == []


def test_best_effort_reraises_listed_errors():
    def missing_key():
        raise NotConfiguredError("no key")

    with pytest.raises(NotConfiguredError):
        best_effort(missing_key, default=[], reraise=(NotConfiguredError,))

    assert best_effort(missing_key, default=[]) == []


def test_search_exhausted_carries_both_errors():
    primary, fallback = ValueError("blocked"), RuntimeError("no canned data")
    error = SearchExhaustedError(primary, fallback)

    assert error.primary_error is primary
    assert error.fallback_error is fallback
    assert "blocked" in str(error) and "no canned data" in str(error)
