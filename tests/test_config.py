"""Tests for tasktree.config.Config defaults and env overrides."""

from __future__ import annotations

from datetime import timedelta, timezone

from tasktree.config import (
    DEFAULT_AT_RISK_MARGIN,
    DEFAULT_MAX_DEPTH,
    DEFAULT_MAX_RESUBSCRIBE,
    Config,
)


def test_defaults(monkeypatch):
    """Config() falls back to module defaults when no env vars are set."""
    for name in ("TASKTREE_TIMEZONE", "TASKTREE_MAX_DEPTH", "TASKTREE_MAX_RESUBSCRIBE"):
        monkeypatch.delenv(name, raising=False)
    cfg = Config()
    assert cfg.timezone == "UTC"
    assert cfg.max_depth == DEFAULT_MAX_DEPTH
    assert cfg.max_resubscribe == DEFAULT_MAX_RESUBSCRIBE
    assert cfg.at_risk_margin == DEFAULT_AT_RISK_MARGIN


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("TASKTREE_MAX_DEPTH", "50")
    monkeypatch.setenv("TASKTREE_MAX_RESUBSCRIBE", "7")
    cfg = Config()
    assert cfg.max_depth == 50
    assert cfg.max_resubscribe == 7


def test_bad_env_value_uses_default(monkeypatch):
    monkeypatch.setenv("TASKTREE_MAX_RESUBSCRIBE", "lots")
    assert Config().max_resubscribe == DEFAULT_MAX_RESUBSCRIBE


def test_explicit_values_win_over_env(monkeypatch):
    """Zero resubscribes is a real setting, not "unset"."""
    monkeypatch.setenv("TASKTREE_MAX_RESUBSCRIBE", "7")
    monkeypatch.setenv("TASKTREE_TIMEZONE", "Asia/Jakarta")
    cfg = Config(max_resubscribe=0, timezone="UTC")
    assert cfg.max_resubscribe == 0
    assert cfg.timezone == "UTC"


def test_utc_timezone():
    assert Config(timezone="utc").tzinfo() is timezone.utc


def test_unknown_timezone_falls_back_to_utc():
    assert Config(timezone="Mars/Olympus_Mons").tzinfo() is timezone.utc


def test_now_is_aware():
    now = Config(timezone="UTC").now()
    assert now.tzinfo is not None
    assert now.utcoffset() == timedelta(0)
