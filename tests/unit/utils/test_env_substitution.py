"""Unit tests for environment variable substitution."""

import pytest

from src.utils.env import substitute_env_vars


def test_required_variable(monkeypatch: pytest.MonkeyPatch):
    """Test substitution of a set variable."""
    monkeypatch.setenv("SUB_TEST_VALUE", "hello")

    assert substitute_env_vars("x=${SUB_TEST_VALUE}") == "x=hello"


def test_default_used_when_unset(monkeypatch: pytest.MonkeyPatch):
    """Test that the default is used when the variable is unset."""
    monkeypatch.delenv("SUB_TEST_MISSING", raising=False)

    assert substitute_env_vars("${SUB_TEST_MISSING:-fallback}") == "fallback"


def test_default_ignored_when_set(monkeypatch: pytest.MonkeyPatch):
    """Test that the default is ignored when the variable is set."""
    monkeypatch.setenv("SUB_TEST_VALUE", "set")

    assert substitute_env_vars("${SUB_TEST_VALUE:-fallback}") == "set"


def test_missing_required_variable_raises(monkeypatch: pytest.MonkeyPatch):
    """Test that an unset required variable raises ValueError."""
    monkeypatch.delenv("SUB_TEST_MISSING", raising=False)

    with pytest.raises(ValueError, match="SUB_TEST_MISSING"):
        substitute_env_vars("${SUB_TEST_MISSING}")


def test_custom_error_message(monkeypatch: pytest.MonkeyPatch):
    """Test that the custom error message is raised."""
    monkeypatch.delenv("SUB_TEST_MISSING", raising=False)

    with pytest.raises(ValueError, match="set the database password"):
        substitute_env_vars("${SUB_TEST_MISSING:?set the database password}")


def test_text_without_placeholders_unchanged():
    """Test that text without placeholders is unchanged."""
    text = '{"$schema": "https://example.com/#", "value": "$notavar"}'

    assert substitute_env_vars(text) == text
