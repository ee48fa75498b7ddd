"""Tests for the logging settings component."""

import importlib

import pytest

from server.settings.components import logging as logging_settings


@pytest.fixture
def reload_logging_settings(monkeypatch):
    """Re-evaluate the logging component under a patched environment.

    Yields:
        Callable returning the freshly built LOGGING dict.
    """
    def reload_settings():
        return importlib.reload(logging_settings).LOGGING

    yield reload_settings
    monkeypatch.undo()
    importlib.reload(logging_settings)


def test_project_log_level_follows_django_log_level(
    monkeypatch,
    reload_logging_settings,
):
    """One environment variable sets the level of project loggers."""
    monkeypatch.setenv('DJANGO_LOG_LEVEL', 'DEBUG')

    loggers = reload_logging_settings()['loggers']

    assert loggers['server']['level'] == 'DEBUG'
    assert loggers['django']['level'] == 'DEBUG'


def test_project_log_level_default(monkeypatch, reload_logging_settings):
    """Without configuration project loggers log at INFO."""
    monkeypatch.delenv('DJANGO_LOG_LEVEL', raising=False)

    loggers = reload_logging_settings()['loggers']

    assert loggers['server']['level'] == 'INFO'
