"""Shared fixtures: fresh store/broadcaster/runner per test and a fast tick."""

import pytest

from crewdeck.api import create_app
from crewdeck.broadcaster import EventBroadcaster
from crewdeck.config import RunnerSettings, Settings
from crewdeck.runner import ExecutionRunner
from crewdeck.store import ExecutionStore

FAST_INTERVAL = 0.01


def drain(subscription):
    """Everything currently queued on a subscription, oldest first."""
    messages = []
    while not subscription.queue.empty():
        messages.append(subscription.queue.get_nowait())
    return messages


@pytest.fixture
def runner_settings():
    return RunnerSettings(interval=FAST_INTERVAL)


@pytest.fixture
def store():
    return ExecutionStore()


@pytest.fixture
def broadcaster():
    return EventBroadcaster()


@pytest.fixture
def runner(store, broadcaster, runner_settings):
    return ExecutionRunner(store, broadcaster, runner_settings)


@pytest.fixture
def app_factory():
    def build(interval=FAST_INTERVAL, **runner_overrides):
        return create_app(Settings(runner=RunnerSettings(interval=interval, **runner_overrides)))
    return build


@pytest.fixture
def app(app_factory):
    return app_factory()
