"""Pytest configuration and shared fixtures."""

from datetime import datetime

import pytest

from scheduler.config import SchedulerConfig
from scheduler.directory import InMemoryDirectory
from scheduler.service import SchedulingService
from scheduler.store import InMemoryActivityStore

from helpers import FakeClock, build_directory


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 10, 12, 9, 0))


@pytest.fixture
def config() -> SchedulerConfig:
    return SchedulerConfig(lookup_retry_wait_seconds=0)


@pytest.fixture
def directory() -> InMemoryDirectory:
    return build_directory()


@pytest.fixture
def store() -> InMemoryActivityStore:
    return InMemoryActivityStore()


@pytest.fixture
def service(directory, store, config, clock) -> SchedulingService:
    return SchedulingService(directory, store, config=config, clock=clock)
