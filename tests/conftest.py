"""Shared fixtures for kubelog tests."""

from __future__ import annotations

import pytest

from tests.helpers import CapturedSink, FakeBackend


@pytest.fixture
def sink() -> CapturedSink:
    return CapturedSink()


@pytest.fixture
def prefixed_sink() -> CapturedSink:
    return CapturedSink(include_timestamp=True, include_prefix=True)


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()
