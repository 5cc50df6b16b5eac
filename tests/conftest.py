"""Shared fixtures: an in-memory cluster wired to a reconciler."""

import pytest

from fakes import (
    FakeCloudProvider,
    FakeCrdClient,
    FakeNodeSource,
    FakePodSource,
    RecordingEventSink,
)
from reconciler import Reconciler


@pytest.fixture
def pods() -> FakePodSource:
    return FakePodSource()


@pytest.fixture
def nodes() -> FakeNodeSource:
    return FakeNodeSource()


@pytest.fixture
def crd() -> FakeCrdClient:
    return FakeCrdClient()


@pytest.fixture
def cloud() -> FakeCloudProvider:
    return FakeCloudProvider()


@pytest.fixture
def events() -> RecordingEventSink:
    return RecordingEventSink()


@pytest.fixture
def reconciler(pods, nodes, crd, cloud, events) -> Reconciler:
    return Reconciler(pods, nodes, crd, cloud, events, max_workers=1)
