"""Shared fixtures for tiered-fileio tests."""

import logging

import pytest

from tiered_fileio.io.files import FileInfo


class FakeInputFile:
    """Input file stand-in that records where it was opened."""

    def __init__(self, location, length=None):
        self.location = location
        self.length = length

    def get_length(self):
        return self.length if self.length is not None else 42

    def exists(self):
        return True

    def new_stream(self):
        return f"stream:{self.location}"


class FakeOutputFile:
    def __init__(self, location):
        self.location = location


class FakeFileIO:
    """Delegate file IO that records every call instead of touching storage."""

    def __init__(self, conf=None):
        self.conf = conf
        self.initialized_with = None
        self.calls = []
        self.close_count = 0
        self.listing = {}
        self.conf_serializer = None

    def initialize(self, properties):
        self.initialized_with = dict(properties)

    def properties(self):
        return dict(self.initialized_with or {})

    def get_conf(self):
        return self.conf

    def serialize_conf_with(self, conf_serializer):
        self.conf_serializer = conf_serializer

    def new_input_file(self, location, length=None):
        self.calls.append(("new_input_file", location, length))
        return FakeInputFile(location, length)

    def new_output_file(self, location):
        self.calls.append(("new_output_file", location))
        return FakeOutputFile(location)

    def delete_file(self, location):
        self.calls.append(("delete_file", location))

    def delete_prefix(self, prefix):
        self.calls.append(("delete_prefix", prefix))

    def list_prefix(self, prefix):
        self.calls.append(("list_prefix", prefix))
        return iter(self.listing.get(prefix, []))

    def close(self):
        self.close_count += 1


@pytest.fixture
def fake_factory():
    """Delegate factory that remembers every FakeFileIO it builds."""
    created = []

    def factory(conf=None):
        delegate = FakeFileIO(conf)
        created.append(delegate)
        return delegate

    factory.created = created
    return factory


@pytest.fixture
def mapping_properties():
    """Flat properties mapping one GCS bucket onto a local Alluxio cache."""
    return {
        "cache.baseuri": "alluxio://localhost:19998/",
        "canonical.baseuri": "gs://my-bucket/",
        "read.through.cache": "true",
    }


@pytest.fixture
def file_info():
    """Build FileInfo entries with fixed size and timestamp."""

    def make(location, size=10):
        return FileInfo(location=location, size=size, created_at_millis=1700000000000)

    return make


@pytest.fixture(autouse=True)
def reset_package_logger():
    """Drop handlers attached by CLI runs so later tests log cleanly."""
    yield
    logging.getLogger("tiered_fileio").handlers.clear()
