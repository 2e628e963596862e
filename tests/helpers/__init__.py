"""Test helper utilities for the buyer/property matcher tests."""

from .fake_store import InMemoryRecordStore, load_fixture_records

__all__ = ["InMemoryRecordStore", "load_fixture_records"]
