"""Test doubles shared across the test suite."""

from tests.factories.metadata import CountingMetadataSource


__all__ = ["CountingMetadataSource"]
