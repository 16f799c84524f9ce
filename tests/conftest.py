"""Shared fixtures for registry tests."""
import pytest

from secret_registry import Environment, RegistryConfig, SecretRegistry, MemoryStorage


@pytest.fixture
def config():
    """Registry configuration with defaults."""
    return RegistryConfig(registry_owner="admin")

@pytest.fixture
def env():
    """Environment starting at height 100."""
    return Environment(height=100)

@pytest.fixture
def storage():
    return MemoryStorage()

@pytest.fixture
def registry(config, storage):
    """Registry over an in-memory backend."""
    return SecretRegistry(config, storage)
