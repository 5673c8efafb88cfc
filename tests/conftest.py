"""
Shared test fixtures and configuration for pytest.
"""

import sys
from pathlib import Path

import pytest

# Project root (flat layout) and this directory (test doubles) on the path
sys.path.insert(0, str(Path(__file__).parent.parent))
sys.path.insert(0, str(Path(__file__).parent))

from fakes import BagOfWordsEmbedder, FakeBackend  # noqa: E402


# ============================================================================
# Pytest hooks
# ============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (no external dependencies)")
    config.addinivalue_line("markers", "e2e: End-to-end tests through the gateway facade")


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def embedder() -> BagOfWordsEmbedder:
    """Deterministic bag-of-words embedder."""
    return BagOfWordsEmbedder()


@pytest.fixture
def backend() -> FakeBackend:
    """Streaming backend answering 'Hello world' in two chunks."""
    return FakeBackend(name="primary", deltas=["Hello", " world"])


@pytest.fixture
def animal_documents() -> list:
    return ["cats are mammals", "dogs are mammals", "sharks are fish"]
