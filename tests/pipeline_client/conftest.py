"""pytest configuration for pipeline_client tests."""

import sys
from pathlib import Path

import pytest
from prometheus_client import REGISTRY

# Make the shared fakes module importable from every test subdirectory
sys.path.insert(0, str(Path(__file__).parent))


@pytest.fixture
def metric_value():
    """Read a sample from the default Prometheus registry (0.0 when absent)."""

    def read(name: str, **labels) -> float:
        return REGISTRY.get_sample_value(name, labels) or 0.0

    return read
