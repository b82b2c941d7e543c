"""
Pytest configuration and fixtures for crawler tests.
"""

import pytest
from hypothesis import settings, Verbosity, HealthCheck

from bffgraph.utils.config import Config, PipelineConfig, FetchConfig

# Configure Hypothesis for faster test runs
settings.register_profile(
    "fast", max_examples=25, deadline=None, verbosity=Verbosity.quiet,
    suppress_health_check=[HealthCheck.too_slow]
)
settings.register_profile("thorough", max_examples=300, deadline=None, verbosity=Verbosity.normal)

# Use fast profile by default
settings.load_profile("fast")


@pytest.fixture
def fast_config():
    """Configuration with tiny poll intervals for pipeline tests."""
    return Config(
        fetch=FetchConfig(max_concurrency=100),
        pipeline=PipelineConfig(depth=2, backpressure_ratio=0.9,
                                poll_interval=0.001, lease_retry_delay=0.005)
    )


@pytest.fixture
def data_dir(tmp_path):
    """Temporary data directory for range files."""
    return tmp_path / "data"
