"""Root test configuration."""

import logging

import pytest
import structlog
from stacklayer.orchestration import DeploymentContext
from stacklayer.providers import InMemoryProvider, ProviderRegistry
from stacklayer.units import Locality

ACCOUNT = "111111111111"


def pytest_configure(config):
    """Configure structlog for tests to suppress debug/info output."""
    logging.basicConfig(level=logging.WARNING, force=True)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.processors.add_log_level,
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


@pytest.fixture
def primary():
    return Locality(ACCOUNT, "ap-southeast-2")


@pytest.fixture
def edge():
    return Locality(ACCOUNT, "us-east-1")


@pytest.fixture
def context():
    return DeploymentContext(
        app_name="cms",
        environment="test",
        account=ACCOUNT,
        primary_region="ap-southeast-2",
        edge_region="us-east-1",
        domain_name="example.com",
        cf_certificate_arn=f"arn:aws:acm:us-east-1:{ACCOUNT}:certificate/viewer",
        origin_certificate_arn=f"arn:aws:acm:ap-southeast-2:{ACCOUNT}:certificate/origin",
        budget_email="ops@example.com",
    )


@pytest.fixture
def provider():
    return InMemoryProvider()


@pytest.fixture
def registry(provider):
    return ProviderRegistry(default=provider)
