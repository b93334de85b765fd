"""Fixtures for deployment tests."""

import os
import pytest
import httpx


@pytest.fixture(scope="session")
def deployment_config():
    """Get Deployment configuration from environment."""
    config = {
        "api_base_url": os.environ.get("API_BASE_URL"),
        "trace_id": os.environ.get("SMOKE_TRACE_ID"),
        "environment": os.environ.get("DEPLOYMENT_ENV", "dev"),
    }

    if not config["api_base_url"]:
        pytest.skip("Missing required environment variable: API_BASE_URL")

    return config


@pytest.fixture(scope="session")
def http_client(deployment_config):
    """Create http client for API tests"""
    with httpx.Client(base_url=deployment_config["api_base_url"], timeout=30.0) as client:
        yield client
