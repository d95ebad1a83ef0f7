"""Health and root endpoint tests."""

import logging

import pytest

from webstability.main import HealthCheckFilter


@pytest.mark.asyncio
async def test_root(test_client):
    resp = await test_client.get("/")
    assert resp.status_code == 200
    assert "message" in resp.json()


@pytest.mark.asyncio
async def test_health(test_client):
    resp = await test_client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "healthy"}


def test_health_checks_are_not_logged():
    health_filter = HealthCheckFilter()

    def record(message):
        return logging.LogRecord("uvicorn.access", logging.INFO, "", 0, message, None, None)

    assert health_filter.filter(record('GET /health HTTP/1.1" 200')) is False
    assert health_filter.filter(record('GET /api/v1/projects/ HTTP/1.1" 200')) is True
