"""Simple API health tests against the fully configured application."""

import pytest
from httpx import ASGITransport, AsyncClient

from hotel_booking.main import create_app


def test_import_app():
    """Test that we can import and build the app."""
    app = create_app()
    assert app is not None
    assert app.state.lock_manager is not None


@pytest.mark.asyncio
async def test_api_health_endpoints():
    """Test the health endpoints without lifespan startup."""
    app = create_app()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"

        # The in-memory database answers SELECT 1 without any tables
        response = await client.get("/ready")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ready"

        response = await client.get("/info")
        assert response.status_code == 200
        data = response.json()
        assert "service" in data
        assert "version" in data


@pytest.mark.asyncio
async def test_metrics_endpoint():
    """Test the metrics endpoint."""
    app = create_app()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        await client.get("/health")
        response = await client.get("/metrics")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert "http_requests_total" in response.text


@pytest.mark.asyncio
async def test_docs_hidden_outside_development():
    """Test that OpenAPI docs are only served in development."""
    app = create_app()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/docs")
        assert response.status_code == 404


@pytest.mark.asyncio
async def test_openapi_documents_problem_responses():
    """Test that API routes advertise their Problem Details error bodies."""
    app = create_app()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/openapi.json")
        assert response.status_code == 200
        schema = response.json()

    assert "Problem" in schema["components"]["schemas"]
    hold_responses = schema["paths"]["/v1/booking/hold"]["post"]["responses"]
    assert {"201", "409", "410"} <= set(hold_responses)
