"""Shared test fixtures for backend tests."""

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from claimguard.api.deps import get_narrative, get_reference
from claimguard.main import app
from claimguard.models import ClaimLineItem, ReferenceDatabase
from claimguard.seed.reference_data import load_reference_database


@pytest.fixture(scope="session")
def reference() -> ReferenceDatabase:
    """Built-in reference tables (no settings or files involved)."""
    return load_reference_database()


@pytest.fixture
def make_claim(reference):
    """Factory for claim line items; description defaults to the reference entry."""
    def _make(
        claim_id: str = "CLM-1",
        code: str = "99213",
        notes: str = "",
        billed: float | None = None,
        description: str | None = None,
        department: str = "Emergency Department",
        service_date: str = "2024-03-10",
        service_time: str = "10:00",
        patient_name: str = "Ravi Kumar",
        latitude: float | None = None,
        longitude: float | None = None,
    ) -> ClaimLineItem:
        info = reference.lookup(code)
        if description is None:
            description = info.description if info else "Unlisted procedure"
        if billed is None:
            billed = info.avg_cost if info else 1000.0
        return ClaimLineItem(
            claim_id=claim_id,
            patient_name=patient_name,
            service_date=service_date,
            service_time=service_time,
            department=department,
            procedure_code=code,
            procedure_description=description,
            billed_amount=billed,
            clinical_notes=notes,
            latitude=latitude,
            longitude=longitude,
        )
    return _make


@pytest_asyncio.fixture
async def client(reference) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app with built-in reference data and template narratives."""
    app.dependency_overrides[get_reference] = lambda: reference
    app.dependency_overrides[get_narrative] = lambda: None
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
