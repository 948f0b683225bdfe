"""
Pytest configuration and fixtures

IMPORTANT: Tests run against an in-memory SQLite database.
Tables are created before and dropped after every test, so nothing leaks
between tests and no external database is needed. The planner never reaches
the network: the API key is blanked and tests inject mock clients.
"""
import os
import sys

# Must be set before core.config is imported anywhere
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SUPABASE_JWT_SECRET"] = "test-jwt-secret-not-for-production"
os.environ["ANTHROPIC_API_KEY"] = ""
os.environ["LOG_FORMAT"] = "text"

# Add the parent directory to the path so we can import from services
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from fastapi.testclient import TestClient

from core.database import Base, SessionLocal, engine
from core.security import create_access_token
from models import SomiBlock
from services.block_store import Block

BODY_SCAN_ID = 20

CATALOG = [
    # (id, canonical_name, name, energy_delta, safety_delta)
    (1, "vagus_reset", "Vagus Reset", 0, 2),
    (2, "heart_opener", "Heart Opener", 2, 1),
    (3, "self_havening", "Self Havening", -1, 2),
    (4, "body_tapping", "Body Tapping", 2, 0),
    (5, "freeze_roll", "Freeze Roll", 1, -1),
    (6, "arm_shoulder_hand_circles", "Arm, Shoulder & Hand Circles", 1, 1),
    (7, "eye_covering", "Eye Covering", -1, 2),
    (8, "humming", "Humming", 0, 1),
    (9, "shaking", "Shaking", 3, -2),
]


@pytest.fixture(autouse=True)
def _schema():
    """Fresh tables for every test."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def catalog(db_session):
    """Nine playable blocks, one retired block, and the body scan row."""
    for block_id, canonical, name, energy, safety in CATALOG:
        db_session.add(SomiBlock(
            id=block_id,
            canonical_name=canonical,
            name=name,
            description=f"{name} description",
            energy_delta=energy,
            safety_delta=safety,
            media_url=f"https://cdn.example.com/{canonical}.mp4",
        ))
    db_session.add(SomiBlock(
        id=10,
        canonical_name="retired_block",
        name="Retired",
        active=False,
    ))
    db_session.add(SomiBlock(
        id=BODY_SCAN_ID,
        canonical_name="body_scan",
        name="Body Scan",
        block_type="body_scan",
        media_type="audio",
    ))
    db_session.commit()
    return db_session.query(SomiBlock).order_by(SomiBlock.id).all()


@pytest.fixture
def block_pool():
    """Plain Block values, no database."""
    return [
        Block(id=i, canonical_name=c, name=n, energy_delta=e, safety_delta=s)
        for i, c, n, e, s in CATALOG
    ]


@pytest.fixture
def client():
    from main import app
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def user_id():
    return "3f1c7a52-1b0e-4a9f-9d1e-2a6a4f0c8b11"


@pytest.fixture
def auth_headers(user_id):
    token = create_access_token({"sub": user_id, "email": "someone@example.com"})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def other_auth_headers():
    token = create_access_token({"sub": "9b2d6e14-77aa-4c3e-8f10-5d4c3b2a1f00"})
    return {"Authorization": f"Bearer {token}"}
