"""Shared test fixtures for the Supreme One CRM test suite.

Provides:
- app: Flask app configured for testing (in-memory SQLite, CSRF off)
- client: Flask test client
- db_session: clean database per test (tables created/dropped)
- seed_data: two territories, an admin, three reps, dealerships, deals
  and prospects spread across them
- login: helper fixture that signs the test client in as a seeded user
"""

from datetime import datetime, timedelta, timezone

import pytest
from werkzeug.security import generate_password_hash

from supreme_crm import create_app
from supreme_crm.extensions import db as _db
from supreme_crm.models.contact import Contact
from supreme_crm.models.deal import Deal
from supreme_crm.models.dealership import Dealership
from supreme_crm.models.prospect import Prospect
from supreme_crm.models.territory import Territory
from supreme_crm.models.user import User

PASSWORD = "password123"


@pytest.fixture(scope="session")
def app():
    """Create the Flask application configured for testing."""
    app = create_app("testing")
    yield app


@pytest.fixture(autouse=True)
def db_session(app):
    """Create all tables before each test, drop after."""
    with app.app_context():
        _db.create_all()
        yield _db.session
        _db.session.rollback()
        _db.drop_all()


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()


def _user(email, name, role="USER", territory=None, is_active=True):
    user = User(
        email=email,
        password_hash=generate_password_hash(PASSWORD),
        name=name,
        role=role,
        territory_id=territory.id if territory else None,
        is_active=is_active,
    )
    _db.session.add(user)
    return user


@pytest.fixture
def seed_data(app, db_session):
    """Seed territories, users, dealerships, deals and prospects.

    Visibility layout:
      - alice (North) sees Northside Motors and Lakeside Ford
      - bob (South) sees Southside Auto
      - carol (no territory) sees only the deal she owns on Southside Auto
    """
    now = datetime.now(timezone.utc)

    # --- Territories ---
    north = Territory(name="North")
    south = Territory(name="South")
    _db.session.add_all([north, south])
    _db.session.flush()

    # --- Users ---
    admin = _user("admin@supremeone.local", "Admin", role="ADMIN", territory=north)
    alice = _user("alice@supremeone.local", "Alice", territory=north)
    bob = _user("bob@supremeone.local", "Bob", territory=south)
    carol = _user("carol@supremeone.local", "Carol")
    _db.session.flush()

    # --- Dealerships ---
    northside = Dealership(
        name="Northside Motors",
        status="PROSPECT",
        city="Dallas",
        state="TX",
        monthly_value=1000.0,
        assigned_user_id=alice.id,
        territory_id=north.id,
    )
    southside = Dealership(
        name="Southside Auto",
        status="QUALIFIED",
        city="Houston",
        state="TX",
        monthly_value=2000.0,
        assigned_user_id=bob.id,
        territory_id=south.id,
    )
    lakeside = Dealership(
        name="Lakeside Ford",
        status="ACTIVE_CUSTOMER",
        city="Tulsa",
        state="OK",
        monthly_value=3000.0,
        is_live=True,
        live_activated_at=now - timedelta(days=3),
        customer_since=now - timedelta(days=3),
        assigned_user_id=alice.id,
        territory_id=north.id,
    )
    _db.session.add_all([northside, southside, lakeside])
    _db.session.flush()

    contact = Contact(
        dealership_id=northside.id,
        first_name="Nina",
        last_name="North",
        email="nina@northside.example",
        is_primary=True,
        lead_score=80,
    )
    _db.session.add(contact)

    # --- Deals ---
    north_lead = Deal(
        title="Northside CRM",
        value=10000.0,
        stage="LEAD",
        probability=10,
        dealership_id=northside.id,
        owner_id=alice.id,
    )
    north_negotiation = Deal(
        title="Northside Website",
        value=20000.0,
        stage="NEGOTIATION",
        probability=80,
        dealership_id=northside.id,
        owner_id=alice.id,
    )
    south_proposal = Deal(
        title="Southside Inventory Feed",
        value=5000.0,
        stage="PROPOSAL_SENT",
        probability=60,
        dealership_id=southside.id,
        owner_id=bob.id,
    )
    carol_qualified = Deal(
        title="Southside Service Lane",
        value=4000.0,
        stage="QUALIFIED",
        probability=25,
        dealership_id=southside.id,
        owner_id=carol.id,
    )
    lakeside_won = Deal(
        title="Lakeside Platform",
        value=30000.0,
        monthly_recurring=500.0,
        stage="CLOSED_WON",
        probability=100,
        closed_at=now - timedelta(days=3),
        dealership_id=lakeside.id,
        owner_id=alice.id,
    )
    _db.session.add_all(
        [north_lead, north_negotiation, south_proposal, carol_qualified, lakeside_won]
    )

    # --- Prospects ---
    alice_prospect = Prospect(
        first_name="Pat",
        last_name="Owner",
        email="pat@dealer.example",
        phone="555-0100",
        company="Pat's Autos",
        position="Owner",
        industry="Automotive",
        employee_count=120,
        linkedin_url="https://linkedin.com/in/pat",
        user_id=alice.id,
    )
    bob_prospect = Prospect(
        first_name="Sam",
        last_name="Seller",
        position="Salesperson",
        user_id=bob.id,
    )
    _db.session.add_all([alice_prospect, bob_prospect])
    _db.session.commit()

    return {
        "north": north,
        "south": south,
        "admin": admin,
        "alice": alice,
        "bob": bob,
        "carol": carol,
        "northside": northside,
        "southside": southside,
        "lakeside": lakeside,
        "contact": contact,
        "north_lead": north_lead,
        "north_negotiation": north_negotiation,
        "south_proposal": south_proposal,
        "carol_qualified": carol_qualified,
        "lakeside_won": lakeside_won,
        "alice_prospect": alice_prospect,
        "bob_prospect": bob_prospect,
        # Plain IDs for use across app contexts.
        "admin_id": admin.id,
        "alice_id": alice.id,
        "bob_id": bob.id,
        "carol_id": carol.id,
        "northside_id": northside.id,
        "southside_id": southside.id,
        "lakeside_id": lakeside.id,
        "alice_prospect_id": alice_prospect.id,
        "bob_prospect_id": bob_prospect.id,
    }


@pytest.fixture
def login(client, seed_data):
    """Return a callable that logs the test client in by seeded user key."""

    def _login(key):
        user = seed_data[key]
        resp = client.post(
            "/auth/login", json={"email": user.email, "password": PASSWORD}
        )
        assert resp.status_code == 200, resp.get_json()
        return resp

    return _login
