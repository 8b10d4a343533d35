"""
Pytest fixtures for KYC tracker backend tests.

Provides test database setup, reviewer actors, and helpers that walk a
submission through the workflow.
"""

import pytest
from kyc import create_app
from kyc.extensions import db
from kyc.actors import Actor, ROLE_ADMIN, ROLE_SUPERADMIN, ROLE_MASTERADMIN, ROLE_MARKETER
from kyc.services import form_service, submission_service, workflow_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        db.session.expire_all()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture
def marketer():
    return Actor(id=100, role=ROLE_MARKETER)


@pytest.fixture
def admin():
    return Actor(id=10, role=ROLE_ADMIN)


@pytest.fixture
def superadmin():
    return Actor(id=20, role=ROLE_SUPERADMIN)


@pytest.fixture
def masteradmin():
    return Actor(id=30, role=ROLE_MASTERADMIN)


@pytest.fixture
def submission(db_session, marketer):
    """Fresh submission in pending_admin_review with no forms submitted."""
    return submission_service.create_submission(marketer.id, actor=marketer, assigned_admin_id=10)


def submit_all_forms(submission_id: int) -> None:
    for form_name in submission_service.FORM_NAMES:
        form_service.submit_form(submission_id, form_name, {"filled": form_name})


@pytest.fixture
def advance(admin, superadmin, masteradmin):
    """
    Walk a submission forward to the requested status.

    Usage: advance(submission.id, "pending_superadmin_review")
    """
    steps = [
        ("admin_verified", lambda sid: (
            submit_all_forms(sid),
            workflow_service.upload_admin_verification(sid, actor=admin, notes="Met in person"),
        )),
        ("pending_superadmin_review", lambda sid: workflow_service.send_to_superadmin(sid, actor=admin)),
        ("pending_masteradmin_approval", lambda sid: workflow_service.superadmin_review(
            sid, result="yes", notes="Documents check out", actor=superadmin,
        )),
        ("approved", lambda sid: workflow_service.masteradmin_decide(sid, result="approved", actor=masteradmin)),
    ]

    def _advance(submission_id: int, target: str):
        for status, step in steps:
            step(submission_id)
            if status == target:
                return submission_service.get_submission(submission_id)
        raise ValueError(f"Unknown target status {target}")

    return _advance


def actor_headers(actor: Actor) -> dict:
    """Helper to create actor identity headers."""
    return {'X-Actor-Id': str(actor.id), 'X-Actor-Role': actor.role}


@pytest.fixture
def headers():
    return actor_headers


@pytest.fixture
def fill_forms():
    return submit_all_forms
