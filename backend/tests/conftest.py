"""
Pytest fixtures for the back-office tests.

Provides the application on an in-memory database, per-test table cleanup,
users with bearer tokens, and small master-data builders.
"""

import pytest

from backoffice import create_app
from backoffice.extensions import db
from backoffice.models import Branch, Color, Grade, Item, Size, Uom
from backoffice.services import permission_service, translation_service
from backoffice.services.auth_service import create_user
from backoffice.services.session_service import create_session


CSRF_TOKEN = "VALID"
PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'AZURE_TRANSLATOR_KEY': None,
        'AZURE_TRANSLATOR_REGION': None,
        'DEEPL_API_KEY': None,
        'DEEPL_API_URL': None,
        'TRANSLATION_CACHE_TTL_MS': 0,
        'TRANSLATION_HTTP_TRANSPORT': None,
        'GMAIL_USER': None,
        'GMAIL_APP_PASSWORD': None,
        'NOTIFICATIONS_ASYNC': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Test client carrying a CSRF cookie."""
    client = app.test_client()
    client.set_cookie('csrf_token', CSRF_TOKEN)
    return client


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        translation_service.cache.clear()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def branch(db_session):
    branch = Branch(code="MAIN", name="Main Branch", is_active=True)
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def admin_user(db_session, branch):
    """Admin with a deliverable email (receives approval notifications)."""
    return create_user("admin", PASSWORD, "admin", email="admin@erp.pk", branch_id=branch.id, rounds=4)


@pytest.fixture(scope='function')
def clerk_user(db_session, branch):
    """
    Non-admin with view/navigate/create/edit/delete on the master_data module.

    Writes still go to the approval queue wherever a policy requires it.
    """
    user = create_user("clerk", PASSWORD, "clerk", email="clerk@erp.pk", branch_id=branch.id, rounds=4)
    permission_service.grant_role_permission(
        user.primary_role_id, "MODULE", "master_data",
        can_view=True, can_navigate=True, can_create=True, can_edit=True, can_delete=True,
    )
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def viewer_user(db_session, branch):
    """Non-admin who may only look at master data."""
    user = create_user("viewer", PASSWORD, "viewer", email="viewer@erp.pk", branch_id=branch.id, rounds=4)
    permission_service.grant_role_permission(
        user.primary_role_id, "MODULE", "master_data", can_view=True, can_navigate=True,
    )
    db_session.commit()
    return user


def auth_headers(user) -> dict:
    """Bearer token plus the CSRF header matching the client cookie."""
    _session, token = create_session(user.id)
    return {'Authorization': f'Bearer {token}', 'X-CSRF-Token': CSRF_TOKEN}


@pytest.fixture(scope='function')
def admin_headers(admin_user):
    return auth_headers(admin_user)


@pytest.fixture(scope='function')
def clerk_headers(clerk_user):
    return auth_headers(clerk_user)


@pytest.fixture(scope='function')
def viewer_headers(viewer_user):
    return auth_headers(viewer_user)


@pytest.fixture(scope='function')
def uoms(db_session):
    """PCS (id 1) and DOZ (id 2)."""
    pcs = Uom(id=1, code="PCS", name="Pieces")
    doz = Uom(id=2, code="DOZ", name="Dozen")
    db_session.add_all([pcs, doz])
    db_session.commit()
    return pcs, doz


@pytest.fixture(scope='function')
def shoe(db_session):
    """Item 7 with sizes 3 ("40") and 4 ("41"), grade 1 ("A"), color 5 ("Black")."""
    item = Item(id=7, item_type="FG", code="shoe", name="Shoe")
    db_session.add_all([
        item,
        Size(id=3, name="40"),
        Size(id=4, name="41"),
        Grade(id=1, name="A"),
        Color(id=5, name="Black"),
    ])
    db_session.commit()
    return item
