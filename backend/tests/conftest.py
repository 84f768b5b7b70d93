"""
Pytest fixtures for CRM backend tests.

Provides an in-memory database, one approved account per role, a product
and bearer-token headers for each account.
"""

import pytest

from crm import create_app
from crm.constants import (
    AccountStatus,
    CustomerImportance,
    CustomerNature,
    CustomerProgress,
    UserRole,
)
from crm.extensions import db
from crm.models import Agent, Product, User
from crm.services.auth_service import hash_password

DEFAULT_PASSWORD = "Password123"

STANDARD_PRICING = [
    {"quantity": 1, "price": 10.0},
    {"quantity": 1000, "price": 9.0},
    {"quantity": 10000, "price": 8.0},
    {"quantity": 50000, "price": 7.0},
    {"quantity": 100000, "price": 6.0},
    {"quantity": 500000, "price": 5.0},
    {"quantity": 1000000, "price": 4.0},
]


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
        'DB_RETRY_BACKOFF': 0,
        'BOOTSTRAP_ADMIN_ON_STARTUP': False,
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

        yield db.session

        # Cleanup after test
        db.session.rollback()


def _make_user(db_session, username: str, role: str, status: str = AccountStatus.APPROVED, phone="13800000001"):
    user = User(
        username=username,
        password_hash=hash_password(DEFAULT_PASSWORD),
        phone=phone,
        role=role,
        status=status,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def admin_user(db_session):
    return _make_user(db_session, "root_admin", UserRole.SUPER_ADMIN)


@pytest.fixture(scope='function')
def sales_user(db_session):
    return _make_user(db_session, "sales_a", UserRole.FACTORY_SALES, phone="13800000002")


@pytest.fixture(scope='function')
def other_sales_user(db_session):
    return _make_user(db_session, "sales_b", UserRole.FACTORY_SALES, phone="13800000003")


@pytest.fixture(scope='function')
def inventory_user(db_session):
    return _make_user(db_session, "stock_keeper", UserRole.INVENTORY_MANAGER, phone="13800000004")


@pytest.fixture(scope='function')
def agent(db_session, sales_user):
    """Approved agent related to sales_user."""
    agent = Agent(
        company_name="华东代理有限公司",
        contact_person="张三",
        phone="13900000001",
        password_hash=hash_password(DEFAULT_PASSWORD),
        related_sales_id=sales_user.id,
        status=AccountStatus.APPROVED,
    )
    db_session.add(agent)
    db_session.commit()
    return agent


@pytest.fixture(scope='function')
def product(db_session):
    product = Product(
        model_name="STM32F103",
        package_type="LQFP48",
        stock=100,
        pricing=[dict(tier) for tier in STANDARD_PRICING],
    )
    db_session.add(product)
    db_session.commit()
    return product


def get_auth_token(client, username: str, password: str = DEFAULT_PASSWORD) -> str:
    """Helper to get auth token for a user or agent."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json['data']['token']
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_headers(client, admin_user):
    return auth_headers(get_auth_token(client, admin_user.username))


@pytest.fixture(scope='function')
def sales_headers(client, sales_user):
    return auth_headers(get_auth_token(client, sales_user.username))


@pytest.fixture(scope='function')
def other_sales_headers(client, other_sales_user):
    return auth_headers(get_auth_token(client, other_sales_user.username))


@pytest.fixture(scope='function')
def inventory_headers(client, inventory_user):
    return auth_headers(get_auth_token(client, inventory_user.username))


@pytest.fixture(scope='function')
def agent_headers(client, agent):
    return auth_headers(get_auth_token(client, agent.company_name))


@pytest.fixture
def customer_payload():
    """Factory for a valid customer create body."""
    def build(sales_id: int, **overrides) -> dict:
        payload = {
            "name": "深圳测试电子有限公司",
            "nature": CustomerNature.SME,
            "importance": CustomerImportance.A,
            "applicationField": "工业控制",
            "productNeeds": ["STM32F103"],
            "contactPerson": "李四",
            "contactPhone": "13900000002",
            "address": "深圳市南山区",
            "progress": CustomerProgress.SAMPLE_EVALUATION,
            "annualDemand": 50000,
            "relatedSalesId": sales_id,
        }
        payload.update(overrides)
        return payload
    return build
