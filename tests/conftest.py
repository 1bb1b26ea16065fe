import os
import tempfile
from datetime import datetime

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="store-uploads-"))

import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from i18n import make_translator
from repositories import get_repositories
from schemas import Category, Product, User
from security import current_identity, generate_token, get_password_hash

from tests.fakes import fake_repositories

PASSWORD = "secret123"
PASSWORD_HASH = get_password_hash(PASSWORD)


@pytest.fixture()
def repos():
    return fake_repositories()


@pytest.fixture()
def t():
    return make_translator("en")


@pytest.fixture()
def client(repos):
    from main import app

    app.dependency_overrides[get_repositories] = lambda: repos
    yield TestClient(app)
    app.dependency_overrides.clear()


def make_user(repos, email, role="user", user_name="Jane Doe"):
    user = User(
        email=email,
        password_hash=PASSWORD_HASH,
        role=role,
        user_name=user_name,
        phone_number="+12025550123",
        city="Springfield",
        postal_code="12345",
        address_line1="1 Main Street",
        created_at=datetime.utcnow(),
        updated_at=datetime.utcnow(),
    )
    return repos.users.create(user.model_dump())


def make_product(repos, title="Lamp", price=10.0, stock=5, category=None):
    product = Product(
        title=title,
        price=price,
        category=category or ObjectId(),
        count_in_stock=stock,
        description=f"A {title.lower()}",
    )
    return repos.products.create(product.model_dump())


def auth_headers(user):
    return {"Authorization": f"Bearer {generate_token(user)}"}


@pytest.fixture()
def user(repos):
    return make_user(repos, "jane@example.com")


@pytest.fixture()
def other_user(repos):
    return make_user(repos, "john@example.com", user_name="John Roe")


@pytest.fixture()
def admin(repos):
    return make_user(repos, "admin@example.com", role="admin", user_name="Admin")


@pytest.fixture()
def caller(user):
    return current_identity(user)


@pytest.fixture()
def other_caller(other_user):
    return current_identity(other_user)


@pytest.fixture()
def admin_caller(admin):
    return current_identity(admin)


@pytest.fixture()
def category(repos):
    return repos.categories.create(Category(name="Lighting").model_dump())
