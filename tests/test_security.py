from datetime import timedelta

import pytest
from jose import jwt

from i18n import load_catalog, make_translator, negotiate_language
from security import (
    ALGORITHM,
    SECRET_KEY,
    API_PREFIX,
    create_access_token,
    generate_token,
    get_password_hash,
    verify_password,
)
from tests.conftest import auth_headers


def test_password_hashing():
    hashed = get_password_hash("pa55word")

    assert hashed != "pa55word"
    assert verify_password("pa55word", hashed)
    assert not verify_password("other", hashed)


def test_token_claims(user):
    claims = jwt.decode(generate_token(user), SECRET_KEY, algorithms=[ALGORITHM])

    assert claims["sub"] == str(user["_id"])
    assert claims["role"] == "user"
    assert "exp" in claims


def test_expired_token_is_rejected(client, user):
    token = create_access_token({"sub": str(user["_id"])}, expires_delta=timedelta(minutes=-1))

    response = client.get(f"{API_PREFIX}/auth/profile", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401
    assert response.headers["www-authenticate"] == "Bearer"


def test_token_for_deleted_user_is_rejected(client, repos, user):
    headers = auth_headers(user)
    repos.users.store.pop(user["_id"])

    assert client.get(f"{API_PREFIX}/auth/profile", headers=headers).status_code == 401


def test_stored_role_wins_over_token_claim(client, repos, admin):
    headers = auth_headers(admin)
    repos.users.update(admin["_id"], {"role": "user"})

    response = client.delete(f"{API_PREFIX}/orders/650000000000000000000001", headers=headers)

    assert response.status_code == 403


def test_language_negotiation():
    assert negotiate_language(None) == "en"
    assert negotiate_language("ar-EG,en;q=0.8") == "ar"
    assert negotiate_language("fr-FR,fr;q=0.9,en;q=0.5") == "en"
    assert negotiate_language("de;q=0.2,ar;q=0.9") == "ar"


def test_translator_falls_back():
    t = make_translator("ar")

    assert t("orderNotFound") == "الطلب غير موجود"
    assert t("no.such.key") == "no.such.key"
    assert make_translator("fr")("invalidStatus") == "Invalid status"


@pytest.mark.parametrize("language", ["ar"])
def test_catalogs_cover_every_english_key(language):
    assert set(load_catalog(language)) == set(load_catalog("en"))
