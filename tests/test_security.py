import pytest
from jose import jwt

from nubia.core.exceptions import UnauthorizedError
from nubia.core.security import (
    check_password,
    decode_token,
    get_current_user_id,
    get_optional_user_id,
    hash_admin_password,
    hash_password,
    issue_token,
    verify_admin_credentials,
)
from tests.conftest import ADMIN_PASSWORD, ADMIN_USERNAME


def test_bcrypt_round_trip():
    hashed = hash_password("sup3r-secret", rounds=4)
    assert check_password("sup3r-secret", hashed)
    assert not check_password("wrong", hashed)
    assert not check_password("anything", None)
    assert not check_password("anything", "not-a-bcrypt-hash")


def test_admin_hash_is_pbkdf2_sha512_hex():
    digest = hash_admin_password("pw", "salt")
    assert len(digest) == 128
    assert digest == hash_admin_password("pw", "salt")
    assert digest != hash_admin_password("pw", "other-salt")


def test_admin_credentials(app):
    assert verify_admin_credentials(ADMIN_USERNAME, ADMIN_PASSWORD)
    assert not verify_admin_credentials(ADMIN_USERNAME, "nope")
    assert not verify_admin_credentials("someone", ADMIN_PASSWORD)


def test_token_claims(app):
    claims = decode_token(issue_token("42", "customer"))
    assert claims["sub"] == "42"
    assert claims["role"] == "customer"


def test_tampered_token_is_rejected(app):
    forged = jwt.encode({"sub": "1", "role": "admin"}, "another-secret", algorithm="HS256")
    with pytest.raises(UnauthorizedError):
        decode_token(forged)


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


def test_claims_are_scoped_to_the_request(app):
    with app.test_request_context():
        with pytest.raises(UnauthorizedError):
            get_current_user_id()
    with app.test_request_context(headers=bearer(issue_token("7", "customer"))):
        assert get_current_user_id() == 7
    with app.test_request_context(headers=bearer(issue_token("8", "customer"))):
        assert get_current_user_id() == 8


def test_optional_user_id(app):
    with app.test_request_context():
        assert get_optional_user_id() is None
    with app.test_request_context(headers=bearer(issue_token("7", "customer"))):
        assert get_optional_user_id() == 7
    with app.test_request_context(headers=bearer(issue_token(ADMIN_USERNAME, "admin"))):
        assert get_optional_user_id() is None
    with app.test_request_context(headers=bearer("garbage")):
        with pytest.raises(UnauthorizedError):
            get_optional_user_id()
