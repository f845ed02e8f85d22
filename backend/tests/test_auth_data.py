from urllib.parse import parse_qsl, urlencode

import pytest

from portfolio.utils.auth_data import sign_auth_data, verify_auth_data

SECRET = "auth_secret"
ISSUED = 1_760_000_000


def test_signed_token_verifies():
    token = sign_auth_data(SECRET, "user_1", "asha@example.com", auth_date=ISSUED)

    data = verify_auth_data(token, SECRET, ttl_sec=3600, now=ISSUED + 60)
    assert data == {"user_id": "user_1", "email": "asha@example.com", "auth_date": str(ISSUED)}


def test_tampered_field_is_rejected():
    token = sign_auth_data(SECRET, "user_1", "asha@example.com", auth_date=ISSUED)
    fields = dict(parse_qsl(token))
    fields["user_id"] = "user_2"

    with pytest.raises(ValueError, match="signature"):
        verify_auth_data(urlencode(fields), SECRET, now=ISSUED)


def test_wrong_secret_is_rejected():
    token = sign_auth_data("other", "user_1", "asha@example.com", auth_date=ISSUED)
    with pytest.raises(ValueError):
        verify_auth_data(token, SECRET, now=ISSUED)


def test_expired_token_is_rejected():
    token = sign_auth_data(SECRET, "user_1", "asha@example.com", auth_date=ISSUED)
    with pytest.raises(ValueError, match="expired"):
        verify_auth_data(token, SECRET, ttl_sec=3600, now=ISSUED + 3601)


@pytest.mark.parametrize("raw", ["user_id=1&email=a%40b.c", "garbage", "auth_date=x&hash=abc"])
def test_malformed_tokens_are_rejected(raw):
    with pytest.raises(ValueError):
        verify_auth_data(raw, SECRET, now=ISSUED)
