import time

import jwt
import pytest

from console_auth.utils.token import decode_expiry, is_token_expired

from conftest import make_token


def test_valid_token_is_not_expired():
    token = make_token(exp_in=600)
    assert not is_token_expired(token)
    assert decode_expiry(token) == pytest.approx(time.time() + 600, abs=5)


def test_past_expiry_is_expired():
    assert is_token_expired(make_token(exp_in=-1))


def test_expiry_equal_to_now_counts_as_expired():
    token = make_token(exp_in=None, exp=1_000)
    assert is_token_expired(token, now=1_000)
    assert not is_token_expired(token, now=999)


@pytest.mark.parametrize("token", [None, "", "not-a-jwt", "a.b.c", "eyJhbGciOiJIUzI1NiJ9.e30"])
def test_undecodable_tokens_are_expired(token):
    assert decode_expiry(token) is None
    assert is_token_expired(token)


def test_token_without_exp_is_expired():
    assert is_token_expired(make_token(exp_in=None))


def test_non_numeric_exp_is_expired():
    token = jwt.encode({"exp": "tomorrow"}, "console-auth-test-signing-secret-0123456789", algorithm="HS256")
    assert is_token_expired(token)


def test_signature_is_not_checked():
    token = jwt.encode({"exp": int(time.time()) + 60}, "some-server-signing-secret-abcdefghijklmnop", algorithm="HS256")
    assert not is_token_expired(token)
