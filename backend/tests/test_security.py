"""Tests for the token codec, password hashing and password strength."""

from datetime import datetime, timedelta, timezone

import jwt
import pytest
from jwt.utils import base64url_decode, base64url_encode

from app.core.sanitize import sanitize_optional, sanitize_text
from app.core.security import (
    ExpiredTokenError,
    MalformedTokenError,
    TokenCodec,
    TokenSignatureError,
    extract_bearer_token,
    generate_session_token,
    get_password_hash,
    password_strength,
    verify_password,
)

SECRET = "unit-test-secret-key-that-is-long-enough"


@pytest.fixture
def codec():
    return TokenCodec(SECRET, default_ttl=3600)


def _b64(segment: str) -> bytes:
    return base64url_decode(segment.encode())


# ============== Token codec ==============

class TestTokenCodec:
    def test_issue_and_verify(self, codec):
        token = codec.issue({"sub": "42", "email": "a@b.com", "name": "A B"})
        claims = codec.verify(token)
        assert claims["sub"] == "42"
        assert claims["email"] == "a@b.com"
        assert claims["name"] == "A B"
        assert claims["exp"] - claims["iat"] == 3600

    def test_custom_ttl(self, codec):
        claims = codec.verify(codec.issue({"sub": "1"}, ttl=60))
        assert claims["exp"] - claims["iat"] == 60

    def test_expired_token(self, codec):
        issued = datetime.now(timezone.utc) - timedelta(seconds=120)
        token = codec.issue({"sub": "1"}, ttl=60, now=issued)
        with pytest.raises(ExpiredTokenError):
            codec.verify(token)

    def test_valid_until_ttl_elapses(self, codec):
        issued = datetime.now(timezone.utc) - timedelta(seconds=30)
        token = codec.issue({"sub": "1"}, ttl=60, now=issued)
        assert codec.verify(token)["sub"] == "1"

    def test_tampered_payload_fails_signature(self, codec):
        token = codec.issue({"sub": "1", "email": "a@b.com"})
        header, _payload, signature = token.split(".")
        forged = base64url_encode(
            b'{"sub":"2","email":"a@b.com","iat":1,"exp":9999999999}'
        ).decode()
        with pytest.raises(TokenSignatureError):
            codec.verify(f"{header}.{forged}.{signature}")

    def test_other_secret_fails_signature(self, codec):
        token = TokenCodec("another-secret-key-of-sufficient-size").issue({"sub": "1"})
        with pytest.raises(TokenSignatureError):
            codec.verify(token)

    @pytest.mark.parametrize("token", ["", "abc", "a.b", "a.b.c.d", "not.a.token", None, 123])
    def test_malformed_tokens(self, codec, token):
        with pytest.raises(MalformedTokenError):
            codec.verify(token)

    def test_missing_required_claim(self, codec):
        token = jwt.encode({"email": "a@b.com", "exp": 9999999999, "iat": 1}, SECRET, algorithm="HS256")
        with pytest.raises(MalformedTokenError):
            codec.verify(token)

    def test_header_declares_hs256(self, codec):
        token = codec.issue({"sub": "1"})
        assert b'"HS256"' in _b64(token.split(".")[0])

    def test_from_settings(self, settings):
        codec = TokenCodec.from_settings(settings)
        assert codec.default_ttl == settings.access_token_expire_seconds
        assert codec.algorithm == settings.algorithm


class TestBearerExtraction:
    def test_standard_header(self):
        assert extract_bearer_token("Bearer abc.def.ghi") == "abc.def.ghi"

    def test_case_insensitive_scheme(self):
        assert extract_bearer_token("bearer abc") == "abc"

    @pytest.mark.parametrize("header", [None, "", "Basic abc", "Bearer", "Bearer "])
    def test_rejected_headers(self, header):
        assert extract_bearer_token(header) is None


# ============== Password hashing ==============

class TestPasswordHashing:
    def test_hash_and_verify(self):
        h = get_password_hash("Secret123!")
        assert verify_password("Secret123!", h)

    def test_wrong_password_rejected(self):
        h = get_password_hash("Secret123!")
        assert not verify_password("wrong", h)

    def test_hash_is_unique(self):
        assert get_password_hash("same") != get_password_hash("same")

    def test_invalid_hash_returns_false(self):
        assert not verify_password("test", "not-a-hash")

    def test_long_password_truncated_consistently(self):
        long_pw = "A1!" + "x" * 100
        h = get_password_hash(long_pw)
        assert verify_password(long_pw, h)


class TestSessionToken:
    def test_hex_64_chars(self):
        token = generate_session_token()
        assert len(token) == 64
        int(token, 16)

    def test_unique(self):
        assert generate_session_token() != generate_session_token()


# ============== Password strength ==============

class TestPasswordStrength:
    def test_all_categories_capped_at_four(self):
        result = password_strength("Str0ng!Pass")
        assert result.score == 4
        assert result.missing == []
        assert result.acceptable
        assert result.label == "Strong"

    def test_missing_symbol_still_strong(self):
        result = password_strength("Abcdefg1")
        assert result.score == 4
        assert result.missing == ["special characters"]

    def test_three_points_acceptable(self):
        result = password_strength("abcdefg1")
        assert result.score == 3
        assert result.acceptable
        assert result.label == "Good"

    def test_two_points_rejected(self):
        result = password_strength("abcdefgh")
        assert result.score == 2
        assert not result.acceptable
        assert "uppercase letters" in result.missing
        assert "numbers" in result.missing

    def test_empty_password(self):
        result = password_strength("")
        assert result.score == 0
        assert result.label == "Very Weak"
        assert "at least 8 characters" in result.missing

    def test_custom_min_length(self):
        assert "at least 12 characters" in password_strength("Abc1!", min_length=12).missing


class TestSanitizeText:
    def test_script_tag(self):
        result = sanitize_text("<script>alert(1)</script>")
        assert "<script>" not in result
        assert "alert(1)" in result

    def test_none_returns_none(self):
        assert sanitize_text(None) is None

    def test_ampersand_escaped(self):
        assert sanitize_text("Fish & Chips") == "Fish &amp; Chips"

    def test_surrounding_whitespace_trimmed(self):
        assert sanitize_text("  hello  ") == "hello"

    def test_optional_blank_becomes_none(self):
        assert sanitize_optional("   ") is None
        assert sanitize_optional("") is None
        assert sanitize_optional(" <b>Acme</b> ") == "&lt;b&gt;Acme&lt;/b&gt;"
