"""
tests/test_tokens.py -- Unit tests for password hashing and TokenService.

Covers:
  - bcrypt hash/verify, including malformed digests (never raise)
  - issue -> verify returns the subject id
  - TTL=0 and clock-advanced tokens fail as TokenExpired
  - tampered, foreign-key-signed and garbage tokens fail as TokenMalformed
  - the signing secret never appears in the token
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from auth.errors import InvalidToken, TokenExpired, TokenMalformed
from auth.tokens import TokenService, hash_password, verify_password
from conftest import TEST_SECRET


class _Clock:
    """Manually advanced clock for deterministic expiry tests."""

    def __init__(self) -> None:
        self.now = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += timedelta(seconds=seconds)


class TestPasswordHashing:
    def test_hash_is_salted(self) -> None:
        assert hash_password("secret1") != hash_password("secret1")

    def test_verify_matches(self) -> None:
        digest = hash_password("secret1")
        assert verify_password("secret1", digest) is True
        assert verify_password("secret2", digest) is False

    @pytest.mark.parametrize("digest", ["", "not-a-bcrypt-hash", "$2b$12$short"])
    def test_malformed_digest_returns_false(self, digest: str) -> None:
        assert verify_password("secret1", digest) is False


class TestTokenService:
    def test_issue_then_verify_returns_subject(self, tokens: TokenService) -> None:
        token = tokens.issue(42)
        assert tokens.verify(token) == 42

    def test_claims_shape(self) -> None:
        clock = _Clock()
        service = TokenService(TEST_SECRET, 600, clock=clock)
        claims = jwt.get_unverified_claims(service.issue(7))
        assert claims["sub"] == "7"
        assert claims["exp"] - claims["iat"] == 600
        assert claims["iat"] == int(clock.now.timestamp())

    def test_secret_not_embedded(self, tokens: TokenService) -> None:
        token = tokens.issue(1)
        assert TEST_SECRET not in token
        assert TEST_SECRET not in str(jwt.get_unverified_claims(token))

    def test_zero_ttl_is_expired_immediately(self) -> None:
        service = TokenService(TEST_SECRET, 0)
        with pytest.raises(TokenExpired):
            service.verify(service.issue(1))

    def test_expires_after_ttl(self) -> None:
        clock = _Clock()
        service = TokenService(TEST_SECRET, 60, clock=clock)
        token = service.issue(5)
        clock.advance(59)
        assert service.verify(token) == 5
        clock.advance(1)
        with pytest.raises(TokenExpired):
            service.verify(token)

    def test_lifetime_not_shortened_by_fractional_issue_time(self) -> None:
        clock = _Clock()
        clock.now += timedelta(milliseconds=900)
        service = TokenService(TEST_SECRET, 1, clock=clock)
        token = service.issue(8)
        clock.now += timedelta(milliseconds=150)
        assert service.verify(token) == 8
        clock.now += timedelta(milliseconds=900)
        with pytest.raises(TokenExpired):
            service.verify(token)

    def test_tampered_signature_is_malformed(self, tokens: TokenService) -> None:
        header, payload, signature = tokens.issue(3).split(".")
        flipped = ("A" if signature[0] != "A" else "B") + signature[1:]
        with pytest.raises(TokenMalformed):
            tokens.verify(f"{header}.{payload}.{flipped}")

    def test_other_secret_is_malformed(self, tokens: TokenService) -> None:
        other = TokenService("another-secret-key-that-is-32-chars-long!", 3600)
        with pytest.raises(TokenMalformed):
            tokens.verify(other.issue(3))

    @pytest.mark.parametrize("garbage", ["", "abc", "a.b.c", "Bearer xyz"])
    def test_garbage_is_malformed(self, tokens: TokenService, garbage: str) -> None:
        with pytest.raises(TokenMalformed):
            tokens.verify(garbage)

    def test_missing_subject_is_malformed(self, tokens: TokenService) -> None:
        exp = int((datetime.now(timezone.utc) + timedelta(hours=1)).timestamp())
        token = jwt.encode({"exp": exp}, TEST_SECRET, algorithm="HS256")
        with pytest.raises(TokenMalformed):
            tokens.verify(token)

    def test_both_kinds_are_invalid_token(self) -> None:
        assert issubclass(TokenExpired, InvalidToken)
        assert issubclass(TokenMalformed, InvalidToken)

    def test_rejects_empty_secret(self) -> None:
        with pytest.raises(ValueError):
            TokenService("", 60)
