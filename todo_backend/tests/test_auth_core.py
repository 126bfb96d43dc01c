import time
from unittest.mock import MagicMock, patch

import jwt
import pytest
import redis

from src.api.gate import AuthenticationGate
from src.api.repositories import InMemoryUserRepository
from src.api.results import Err, ErrorKind, Ok
from src.api.revocation import (
    InMemoryRevocationStore,
    RedisRevocationStore,
    RevocationStore,
    RevocationStoreError,
)
from src.api.security import PasswordHasher, validate_password_policy
from src.api.tokens import TokenService

SECRET = "unit-test-secret"


def forge(**claims):
    now = int(time.time())
    payload = {"sub": "user-1", "iat": now, "nbf": now, "exp": now + 60}
    payload.update(claims)
    return jwt.encode({k: v for k, v in payload.items() if v is not None}, SECRET, algorithm="HS256")


class TestPasswordHasher:
    def test_hash_and_verify(self):
        hasher = PasswordHasher(rounds=4)
        stored = hasher.hash("abc123!")
        assert stored != "abc123!"
        assert hasher.verify("abc123!", stored)
        assert not hasher.verify("abc124!", stored)

    def test_salt_differs_per_call(self):
        hasher = PasswordHasher(rounds=4)
        assert hasher.hash("abc123!") != hasher.hash("abc123!")

    def test_rounds_are_encoded_in_hash(self):
        assert PasswordHasher(rounds=5).hash("abc123!").split("$")[2] == "05"

    @pytest.mark.parametrize("bad_hash", ["", "not-a-hash", "$2b$04$short"])
    def test_malformed_hash_is_a_plain_mismatch(self, bad_hash):
        assert PasswordHasher(rounds=4).verify("abc123!", bad_hash) is False

    def test_dummy_verify_is_always_false(self):
        hasher = PasswordHasher(rounds=4)
        assert hasher.dummy_verify("abc123!") is False
        assert hasher.dummy_verify("") is False


class TestPasswordPolicy:
    @pytest.mark.parametrize("password", ["abc123!", "p4ss^word", "1!aaaa", "ÄÖÜ12#x"])
    def test_accepts(self, password):
        assert validate_password_policy(password) is None

    @pytest.mark.parametrize("password", ["", "abc", "a1!", "alllowercase", "12345678", "abcdef!", "abcdef1", "abc12?"])
    def test_rejects(self, password):
        assert validate_password_policy(password) is not None

    def test_rejects_passwords_bcrypt_would_truncate(self):
        assert validate_password_policy("a1!" + "x" * 80) is not None


class TestTokenService:
    def test_issue_contains_temporal_claims(self):
        service = TokenService(SECRET, lifetime_seconds=100)
        claims = jwt.decode(service.issue("user-1"), SECRET, algorithms=["HS256"])
        assert claims["sub"] == "user-1"
        assert claims["nbf"] == claims["iat"]
        assert claims["exp"] == claims["iat"] + 100
        assert claims["jti"]

    def test_verify_round_trip(self):
        service = TokenService(SECRET)
        token = service.issue("user-1")
        result = service.verify(token)
        assert isinstance(result, Ok)
        assert result.value.subject == "user-1"
        assert result.value.raw == token

    def test_empty_secret_is_refused(self):
        with pytest.raises(ValueError):
            TokenService("")

    def test_wrong_key(self):
        token = TokenService("other-secret").issue("user-1")
        result = TokenService(SECRET).verify(token)
        assert isinstance(result, Err)
        assert result.error.kind == ErrorKind.AUTHENTICATION
        assert result.error.reason == "invalid-token"

    def test_expired(self):
        now = int(time.time())
        result = TokenService(SECRET).verify(forge(iat=now - 120, nbf=now - 120, exp=now - 1))
        assert isinstance(result, Err)
        assert result.error.reason == "expired"

    def test_not_before_within_skew_is_accepted(self):
        now = int(time.time())
        assert isinstance(TokenService(SECRET).verify(forge(nbf=now + 10)), Ok)

    def test_not_before_beyond_skew_is_rejected(self):
        now = int(time.time())
        result = TokenService(SECRET).verify(forge(nbf=now + 60))
        assert isinstance(result, Err)
        assert result.error.reason == "invalid-token"

    def test_missing_exp_is_rejected(self):
        assert isinstance(TokenService(SECRET).verify(forge(exp=None)), Err)

    def test_audience_and_issuer_are_not_checked(self):
        result = TokenService(SECRET).verify(forge(aud="someone-else", iss="elsewhere"))
        assert isinstance(result, Ok)

    def test_subject_format_is_not_checked(self):
        result = TokenService(SECRET).verify(forge(sub="anything at all"))
        assert isinstance(result, Ok)
        assert result.value.subject == "anything at all"

    def test_unsigned_token_is_rejected(self):
        token = jwt.encode({"sub": "user-1"}, key=None, algorithm="none")
        assert isinstance(TokenService(SECRET).verify(token), Err)

    def test_remaining_lifetime(self):
        now = int(time.time())
        assert 55 <= TokenService.remaining_lifetime({"exp": now + 60}) <= 60
        assert TokenService.remaining_lifetime({"exp": now - 60}) == 0


class _FailingStore(RevocationStore):
    def blacklist(self, token, ttl_seconds=None):
        raise RevocationStoreError("down")

    def is_blacklisted(self, token):
        raise RevocationStoreError("down")


class TestGatePipeline:
    def setup_method(self):
        self.users = InMemoryUserRepository()
        self.user = self.users.create(email="a@test.com", name="Alice", password_hash="x")
        self.tokens = TokenService(SECRET)
        self.revocations = InMemoryRevocationStore()
        self.gate = AuthenticationGate(self.tokens, self.revocations, self.users)

    def reason(self, result):
        assert isinstance(result, Err)
        assert result.error.kind == ErrorKind.AUTHENTICATION
        return result.error.reason

    def test_accept(self):
        token = self.tokens.issue(self.user["id"])
        result = self.gate.authenticate(token)
        assert isinstance(result, Ok)
        assert result.value.user_id == self.user["id"]
        assert result.value.name == "Alice"
        assert result.value.token == token

    def test_missing_credential(self):
        assert self.reason(self.gate.authenticate(None)) == "missing-credential"
        assert self.reason(self.gate.authenticate("")) == "missing-credential"

    def test_invalid_token(self):
        assert self.reason(self.gate.authenticate("garbage")) == "invalid-token"

    def test_revoked(self):
        token = self.tokens.issue(self.user["id"])
        self.revocations.blacklist(token)
        assert self.reason(self.gate.authenticate(token)) == "revoked"

    def test_store_unavailable_fails_closed(self):
        gate = AuthenticationGate(self.tokens, _FailingStore(), self.users)
        token = self.tokens.issue(self.user["id"])
        assert self.reason(gate.authenticate(token)) == "store-unavailable"

    def test_unknown_identity(self):
        token = self.tokens.issue("no-such-user")
        assert self.reason(self.gate.authenticate(token)) == "unknown-identity"

    def test_invalid_token_skips_later_steps(self):
        users = MagicMock()
        revocations = MagicMock()
        gate = AuthenticationGate(self.tokens, revocations, users)
        gate.authenticate("garbage")
        revocations.is_blacklisted.assert_not_called()
        users.get.assert_not_called()

    def test_revoked_token_skips_identity_lookup(self):
        users = MagicMock()
        token = self.tokens.issue(self.user["id"])
        self.revocations.blacklist(token)
        AuthenticationGate(self.tokens, self.revocations, users).authenticate(token)
        users.get.assert_not_called()


class TestInMemoryRevocationStore:
    def test_blacklist_and_lookup(self):
        store = InMemoryRevocationStore(default_ttl_seconds=60)
        assert not store.is_blacklisted("t")
        store.blacklist("t")
        assert store.is_blacklisted("t")
        assert not store.is_blacklisted("other")

    def test_entries_expire(self, monkeypatch):
        store = InMemoryRevocationStore(default_ttl_seconds=10)
        clock = [1000.0]
        monkeypatch.setattr(store, "_now", lambda: clock[0])
        store.blacklist("t")
        clock[0] += 9
        assert store.is_blacklisted("t")
        clock[0] += 2
        assert not store.is_blacklisted("t")

    def test_expired_entries_are_swept_on_write(self, monkeypatch):
        store = InMemoryRevocationStore(default_ttl_seconds=10)
        clock = [0.0]
        monkeypatch.setattr(store, "_now", lambda: clock[0])
        for i in range(1000):
            store.blacklist(f"token-{i}")
        assert len(store._deadlines) == 1000

        clock[0] = 100
        store.blacklist("fresh")
        assert list(store._deadlines) == ["fresh"]
        assert store.is_blacklisted("fresh")

    def test_live_entries_survive_a_sweep(self, monkeypatch):
        store = InMemoryRevocationStore(default_ttl_seconds=10)
        clock = [0.0]
        monkeypatch.setattr(store, "_now", lambda: clock[0])
        store.blacklist("short")
        store.blacklist("long", ttl_seconds=1000)
        clock[0] = 50
        store.blacklist("new")
        assert set(store._deadlines) == {"long", "new"}
        assert store.is_blacklisted("long")

    def test_explicit_ttl_overrides_default(self, monkeypatch):
        store = InMemoryRevocationStore(default_ttl_seconds=10)
        clock = [0.0]
        monkeypatch.setattr(store, "_now", lambda: clock[0])
        store.blacklist("t", ttl_seconds=100)
        clock[0] = 50
        assert store.is_blacklisted("t")


@pytest.fixture
def redis_client():
    """Patch redis.Redis so each _connect() yields the same mock client."""
    with patch("src.api.revocation.redis.Redis") as redis_cls:
        client = MagicMock()
        conn = redis_cls.return_value
        conn.__enter__.return_value = client
        conn.__exit__.return_value = False
        yield redis_cls, conn, client


class TestRedisRevocationStore:
    def make_store(self):
        return RedisRevocationStore(host="redis.internal", port=17247, password="pw", timeout_seconds=2.5)

    def test_blacklist_sets_key_with_expiry(self, redis_client):
        redis_cls, conn, client = redis_client
        self.make_store().blacklist("tok", ttl_seconds=7200)
        client.set.assert_called_once_with("blacklist:tok", "blacklisted", ex=7200)
        conn.__exit__.assert_called_once()

    def test_blacklist_uses_default_ttl(self, redis_client):
        _, _, client = redis_client
        self.make_store().blacklist("tok")
        client.set.assert_called_once_with("blacklist:tok", "blacklisted", ex=3600)

    def test_is_blacklisted(self, redis_client):
        _, conn, client = redis_client
        client.exists.return_value = 1
        assert self.make_store().is_blacklisted("tok") is True
        client.exists.assert_called_once_with("blacklist:tok")
        client.exists.return_value = 0
        assert self.make_store().is_blacklisted("tok") is False
        assert conn.__exit__.call_count == 2

    def test_connection_is_opened_per_call_with_timeouts(self, redis_client):
        redis_cls, _, client = redis_client
        client.exists.return_value = 0
        store = self.make_store()
        store.is_blacklisted("a")
        store.is_blacklisted("b")
        assert redis_cls.call_count == 2
        kwargs = redis_cls.call_args.kwargs
        assert kwargs["host"] == "redis.internal"
        assert kwargs["port"] == 17247
        assert kwargs["password"] == "pw"
        assert kwargs["socket_timeout"] == 2.5
        assert kwargs["socket_connect_timeout"] == 2.5

    def test_read_failure_raises_and_releases(self, redis_client):
        _, conn, client = redis_client
        client.exists.side_effect = redis.ConnectionError("refused")
        with pytest.raises(RevocationStoreError):
            self.make_store().is_blacklisted("tok")
        conn.__exit__.assert_called_once()

    def test_write_failure_raises_and_releases(self, redis_client):
        _, conn, client = redis_client
        client.set.side_effect = redis.TimeoutError("slow")
        with pytest.raises(RevocationStoreError):
            self.make_store().blacklist("tok")
        conn.__exit__.assert_called_once()

    def test_gate_rejects_when_redis_is_down(self, redis_client):
        _, _, client = redis_client
        client.exists.side_effect = redis.ConnectionError("refused")
        users = InMemoryUserRepository()
        user = users.create(email="a@test.com", name="Alice", password_hash="x")
        tokens = TokenService(SECRET)
        gate = AuthenticationGate(tokens, self.make_store(), users)
        result = gate.authenticate(tokens.issue(user["id"]))
        assert isinstance(result, Err)
        assert result.error.reason == "store-unavailable"
