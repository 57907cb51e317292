"""Unit tests for auth/service.py -- login, register, refresh, logout, me.

Every test drives AuthService against an in-memory CredentialStore with
bcrypt cost 4. Time-sensitive cases inject a clock instead of sleeping.
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone

import pytest

import auth.service as service_module
from auth.errors import BadRequest, ConfigurationError, Conflict, Forbidden, InternalError, NotFound, Unauthorized
from auth.models import RoleCode, TokenType
from auth.service import AuthService
from auth.store import CredentialStore
from auth.tokens import sign_token, verify_token
from core.config import Settings

PASSWORD = "Secret!123"


def _register(service: AuthService, email: str = "flor@mail.com", name: str = "Flor"):
    return service.register(name, email, PASSWORD)


class _Clock:
    """Settable clock for expiry-boundary tests."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


class TestConstruction:
    def test_missing_access_secret(self, settings: Settings, store: CredentialStore) -> None:
        with pytest.raises(ConfigurationError, match="JWT_SECRET"):
            AuthService(settings.model_copy(update={"jwt_secret": ""}), store)

    def test_missing_refresh_secret(self, settings: Settings, store: CredentialStore) -> None:
        with pytest.raises(ConfigurationError, match="JWT_REFRESH_SECRET"):
            AuthService(settings.model_copy(update={"jwt_refresh_secret": ""}), store)

    def test_configuration_error_is_internal(self) -> None:
        assert issubclass(ConfigurationError, InternalError)
        assert ConfigurationError("x").status_code == 500


# ---------------------------------------------------------------------------
# Register
# ---------------------------------------------------------------------------


class TestRegister:
    def test_normalizes_name_and_email(self, service: AuthService, store: CredentialStore) -> None:
        result = service.register("  Flor ", "A@A.COM", PASSWORD)
        assert result.user.name == "Flor"
        assert result.user.email == "a@a.com"
        assert result.user.role is RoleCode.BLOGGER
        assert result.user.is_active is True
        assert store.exists_by_email("a@a.com")

    def test_returns_working_pair(self, service: AuthService, settings: Settings) -> None:
        result = _register(service)
        claims = verify_token(result.tokens.access_token, settings.jwt_secret, TokenType.ACCESS)
        assert claims.sub == result.user.id
        assert claims.role is RoleCode.BLOGGER
        assert service.refresh(result.tokens.refresh_token).access_token

    def test_user_view_has_no_credentials(self, service: AuthService) -> None:
        user = _register(service).user
        assert not hasattr(user, "password_hash")
        assert not hasattr(user, "refresh_token_hash")

    def test_password_is_stored_hashed(self, service: AuthService, store: CredentialStore) -> None:
        _register(service)
        stored = store.find_by_email("flor@mail.com", include_password_hash=True)
        assert stored.password_hash != PASSWORD
        assert stored.password_hash.startswith("$2")

    def test_duplicate_email(self, service: AuthService) -> None:
        _register(service)
        with pytest.raises(Conflict, match="Email already registered"):
            _register(service, email="  FLOR@mail.com")

    def test_insert_race_maps_to_conflict(
        self, service: AuthService, store: CredentialStore, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """The pre-check can pass for both racers; the constraint still decides."""
        _register(service)
        monkeypatch.setattr(store, "exists_by_email", lambda email: False)
        with pytest.raises(Conflict):
            _register(service)

    def test_concurrent_registrations_one_winner(self, tmp_path, settings: Settings) -> None:
        file_store = CredentialStore(f"sqlite:///{tmp_path / 'race.db'}")
        file_store.seed_roles()
        racer = AuthService(settings, file_store)
        outcomes: list[str] = []
        lock = threading.Lock()
        barrier = threading.Barrier(4)

        def attempt() -> None:
            barrier.wait()
            try:
                racer.register("Racer", "race@mail.com", PASSWORD)
                outcome = "ok"
            except Conflict:
                outcome = "conflict"
            with lock:
                outcomes.append(outcome)

        threads = [threading.Thread(target=attempt) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        file_store.close()

        assert sorted(outcomes) == ["conflict", "conflict", "conflict", "ok"]

    @pytest.mark.parametrize("name", ["", "   "])
    def test_empty_name(self, service: AuthService, name: str) -> None:
        with pytest.raises(BadRequest):
            service.register(name, "flor@mail.com", PASSWORD)

    def test_name_too_long(self, service: AuthService) -> None:
        with pytest.raises(BadRequest):
            service.register("x" * 81, "flor@mail.com", PASSWORD)

    def test_weak_password(self, service: AuthService, store: CredentialStore) -> None:
        with pytest.raises(BadRequest):
            service.register("Flor", "flor@mail.com", "password")
        assert not store.exists_by_email("flor@mail.com")

    def test_missing_default_role(self, settings: Settings) -> None:
        bare = CredentialStore("sqlite:///:memory:")
        try:
            with pytest.raises(InternalError, match="Default role is not configured"):
                AuthService(settings, bare).register("Flor", "flor@mail.com", PASSWORD)
            assert not bare.exists_by_email("flor@mail.com")
        finally:
            bare.close()

    def test_default_role_falls_back_to_name(self, settings: Settings, store: CredentialStore) -> None:
        renamed = settings.model_copy(update={"default_role_code": "WRITER", "default_role_name": "blogger"})
        result = AuthService(renamed, store).register("Flor", "flor@mail.com", PASSWORD)
        assert result.user.role is RoleCode.BLOGGER


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------


class TestLogin:
    def test_unknown_email_spends_configured_bcrypt_cost(
        self, service: AuthService, settings: Settings, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        seen: list[str] = []
        real_verify = service_module.verify_password

        def spy(plain, hashed):
            seen.append(hashed)
            return real_verify(plain, hashed)

        monkeypatch.setattr(service_module, "verify_password", spy)
        with pytest.raises(Unauthorized):
            service.login("ghost@mail.com", PASSWORD)
        assert len(seen) == 1
        assert seen[0].startswith(f"$2b${settings.bcrypt_salt_rounds:02d}$")

    def test_success(self, service: AuthService) -> None:
        registered = _register(service)
        result = service.login("flor@mail.com", PASSWORD)
        assert result.user.id == registered.user.id
        assert result.user.email == "flor@mail.com"
        assert result.tokens.access_token != registered.tokens.access_token

    def test_email_is_normalized(self, service: AuthService) -> None:
        _register(service)
        assert service.login("  FLOR@Mail.com ", PASSWORD).user.email == "flor@mail.com"

    def test_unknown_email_and_wrong_password_look_identical(self, service: AuthService) -> None:
        _register(service)
        with pytest.raises(Unauthorized) as unknown:
            service.login("ghost@mail.com", PASSWORD)
        with pytest.raises(Unauthorized) as wrong:
            service.login("flor@mail.com", "Wrong!pass9")
        assert unknown.value.to_dict() == wrong.value.to_dict()

    def test_disabled_account(self, service: AuthService, store: CredentialStore) -> None:
        registered = _register(service)
        store.set_active(registered.user.id, False)
        with pytest.raises(Forbidden):
            service.login("flor@mail.com", PASSWORD)

    def test_login_rotates_refresh(self, service: AuthService) -> None:
        first = _register(service)
        service.login("flor@mail.com", PASSWORD)
        with pytest.raises(Unauthorized):
            service.refresh(first.tokens.refresh_token)


# ---------------------------------------------------------------------------
# Refresh
# ---------------------------------------------------------------------------


class TestRefresh:
    def test_rotation(self, service: AuthService) -> None:
        issued = _register(service).tokens
        rotated = service.refresh(issued.refresh_token)
        assert rotated.refresh_token != issued.refresh_token
        assert rotated.access_token != issued.access_token
        assert service.refresh(rotated.refresh_token).refresh_token

    def test_reuse_of_rotated_token(self, service: AuthService) -> None:
        issued = _register(service).tokens
        service.refresh(issued.refresh_token)
        with pytest.raises(Unauthorized, match="Invalid or expired token"):
            service.refresh(issued.refresh_token)

    def test_access_token_rejected(self, service: AuthService) -> None:
        issued = _register(service).tokens
        with pytest.raises(Unauthorized):
            service.refresh(issued.access_token)

    def test_wrong_secret(self, service: AuthService) -> None:
        user = _register(service).user
        forged = sign_token(user.id, RoleCode.BLOGGER, "some-other-secret", timedelta(days=1), TokenType.REFRESH)
        with pytest.raises(Unauthorized):
            service.refresh(forged)

    def test_garbage(self, service: AuthService) -> None:
        with pytest.raises(Unauthorized):
            service.refresh("not-a-token")

    def test_unknown_subject(self, service: AuthService, settings: Settings) -> None:
        token = sign_token(
            "00000000-0000-0000-0000-000000000000",
            RoleCode.BLOGGER,
            settings.jwt_refresh_secret,
            timedelta(days=1),
            TokenType.REFRESH,
        )
        with pytest.raises(Unauthorized):
            service.refresh(token)

    def test_disabled_account(self, service: AuthService, store: CredentialStore) -> None:
        registered = _register(service)
        store.set_active(registered.user.id, False)
        with pytest.raises(Forbidden):
            service.refresh(registered.tokens.refresh_token)

    def test_after_logout(self, service: AuthService) -> None:
        registered = _register(service)
        service.logout(registered.user.id)
        with pytest.raises(Unauthorized):
            service.refresh(registered.tokens.refresh_token)

    def test_stored_expiry_boundary(self, settings: Settings, store: CredentialStore) -> None:
        """A stored expiry equal to now is already expired."""
        start = datetime.now(timezone.utc).replace(microsecond=0)
        clock = _Clock(start)
        svc = AuthService(settings, store, clock=clock)
        issued = svc.register("Flor", "flor@mail.com", PASSWORD).tokens

        clock.now = start + settings.refresh_store_ttl - timedelta(seconds=1)
        live = svc.refresh(issued.refresh_token)

        clock.now = clock.now + settings.refresh_store_ttl
        with pytest.raises(Unauthorized):
            svc.refresh(live.refresh_token)

    def test_expiry_exactly_at_now(self, settings: Settings, store: CredentialStore) -> None:
        start = datetime.now(timezone.utc).replace(microsecond=0)
        clock = _Clock(start)
        svc = AuthService(settings, store, clock=clock)
        issued = svc.register("Flor", "flor@mail.com", PASSWORD).tokens
        clock.now = start + settings.refresh_store_ttl
        with pytest.raises(Unauthorized):
            svc.refresh(issued.refresh_token)

    def test_refresh_carries_current_role(self, service: AuthService, store: CredentialStore, settings: Settings) -> None:
        registered = _register(service)
        store.update_role(registered.user.id, RoleCode.ADMIN)
        pair = service.refresh(registered.tokens.refresh_token)
        claims = verify_token(pair.access_token, settings.jwt_secret, TokenType.ACCESS)
        assert claims.role is RoleCode.ADMIN


# ---------------------------------------------------------------------------
# Logout / me / access tokens
# ---------------------------------------------------------------------------


class TestLogout:
    def test_idempotent(self, service: AuthService) -> None:
        user = _register(service).user
        assert service.logout(user.id) == {"ok": True}
        assert service.logout(user.id) == {"ok": True}

    def test_unknown_identity(self, service: AuthService) -> None:
        assert service.logout("missing") == {"ok": True}

    def test_clears_stored_state(self, service: AuthService, store: CredentialStore) -> None:
        user = _register(service).user
        service.logout(user.id)
        stored = store.find_by_id(user.id, include_refresh_hash=True)
        assert stored.refresh_token_hash is None
        assert stored.refresh_token_expires_at is None

    def test_access_token_survives_logout(self, service: AuthService) -> None:
        registered = _register(service)
        service.logout(registered.user.id)
        claims = service.authenticate_access_token(registered.tokens.access_token)
        assert claims.sub == registered.user.id


class TestMe:
    def test_profile(self, service: AuthService) -> None:
        user = _register(service).user
        profile = service.me(user.id)
        assert profile.id == user.id
        assert profile.email == "flor@mail.com"
        assert profile.role_code is RoleCode.BLOGGER
        assert profile.role_name == "blogger"
        assert profile.created_at
        assert not hasattr(profile, "password_hash")

    def test_unknown_identity(self, service: AuthService) -> None:
        with pytest.raises(NotFound):
            service.me("00000000-0000-0000-0000-000000000000")


class TestAuthenticateAccessToken:
    def test_refresh_token_rejected(self, service: AuthService) -> None:
        issued = _register(service).tokens
        with pytest.raises(Unauthorized):
            service.authenticate_access_token(issued.refresh_token)

    def test_expired(self, service: AuthService, settings: Settings) -> None:
        token = sign_token(
            "some-id",
            RoleCode.BLOGGER,
            settings.jwt_secret,
            timedelta(minutes=15),
            TokenType.ACCESS,
            now=datetime.now(timezone.utc) - timedelta(hours=1),
        )
        with pytest.raises(Unauthorized):
            service.authenticate_access_token(token)
