import asyncio
import json
import pytest

from cubiclauncher.http import HttpClient
from cubiclauncher.auth import OfflineIdentityProvider, MinecraftProfileProvider, IdentityProvider, \
    AuthTokens, Profile, AuthError, Account, AccountDatabase, login

from support import LocalServer


def test_offline_identity():

    provider = OfflineIdentityProvider("Steve")
    assert provider.uuid == OfflineIdentityProvider("Steve").uuid
    assert provider.uuid != OfflineIdentityProvider("Alex").uuid
    assert len(provider.uuid) == 32

    identity = asyncio.run(login(provider))
    assert identity.display_name == "Steve"
    assert identity.uuid == provider.uuid
    assert identity.access_token == provider.uuid
    assert identity.user_type == "legacy"
    assert identity.missing_fields() == []

    assert OfflineIdentityProvider("a_very_long_username_indeed").username == "a_very_long_user"


def test_login_timeout():

    class SlowProvider(IdentityProvider):
        kind = "slow"
        user_type = "msa"
        async def authenticate(self) -> AuthTokens:
            await asyncio.sleep(60)
            return AuthTokens("never")

    with pytest.raises(AuthError) as exc_info:
        asyncio.run(login(SlowProvider(), timeout=0.05))
    assert exc_info.value.code == AuthError.TIMEOUT


def test_profile_provider():

    async def run():
        async with LocalServer() as server, HttpClient() as client:

            url = server.add_json("/profile", {"id": "8667ba71b85a4004af54457a9734eed7", "name": "Steve"})
            provider = MinecraftProfileProvider(client, "valid-token", expires_at=1234.0, profile_url=url)
            tokens = await provider.authenticate()
            identity = await login(provider)

            errors = []
            for status in (401, 404):
                url = server.add(f"/profile/{status}", status=status)
                with pytest.raises(AuthError) as exc_info:
                    await login(MinecraftProfileProvider(client, "token", profile_url=url))
                errors.append(exc_info.value.code)

            url = server.add_json("/profile/invalid", {"id": 3})
            with pytest.raises(AuthError) as exc_info:
                await MinecraftProfileProvider(client, "token", profile_url=url).get_profile("token")
            errors.append(exc_info.value.code)

            return tokens, identity, errors, server.requests[0][1]

    tokens, identity, errors, headers = asyncio.run(run())

    assert tokens.access_token == "valid-token"
    assert tokens.expires_at == 1234.0
    assert identity.display_name == "Steve"
    assert identity.uuid == "8667ba71b85a4004af54457a9734eed7"
    assert identity.user_type == "msa"
    assert headers["Authorization"] == "Bearer valid-token"
    assert errors == [AuthError.OUTDATED_TOKEN, AuthError.DOES_NOT_OWN_MINECRAFT, AuthError.INVALID_PROFILE]


def test_account_database(tmp_path):

    file = tmp_path / "accounts.json"

    db = AccountDatabase(file)
    db.load()
    assert db.list() == []
    assert db.get_current() is None

    steve = Account("offline", "Steve", "uuid-steve", "token-steve", "legacy")
    alex = Account("msa", "Alex", "uuid-alex", "token-alex", "msa", expires_at=100.0)
    db.put(steve)
    db.put(alex, current=False)
    db.save()

    db = AccountDatabase(file)
    db.load()
    assert db.get_current().name == "Steve"
    assert db.find("alex").uuid == "uuid-alex"
    assert db.find("nobody") is None
    assert db.get("uuid-alex").expired(now=100.0)
    assert not db.get("uuid-alex").expired(now=99.0)
    assert not db.get("uuid-steve").expired()

    identity = db.get("uuid-steve").identity()
    assert (identity.display_name, identity.uuid, identity.access_token, identity.user_type) == \
        ("Steve", "uuid-steve", "token-steve", "legacy")

    with pytest.raises(KeyError):
        db.set_current("unknown")

    assert db.remove("uuid-steve").name == "Steve"
    assert db.current is None
    assert db.remove("uuid-steve") is None


def test_account_database_invalid(tmp_path):

    file = tmp_path / "accounts.json"
    file.write_text(json.dumps({
        "current": "uuid-broken",
        "accounts": [
            {"kind": "offline", "name": "Steve", "uuid": "uuid-steve", "access_token": "t", "user_type": "legacy"},
            {"kind": "offline", "uuid": "uuid-broken"},
        ]
    }))

    db = AccountDatabase(file)
    db.load()
    assert [account.name for account in db.list()] == ["Steve"]
    assert db.current is None

    file.write_text("[]")
    db.load()
    assert db.list() == []


def test_account_from_identity():
    identity = asyncio.run(login(OfflineIdentityProvider("Steve")))
    account = Account.from_identity("offline", identity)
    assert account.name == "Steve"
    assert account.access_token == identity.access_token
    assert account.expires_at is None
    assert Profile("id", "name").name == "name"
