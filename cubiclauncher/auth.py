"""Identity provider collaborators and the account database. The authorization flow
itself (OAuth, device code) is the business of the providers, the launcher only
forwards the resulting tokens.
"""

from uuid import UUID, uuid5
from pathlib import Path
import asyncio
import logging
import json
import time

from .http import HttpClient, HttpError
from .launch import Identity

from typing import Optional, Dict, List


__all__ = ["AuthTokens", "Profile", "IdentityProvider", "OfflineIdentityProvider",
    "MinecraftProfileProvider", "AuthError", "Account", "AccountDatabase", "login"]

logger = logging.getLogger(__name__)


# Default bound of the interactive authorization step.
LOGIN_TIMEOUT = 120.0

PROFILE_URL = "https://api.minecraftservices.com/minecraft/profile"


class AuthTokens:
    """Tokens returned by an identity provider, the expiration is a timestamp.
    """
    __slots__ = "access_token", "expires_at"
    def __init__(self, access_token: str, expires_at: Optional[float] = None) -> None:
        self.access_token = access_token
        self.expires_at = expires_at

class Profile:
    __slots__ = "id", "name"
    def __init__(self, id: str, name: str) -> None:
        self.id = id
        self.name = name


class AuthError(Exception):
    """Raised when an identity cannot be obtained, the error code is indicated.
    """

    TIMEOUT = "timeout"
    OUTDATED_TOKEN = "outdated_token"
    DOES_NOT_OWN_MINECRAFT = "does_not_own_minecraft"
    INVALID_PROFILE = "invalid_profile"

    def __init__(self, code: str, detail: Optional[str] = None) -> None:
        super().__init__(code, detail)
        self.code = code
        self.detail = detail

    def __str__(self) -> str:
        return self.code if self.detail is None else f"{self.code}: {self.detail}"


class IdentityProvider:
    """Base class for identity providers. Subclasses must define `kind`, used when
    saving accounts, and `user_type` which is given to the game.
    """

    kind: str
    user_type: str

    async def authenticate(self) -> AuthTokens:
        """Run the authorization flow and return the obtained tokens. This may wait for
        the user to act in its browser.
        """
        raise NotImplementedError

    async def get_profile(self, access_token: str) -> Profile:
        """Get the game profile owned by the given access token.
        """
        raise NotImplementedError


class OfflineIdentityProvider(IdentityProvider):
    """Offline provider, this is quite contradictory but it's actually useful to play on
    offline servers. The UUID is derived from the username and is therefore stable.
    """

    kind = "offline"
    user_type = "legacy"

    def __init__(self, username: str) -> None:
        self.username = username[:16]
        namespace_hash = UUID("8df5a464-38de-11ec-aa66-3fd636ee2ed7")
        self.uuid = uuid5(namespace_hash, self.username).hex

    async def authenticate(self) -> AuthTokens:
        # The game requires a non-empty token even when offline.
        return AuthTokens(self.uuid)

    async def get_profile(self, access_token: str) -> Profile:
        return Profile(self.uuid, self.username)


class MinecraftProfileProvider(IdentityProvider):
    """Provider for a Minecraft services access token obtained elsewhere, typically by
    the Microsoft authorization flow of the desktop front-end. The profile is requested
    from the Minecraft services.
    """

    kind = "msa"
    user_type = "msa"

    def __init__(self, client: HttpClient, access_token: str, *,
        expires_at: Optional[float] = None,
        profile_url: str = PROFILE_URL
    ) -> None:
        self.client = client
        self.access_token = access_token
        self.expires_at = expires_at
        self.profile_url = profile_url

    async def authenticate(self) -> AuthTokens:
        return AuthTokens(self.access_token, self.expires_at)

    async def get_profile(self, access_token: str) -> Profile:

        try:
            res = await self.client.request("GET", self.profile_url,
                headers={"Authorization": f"Bearer {access_token}"},
                accept="application/json")
        except HttpError as error:
            if error.res.status == 401:
                raise AuthError(AuthError.OUTDATED_TOKEN)
            elif error.res.status == 404:
                raise AuthError(AuthError.DOES_NOT_OWN_MINECRAFT)
            raise

        data = res.json()
        if not isinstance(data, dict) or not isinstance(data.get("id"), str) or not isinstance(data.get("name"), str):
            raise AuthError(AuthError.INVALID_PROFILE, res.text())

        return Profile(data["id"], data["name"])


async def login(provider: IdentityProvider, *, timeout: Optional[float] = LOGIN_TIMEOUT) -> Identity:
    """Obtain an identity from the given provider, the whole step is bounded by the
    given timeout in seconds (none to wait forever).

    :raises AuthError: With code `timeout` if the provider did not answer in time.
    """

    async def do_login() -> Identity:
        tokens = await provider.authenticate()
        profile = await provider.get_profile(tokens.access_token)
        return Identity(profile.name, profile.id, tokens.access_token, user_type=provider.user_type)

    try:
        return await asyncio.wait_for(do_login(), timeout)
    except asyncio.TimeoutError:
        logger.warning("Login timed out after %s seconds", timeout)
        raise AuthError(AuthError.TIMEOUT, f"no answer after {timeout} seconds")


class Account:
    """A saved account, associating a player's identity to the provider it came from.
    """

    fields = "kind", "name", "uuid", "access_token", "user_type", "expires_at"

    __slots__ = fields

    def __init__(self, kind: str, name: str, uuid: str, access_token: str, user_type: str, expires_at: Optional[float] = None) -> None:
        self.kind = kind
        self.name = name
        self.uuid = uuid
        self.access_token = access_token
        self.user_type = user_type
        self.expires_at = expires_at

    @classmethod
    def from_identity(cls, kind: str, identity: Identity, expires_at: Optional[float] = None) -> "Account":
        return cls(kind, identity.display_name, identity.uuid, identity.access_token, identity.user_type, expires_at)

    def identity(self) -> Identity:
        return Identity(self.name, self.uuid, self.access_token, user_type=self.user_type)

    def expired(self, now: Optional[float] = None) -> bool:
        if self.expires_at is None:
            return False
        return (time.time() if now is None else now) >= self.expires_at

    def __repr__(self) -> str:
        return f"<Account {self.kind} {self.name}>"


class AccountDatabase:
    """The accounts database, keeping accounts and the current account stored in a JSON
    file, accounts are identified by their UUID.
    """

    def __init__(self, file: Path):
        self.file = file
        self.accounts: Dict[str, Account] = {}
        self.current: Optional[str] = None

    def load(self) -> None:

        self.accounts.clear()
        self.current = None

        try:
            with self.file.open("rt") as fp:
                data = json.load(fp)
            for account_data in data.get("accounts", []):
                account = Account(**{field: account_data.get(field) for field in Account.fields})
                if account.uuid and account.name:
                    self.accounts[account.uuid] = account
            current = data.get("current")
            if current in self.accounts:
                self.current = current
        except (OSError, AttributeError, TypeError, json.JSONDecodeError) as error:
            if self.file.exists():
                logger.warning("Ignoring unreadable accounts file %s: %s", self.file, error)

    def save(self) -> None:

        self.file.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "current": self.current,
            "accounts": [
                {field: getattr(account, field) for field in Account.fields}
                for account in self.accounts.values()
            ]
        }

        with self.file.open("wt") as fp:
            json.dump(data, fp, indent=2)

    def list(self) -> List[Account]:
        return list(self.accounts.values())

    def get(self, uuid: str) -> Optional[Account]:
        return self.accounts.get(uuid)

    def find(self, name: str) -> Optional[Account]:
        """Find an account by its player name, case insensitive.
        """
        name = name.casefold()
        for account in self.accounts.values():
            if account.name.casefold() == name:
                return account
        return None

    def put(self, account: Account, *, current: bool = True) -> None:
        """Push the given account to the database, updating any previous account with
        the same UUID, it becomes the current account by default.
        """
        self.accounts[account.uuid] = account
        if current:
            self.current = account.uuid

    def remove(self, uuid: str) -> Optional[Account]:
        """Remove an account and return it, the current account is unset if removed.
        """
        account = self.accounts.pop(uuid, None)
        if account is not None and self.current == uuid:
            self.current = None
        return account

    def set_current(self, uuid: str) -> None:
        if uuid not in self.accounts:
            raise KeyError(uuid)
        self.current = uuid

    def get_current(self) -> Optional[Account]:
        return None if self.current is None else self.accounts.get(self.current)
