"""
Account credentials and bearer tokens.

Accounts live in the ``accounts`` partition of the KVStore, keyed by
username. The first login against an empty partition bootstraps the admin
account; a reserved username with no password takes its password from the
first login; every other login verifies against the stored argon2 hash.

Tokens never expire and are never revoked; each successful login appends a
new one to the account.
"""

import logging
import secrets
import string
from dataclasses import dataclass
from typing import Optional

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

from .errors import AuthenticationError, ValidationError
from .store import KVStore
from .types import Account, Token, utc_now

logger = logging.getLogger(__name__)

ACCOUNTS_TREE = "accounts"

MIN_PASSWORD_LENGTH = 6
TOKEN_LENGTH = 20
TOKEN_ALPHABET = string.ascii_letters + string.digits

ADMIN_CREATED_MESSAGE = "Admin Account Created"
PASSWORD_SET_MESSAGE = "Password Set"

# Separates a status message from the token in a login response
RESPONSE_SEPARATOR = "|"


@dataclass
class LoginResult:
    """Outcome of a successful login."""
    token: str
    message: Optional[str] = None

    def to_response(self) -> str:
        """Wire form: ``"<message>|<token>"`` or the bare token."""
        if self.message:
            return f"{self.message}{RESPONSE_SEPARATOR}{self.token}"
        return self.token

    @classmethod
    def from_response(cls, body: str) -> "LoginResult":
        """Split a login response body back into message and token."""
        if RESPONSE_SEPARATOR in body:
            message, token = body.rsplit(RESPONSE_SEPARATOR, 1)
            return cls(token=token, message=message)
        return cls(token=body)


def _check_password_length(password: str) -> None:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
        )


class TokenAuthority:
    """Issues tokens and checks presented tokens against every account."""

    def __init__(self, store: KVStore):
        self._store = store
        self._tree = store.open_tree(ACCOUNTS_TREE)

    @staticmethod
    def generate() -> tuple[Token, str]:
        """
        Create a new random token.

        Returns:
            The Token record to store (last_used = now) and its plaintext value
        """
        value = "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(TOKEN_LENGTH))
        return Token(value=value, last_used=utc_now()), value

    def verify(self, candidate: str) -> bool:
        """
        Check a presented token, refreshing its ``last_used`` on success.

        Linear scan over all accounts and their tokens; fine for the handful
        of accounts a personal server has.
        """
        if not candidate:
            return False
        presented = candidate.encode("utf-8", "surrogatepass")
        with self._store.transaction():
            for _key, raw in self._tree.items():
                account = Account.from_bytes(raw)
                for token in account.tokens:
                    if secrets.compare_digest(token.value.encode("utf-8"), presented):
                        token.last_used = utc_now()
                        self._tree.insert(account.username.encode("utf-8"), account.to_bytes())
                        logger.debug("Token verified for %s", account.username)
                        return True
        return False


class CredentialStore:
    """Login state machine over the accounts partition."""

    def __init__(
        self,
        store: KVStore,
        authority: Optional[TokenAuthority] = None,
        hasher: Optional[PasswordHasher] = None,
    ):
        self._store = store
        self._tree = store.open_tree(ACCOUNTS_TREE)
        self._authority = authority or TokenAuthority(store)
        self._hasher = hasher or PasswordHasher()

    @property
    def authority(self) -> TokenAuthority:
        return self._authority

    # -------------------------------------------------------------------------
    # Account access
    # -------------------------------------------------------------------------

    def get_account(self, username: str) -> Optional[Account]:
        raw = self._tree.get(username.encode("utf-8"))
        return Account.from_bytes(raw) if raw is not None else None

    def list_accounts(self) -> list[Account]:
        return [Account.from_bytes(raw) for _key, raw in self._tree.items()]

    def _save(self, account: Account) -> None:
        self._tree.insert(account.username.encode("utf-8"), account.to_bytes())

    def create_account(self, username: str, *, admin: bool = False) -> Account:
        """
        Reserve a username with no password.

        The first login for the username sets its password. The first account
        in an empty partition is always admin.
        """
        if not username:
            raise ValidationError("Username must not be empty")
        with self._store.transaction():
            if self.get_account(username) is not None:
                raise ValidationError(f"Account already exists: {username}")
            account = Account(username=username, admin=admin or self._tree.is_empty())
            self._save(account)
        logger.info("Reserved account %s (admin=%s)", username, account.admin)
        return account

    # -------------------------------------------------------------------------
    # Login
    # -------------------------------------------------------------------------

    def _hash(self, password: str) -> str:
        return self._hasher.hash(password)

    def _verify(self, password_hash: str, password: str) -> bool:
        try:
            return self._hasher.verify(password_hash, password)
        except (VerificationError, InvalidHashError):
            return False

    def login(self, username: str, password: str) -> LoginResult:
        """
        Log in, returning a freshly issued token.

        - No accounts yet: creates the admin account for ``username``.
        - Account without a password: sets the password.
        - Otherwise: verifies the password.

        Raises:
            ValidationError: Empty username, or password shorter than
                MIN_PASSWORD_LENGTH when creating the admin account or
                setting a password
            AuthenticationError: Unknown username or wrong password
            PersistenceError: Store failure (nothing is written)
        """
        if not username:
            raise ValidationError("Username must not be empty")
        with self._store.transaction():
            if self._tree.is_empty():
                _check_password_length(password)
                token_entry, token = self._authority.generate()
                account = Account(
                    username=username,
                    password_hash=self._hash(password),
                    admin=True,
                    tokens=[token_entry],
                )
                self._save(account)
                logger.info("Created admin account %s", username)
                return LoginResult(token=token, message=ADMIN_CREATED_MESSAGE)

            account = self.get_account(username)
            if account is None:
                raise AuthenticationError()

            if not account.has_password:
                _check_password_length(password)
                token_entry, token = self._authority.generate()
                account.password_hash = self._hash(password)
                account.tokens.append(token_entry)
                self._save(account)
                logger.info("Password set for %s", username)
                return LoginResult(token=token, message=PASSWORD_SET_MESSAGE)

            if not self._verify(account.password_hash, password):
                raise AuthenticationError()

            token_entry, token = self._authority.generate()
            account.tokens.append(token_entry)
            self._save(account)
            return LoginResult(token=token)
