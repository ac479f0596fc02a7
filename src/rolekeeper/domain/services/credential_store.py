"""Credential storage collaborator.

The directory never keeps a credential. It hands each one to a
``CredentialStore`` and forgets it. Hashing and persistence belong to the
store implementation.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime

from pydantic import SecretStr

from rolekeeper.core.clock import Clock, SystemClock
from rolekeeper.core.passwords import hash_password, verify_password


class CredentialStore(ABC):
    """Abstract base class for credential storage backends."""

    @abstractmethod
    async def set_initial_credential(self, user_id: int, credential: SecretStr) -> None:
        """Store the first credential of a newly created user.

        Raises:
            Exception: Any failure. The directory wraps it in ``CollaboratorError``.
        """
        ...

    @abstractmethod
    async def reset_credential(self, user_id: int, credential: SecretStr) -> None:
        """Replace the credential of an existing user.

        Raises:
            Exception: Any failure. The directory wraps it in ``CollaboratorError``.
        """
        ...


@dataclass(slots=True)
class CredentialRecord:
    """What the in-memory store remembers about a user's credential."""

    user_id: int
    password_hash: str = field(repr=False)
    updated_at: datetime


class InMemoryCredentialStore(CredentialStore):
    """Process-local store used for demos and tests.

    Credentials are kept as Argon2id hashes, never as plaintext.
    """

    def __init__(self, clock: Clock | None = None) -> None:
        self.clock = clock or SystemClock()
        self.records: dict[int, CredentialRecord] = {}

    async def set_initial_credential(self, user_id: int, credential: SecretStr) -> None:
        if user_id in self.records:
            raise ValueError(f"Credential for user {user_id} already exists")
        self.records[user_id] = self._record(user_id, credential)

    async def reset_credential(self, user_id: int, credential: SecretStr) -> None:
        record = self.records.get(user_id)
        if record is None:
            self.records[user_id] = self._record(user_id, credential)
            return
        record.password_hash = hash_password(credential.get_secret_value())
        record.updated_at = self.clock.now()

    def verify(self, user_id: int, credential: SecretStr) -> bool:
        """Check a credential against the stored hash.

        Returns:
            False if the user has no credential or it does not match.
        """
        record = self.records.get(user_id)
        if record is None:
            return False
        return verify_password(credential.get_secret_value(), record.password_hash)

    def _record(self, user_id: int, credential: SecretStr) -> CredentialRecord:
        return CredentialRecord(
            user_id=user_id,
            password_hash=hash_password(credential.get_secret_value()),
            updated_at=self.clock.now(),
        )
