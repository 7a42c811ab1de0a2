"""Short random identifiers with collision retry.

Ids are drawn from ``[a-z0-9]``. There is no counter; uniqueness is checked
against the target store through a caller-supplied async predicate, and the
store's unique constraint has the last word (see ``allocate``).
"""

import logging
import secrets
import string
from collections.abc import Awaitable, Callable
from typing import TypeVar

from shared.errors import IdCollisionError

from core.errors import IdGenerationExhausted

logger = logging.getLogger(__name__)

ID_ALPHABET = string.ascii_lowercase + string.digits
DEFAULT_ID_LENGTH = 8
# 36^32 possibilities, far beyond guessing range for a 10 minute login window
STATE_LENGTH = 32

ExistsCheck = Callable[[str], Awaitable[bool]]
T = TypeVar("T")


def random_id(length: int = DEFAULT_ID_LENGTH) -> str:
    """Return a cryptographically random id of *length* characters."""
    return "".join(secrets.choice(ID_ALPHABET) for _ in range(length))


class IdProvider:
    """Generates ids that do not collide with an existing record."""

    def __init__(self, max_attempts: int = 10, length: int = DEFAULT_ID_LENGTH) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.length = length

    def generate_state(self) -> str:
        """High-entropy value for the OAuth ``state`` parameter."""
        return random_id(STATE_LENGTH)

    async def generate_id(self, exists: ExistsCheck) -> str:
        """Draw ids until *exists* reports a free one."""
        for attempt in range(1, self.max_attempts + 1):
            candidate = random_id(self.length)
            if not await exists(candidate):
                return candidate
            logger.debug(f"Id collision on attempt {attempt}/{self.max_attempts}")
        logger.error(f"Id generation exhausted after {self.max_attempts} attempts")
        raise IdGenerationExhausted(self.max_attempts)

    async def allocate(self, exists: ExistsCheck, insert: Callable[[str], Awaitable[T]]) -> T:
        """Pick a free id and persist the record with it.

        A concurrent writer can take the id between the existence check and
        the insert; *insert* then raises ``IdCollisionError`` and a fresh id is
        drawn. Both kinds of collision share the same attempt budget.
        """
        for attempt in range(1, self.max_attempts + 1):
            candidate = random_id(self.length)
            if await exists(candidate):
                logger.debug(f"Id collision on attempt {attempt}/{self.max_attempts}")
                continue
            try:
                return await insert(candidate)
            except IdCollisionError as e:
                logger.warning(
                    f"Insert into {e.table} lost an id race on attempt "
                    f"{attempt}/{self.max_attempts}, retrying"
                )
        logger.error(f"Id allocation exhausted after {self.max_attempts} attempts")
        raise IdGenerationExhausted(self.max_attempts)
