"""
Referral codes and client-facing project codes.

Both are short, human-typeable strings drawn from an alphabet without the
look-alike characters 0/O and 1/I.
"""

import logging
import secrets

from webstability.config import settings
from webstability.core.errors import InfrastructureError
from webstability.core.store import ProjectStore
from webstability.models import Project

logger = logging.getLogger(__name__)

CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
CODE_LENGTH = 6
PROJECT_CODE_PREFIX = "WS-"


def generate_code(prefix: str, length: int = CODE_LENGTH) -> str:
    return prefix + "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


async def generate_project_code(store: ProjectStore, max_attempts: int = 10) -> str:
    for _ in range(max_attempts):
        code = generate_code(PROJECT_CODE_PREFIX)
        if not await store.project_id_exists(code):
            return code
    raise InfrastructureError(
        f"Could not find a free project code after {max_attempts} attempts"
    )


class ReferralCodeService:
    def __init__(self, prefix: str | None = None, max_attempts: int | None = None):
        self.prefix = prefix if prefix is not None else settings.referral_code_prefix
        self.max_attempts = max_attempts or settings.referral_code_max_attempts

    async def get_or_create(self, store: ProjectStore, project: Project) -> tuple[str, bool]:
        """Return ``(code, created)``. Calling it again returns the same code.

        The caller holds the project lock; the unique constraint on
        ``projects.referral_code`` catches collisions with other projects
        created between the existence check and the commit.
        """
        if project.referral_code:
            return project.referral_code, False

        for attempt in range(1, self.max_attempts + 1):
            code = generate_code(self.prefix)
            if not await store.referral_code_exists(code):
                project.referral_code = code
                await store.put(project)
                logger.info(f"Issued referral code {code} to {project.project_id}")
                return code, True
            logger.debug(f"Referral code collision on attempt {attempt}: {code}")

        raise InfrastructureError(
            f"Could not find a free referral code after {self.max_attempts} attempts"
        )

    async def lookup(self, store: ProjectStore, code: str) -> Project | None:
        if not code:
            return None
        return await store.get_by_referral_code(code.strip().upper())
