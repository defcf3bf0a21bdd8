"""Caller access scopes for filtering match candidates."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum

from carrier_recon.utils.config import AccessConfig
from carrier_recon.utils.logger import get_logger

logger = get_logger(__name__)


class Role(str, Enum):
    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    USER = "user"


@dataclass(frozen=True)
class AccessScope:
    """Companies whose records a principal may be matched against."""

    role: Role = Role.USER
    companies: frozenset[str] = frozenset()

    def allows(self, company_id: str | None, strict: bool = True) -> bool:
        """Whether a record owned by ``company_id`` is visible.

        Super-admins see everything. An empty scope denies everything under
        strict filtering and allows everything otherwise.
        """
        if self.role is Role.SUPER_ADMIN:
            return True
        if not self.companies:
            return not strict
        return company_id in self.companies


class IdentityService(ABC):
    """Port resolving a principal to its access scope."""

    @abstractmethod
    async def resolve_scope(self, principal: str) -> AccessScope:
        """Return the scope for ``principal``."""


class StaticIdentityService(IdentityService):
    """Identity service backed by the ``access.principals`` config section.

    Args:
        config: Access configuration.
    """

    def __init__(self, config: AccessConfig) -> None:
        self.config = config

    async def resolve_scope(self, principal: str) -> AccessScope:
        entry = self.config.principals.get(principal)
        if entry is None:
            logger.warning("Unknown principal %s, using an empty scope", principal)
            return AccessScope()

        role = Role(entry.role)
        match role:
            case Role.SUPER_ADMIN:
                companies = frozenset()
            case Role.ADMIN:
                companies = frozenset(entry.connected_companies)
            case Role.USER:
                companies = frozenset([entry.company_id]) if entry.company_id else frozenset()
        return AccessScope(role=role, companies=companies)
