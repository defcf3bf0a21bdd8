"""Declarative carrier profile registry.

Profiles are defined in YAML (see ``profiles.yaml``) and loaded once into an
immutable :class:`CarrierRegistry`. Detection and matching code only reads
from the registry; no pattern lives in control flow.
"""

import re
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType

import yaml

from carrier_recon.utils.logger import get_logger

logger = get_logger(__name__)

UNKNOWN_CARRIER_ID = "unknown"
UNKNOWN_CARRIER_NAME = "Unknown Carrier"


def normalize_carrier_name(name: str | None) -> str:
    """Lower-case a carrier name and collapse punctuation to single spaces."""
    if not name:
        return ""
    return re.sub(r"[^a-z0-9()]+", " ", name.lower()).strip()


def _contains_words(haystack: str, needle: str) -> bool:
    return re.search(r"(?<![a-z0-9])" + re.escape(needle) + r"(?![a-z0-9])", haystack) is not None


@dataclass(frozen=True)
class CarrierProfile:
    """Identification data for one known carrier."""

    id: str
    name: str
    confidence_ceiling: float
    field_patterns: Mapping[str, re.Pattern[str]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    identifiers: tuple[str, ...] = ()
    aliases: tuple[str, ...] = ()
    document_format: str = "invoice"

    def pattern(self, field_name: str) -> re.Pattern[str] | None:
        return self.field_patterns.get(field_name)

    def names(self) -> set[str]:
        """Normalized names under which this carrier may appear."""
        names = {normalize_carrier_name(self.id), normalize_carrier_name(self.name)}
        names.update(normalize_carrier_name(a) for a in self.aliases)
        names.discard("")
        return names


def _profile_from_dict(carrier_id: str, raw: dict) -> CarrierProfile:
    patterns = {
        name: re.compile(expr, re.IGNORECASE)
        for name, expr in (raw.get("patterns") or {}).items()
    }
    return CarrierProfile(
        id=carrier_id,
        name=raw.get("name", carrier_id),
        confidence_ceiling=float(raw.get("confidence_ceiling", 0.9)),
        field_patterns=MappingProxyType(patterns),
        identifiers=tuple(raw.get("identifiers") or ()),
        aliases=tuple(raw.get("aliases") or ()),
        document_format=raw.get("format", "invoice"),
    )


class CarrierRegistry:
    """Read-only mapping of carrier id to :class:`CarrierProfile`.

    Args:
        profiles: Profiles to register, in priority order. Order matters:
            detection keeps the first carrier on score ties.
    """

    def __init__(self, profiles: Iterable[CarrierProfile]) -> None:
        self._profiles: dict[str, CarrierProfile] = {p.id: p for p in profiles}

    @classmethod
    def from_yaml(cls, path: Path) -> "CarrierRegistry":
        """Load profiles from a YAML file.

        Args:
            path: Path to the profiles YAML file.

        Returns:
            Registry holding every profile in file order.

        Raises:
            FileNotFoundError: If the file does not exist.
        """
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        registry = cls(_profile_from_dict(cid, raw or {}) for cid, raw in data.items())
        logger.info("Loaded %d carrier profiles from %s", len(registry), path)
        return registry

    def __iter__(self) -> Iterator[CarrierProfile]:
        return iter(self._profiles.values())

    def __len__(self) -> int:
        return len(self._profiles)

    def __contains__(self, carrier_id: object) -> bool:
        return carrier_id in self._profiles

    def get(self, carrier_id: str | None) -> CarrierProfile | None:
        if carrier_id is None:
            return None
        return self._profiles.get(carrier_id)

    def display_name(self, carrier_id: str | None) -> str:
        profile = self.get(carrier_id)
        if profile is not None:
            return profile.name
        return UNKNOWN_CARRIER_NAME if carrier_id in (None, UNKNOWN_CARRIER_ID) else carrier_id

    def resolve(self, name: str | None) -> CarrierProfile | None:
        """Map a free-text carrier name to a profile.

        Exact matches on id, display name or alias win over word containment
        ("DHL Express (Canada), Ltd" resolves to ``dhl``).
        """
        normalized = normalize_carrier_name(name)
        if not normalized or normalized == UNKNOWN_CARRIER_ID:
            return None
        for profile in self:
            if normalized in profile.names():
                return profile
        for profile in self:
            if any(_contains_words(normalized, n) for n in profile.names()):
                return profile
        return None

    def alias_match(self, store_carrier: str | None, carrier_id: str) -> bool:
        """Whether a store-side carrier name refers to ``carrier_id``."""
        candidate = normalize_carrier_name(store_carrier)
        if not candidate:
            return False
        profile = self.get(carrier_id)
        names = profile.names() if profile else {normalize_carrier_name(carrier_id)}
        return any(
            candidate == n or _contains_words(candidate, n) or _contains_words(n, candidate)
            for n in names
        )


DEFAULT_PROFILES_PATH = Path(__file__).resolve().parent / "profiles.yaml"


@lru_cache(maxsize=8)
def load_registry(path: Path = DEFAULT_PROFILES_PATH) -> CarrierRegistry:
    """Load and cache the registry for ``path`` (loaded once per process)."""
    return CarrierRegistry.from_yaml(Path(path))
