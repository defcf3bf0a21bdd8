"""OCR-tolerant identifier variants.

When an exact lookup fails, the matching engine retries with variants of the
identifier in which characters that OCR commonly confuses (``0``/``O``,
``1``/``I``, ``5``/``S`` ...) have been swapped. Everything here is pure and
deterministic.
"""

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

# Each character maps to its confusion class, itself included.
CONFUSIONS: dict[str, tuple[str, ...]] = {
    "0": ("0", "O", "Q", "D"),
    "O": ("O", "0", "Q"),
    "Q": ("Q", "0", "O"),
    "D": ("D", "0"),
    "1": ("1", "I", "l"),
    "I": ("I", "1", "l"),
    "l": ("l", "1", "I"),
    "5": ("5", "S"),
    "S": ("S", "5"),
    "8": ("8", "B"),
    "B": ("B", "8"),
    "6": ("6", "G"),
    "G": ("G", "6"),
    "2": ("2", "Z"),
    "Z": ("Z", "2"),
}

MAX_SIMULTANEOUS_CHANGES = 2


@dataclass(frozen=True)
class StructuredIdPattern:
    """A literal prefix followed by a fixed-length alphanumeric suffix.

    Example: ``ICAL-`` + 6 characters, as in ``ICAL-8K2Q0B``.
    """

    prefix: str = "ICAL-"
    suffix_length: int = 6

    def matches(self, identifier: str) -> bool:
        if len(identifier) != len(self.prefix) + self.suffix_length:
            return False
        if not identifier.upper().startswith(self.prefix.upper()):
            return False
        return identifier[len(self.prefix) :].isalnum()

    def scan_regex(self) -> re.Pattern[str]:
        """Regex that finds the pattern in free text, tolerating OCR noise
        in the prefix (``1CAL-`` is read as ``ICAL-``)."""
        parts = []
        for ch in self.prefix:
            group = CONFUSIONS.get(ch.upper()) or CONFUSIONS.get(ch)
            if group:
                parts.append("[" + "".join(re.escape(c) for c in group) + "]")
            else:
                parts.append(re.escape(ch))
        return re.compile(
            r"(?<![A-Za-z0-9])("
            + "".join(parts)
            + r")([A-Za-z0-9]{"
            + str(self.suffix_length)
            + r"})(?![A-Za-z0-9])",
            re.IGNORECASE,
        )


DEFAULT_STRUCTURED_PATTERN = StructuredIdPattern()


def single_substitutions(identifier: str) -> set[str]:
    """Variants that differ from ``identifier`` in exactly one position."""
    out: set[str] = set()
    for pos, ch in enumerate(identifier):
        for alt in CONFUSIONS.get(ch, ()):
            if alt != ch:
                out.add(identifier[:pos] + alt + identifier[pos + 1 :])
    return out


def combined_suffix_variants(
    identifier: str,
    pattern: StructuredIdPattern,
    max_changes: int = MAX_SIMULTANEOUS_CHANGES,
    include_original: bool = False,
) -> set[str]:
    """Variants changing 1..``max_changes`` distinct positions of the suffix.

    The prefix is never altered. ``max_changes`` is clamped to
    :data:`MAX_SIMULTANEOUS_CHANGES` whatever the identifier length.
    """
    max_changes = max(0, min(max_changes, MAX_SIMULTANEOUS_CHANGES))
    start = len(identifier) - pattern.suffix_length
    positions = [
        i for i in range(max(start, 0), len(identifier)) if identifier[i] in CONFUSIONS
    ]
    found: set[str] = set()

    def _expand(chars: list[str], first: int, changes: int) -> None:
        found.add("".join(chars))
        if changes == max_changes:
            return
        for idx in range(first, len(positions)):
            pos = positions[idx]
            original = chars[pos]
            for alt in CONFUSIONS[original]:
                if alt == original:
                    continue
                chars[pos] = alt
                _expand(chars, idx + 1, changes + 1)
            chars[pos] = original

    _expand(list(identifier), 0, 0)
    if not include_original:
        found.discard(identifier)
    return found


def variants(
    identifier: str,
    patterns: Sequence[StructuredIdPattern] = (DEFAULT_STRUCTURED_PATTERN,),
    include_original: bool = False,
) -> set[str]:
    """Generate OCR-confusion variants of an identifier.

    Args:
        identifier: Identifier as read from the document.
        patterns: Structured id patterns; an identifier matching one of them
            also gets combined suffix variants (up to two changes).
        include_original: Whether the unmodified identifier is part of the
            result.

    Returns:
        Deduplicated set of variant strings.
    """
    if not identifier:
        return set()

    result = single_substitutions(identifier)
    for pattern in patterns:
        if pattern.matches(identifier):
            result |= combined_suffix_variants(identifier, pattern)
            break

    if include_original:
        result.add(identifier)
    else:
        result.discard(identifier)
    return result


def find_structured_ids(
    texts: Iterable[str | None],
    pattern: StructuredIdPattern = DEFAULT_STRUCTURED_PATTERN,
) -> list[str]:
    """Find structured ids in free-text fields.

    Matches are returned upper-cased with the canonical prefix, in order of
    first appearance.
    """
    regex = pattern.scan_regex()
    seen: dict[str, None] = {}
    for text in texts:
        if not text:
            continue
        for match in regex.finditer(str(text)):
            seen.setdefault(pattern.prefix.upper() + match.group(2).upper(), None)
    return list(seen)
