"""
Semantic version parsing and ordering for catalog entries.
"""

import re
from dataclasses import dataclass
from functools import total_ordering

_VERSION_REGEX = re.compile(
    r"^[vV]?(?P<numbers>\d+(?:\.\d+)*)"
    r"(?:[-.+_]?(?P<prerelease>[0-9A-Za-z][0-9A-Za-z.\-]*))?$"
)


@total_ordering
@dataclass(frozen=True, eq=False)
class SemanticVersion:
    """
    A dotted numeric tuple with an optional prerelease tag.

    Ordering compares the numeric components first, padding the shorter tuple
    with zeros ("2.40" == "2.40.0"). A release ranks above any prerelease of an
    equal numeric tuple. Prerelease tags compare identifier by identifier,
    numeric identifiers numerically and below alphanumeric ones.
    """

    numbers: tuple[int, ...]
    prerelease: str | None = None

    @classmethod
    def parse(cls, raw: str) -> "SemanticVersion":
        """
        Parses a raw version string such as "3.141.59", "v0.21.0" or "2.41-beta".

        Raises:
            ValueError: If the string does not start with a dotted numeric part.
        """
        match = _VERSION_REGEX.match(raw.strip())
        if not match:
            raise ValueError(f"Not a semantic version: '{raw}'")
        numbers = tuple(int(n) for n in match.group("numbers").split("."))
        return cls(numbers, match.group("prerelease"))

    @property
    def is_prerelease(self) -> bool:
        return self.prerelease is not None

    def _key(self) -> tuple:
        numbers = list(self.numbers)
        while len(numbers) > 1 and numbers[-1] == 0:
            numbers.pop()
        if self.prerelease is None:
            return (tuple(numbers), 1, ())
        identifiers = tuple(
            (0, int(part), "") if part.isdigit() else (1, 0, part)
            for part in re.split(r"[.\-]", self.prerelease)
            if part
        )
        return (tuple(numbers), 0, identifiers)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SemanticVersion):
            return NotImplemented
        return self._key() == other._key()

    def __lt__(self, other: "SemanticVersion") -> bool:
        if not isinstance(other, SemanticVersion):
            return NotImplemented
        return self._key() < other._key()

    def __hash__(self) -> int:
        return hash(self._key())

    def __str__(self) -> str:
        text = ".".join(str(n) for n in self.numbers)
        return f"{text}-{self.prerelease}" if self.prerelease else text
