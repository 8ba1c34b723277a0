"""
Version Constraints.

This module parses and matches the host-app version ranges plugins declare.

Key features:
- Dotted numeric versions of any length ("1", "0.2", "1.4.10")
- Operators >=, >, <=, <, ==, ~=
- Comma-separated clauses combine into a range (">=0.1.0,<1.0.0")
"""

import re
from dataclasses import dataclass


class VersionError(Exception):
    """Raised when a version or constraint string is malformed."""

    pass


_VERSION_RE = re.compile(r"^v?(\d+(?:\.\d+)*)$")
_CLAUSE_RE = re.compile(r"^(>=|<=|==|~=|>|<)?\s*(v?\d+(?:\.\d+)*)$")


def parse_version(version: str) -> tuple[int, ...]:
    """
    Parse a dotted version string into a tuple of ints.

    Raises:
        VersionError: If the string is not a dotted numeric version
    """
    match = _VERSION_RE.match(version.strip())
    if not match:
        raise VersionError(f"Invalid version: {version!r}")
    return tuple(int(part) for part in match.group(1).split("."))


def compare_versions(v1: str, v2: str) -> int:
    """
    Compare two version strings.

    Returns:
        -1 if v1 < v2, 0 if v1 == v2, 1 if v1 > v2
    """
    parts1 = list(parse_version(v1))
    parts2 = list(parse_version(v2))

    max_len = max(len(parts1), len(parts2))
    parts1.extend([0] * (max_len - len(parts1)))
    parts2.extend([0] * (max_len - len(parts2)))

    if parts1 < parts2:
        return -1
    if parts1 > parts2:
        return 1
    return 0


@dataclass(frozen=True)
class VersionConstraint:
    """
    A single comparison clause.

    Attributes:
        operator: One of >=, >, <=, <, ==, ~=
        version: Version string the operator compares against
    """

    operator: str
    version: str

    def matches(self, version: str) -> bool:
        cmp = compare_versions(version, self.version)
        if self.operator == "==":
            return cmp == 0
        if self.operator == ">=":
            return cmp >= 0
        if self.operator == ">":
            return cmp > 0
        if self.operator == "<=":
            return cmp <= 0
        if self.operator == "<":
            return cmp < 0
        if self.operator == "~=":
            return cmp >= 0 and compare_versions(version, self._compatible_upper()) < 0
        raise VersionError(f"Unknown version operator: {self.operator}")

    def _compatible_upper(self) -> str:
        # ~=1.2.3 matches >=1.2.3, <1.3.0
        parts = list(parse_version(self.version))
        if len(parts) < 2:
            raise VersionError(f"Invalid version for ~= operator: {self.version}")
        upper = parts[:-1]
        upper[-1] += 1
        return ".".join(str(p) for p in upper) + ".0"

    def __str__(self) -> str:
        return f"{self.operator}{self.version}"


@dataclass(frozen=True)
class VersionRange:
    """All clauses must match."""

    clauses: tuple[VersionConstraint, ...]

    def matches(self, version: str) -> bool:
        return all(clause.matches(version) for clause in self.clauses)

    def __str__(self) -> str:
        return ",".join(str(c) for c in self.clauses)


def parse_version_constraint(constraint_str: str) -> VersionConstraint:
    """
    Parse one clause such as ">=1.0.0". A bare version means "==".

    Raises:
        VersionError: If the clause is invalid
    """
    match = _CLAUSE_RE.match(constraint_str.strip())
    if not match:
        raise VersionError(
            f"Invalid version constraint: {constraint_str!r}. "
            f"Expected operator + version (e.g. '>=1.0.0')"
        )
    operator, version = match.groups()
    if operator == "~=":
        # validated eagerly so a bad range is reported at load time
        VersionConstraint(operator, version)._compatible_upper()
    return VersionConstraint(operator=operator or "==", version=version.lstrip("v"))


def parse_version_range(range_str: str) -> VersionRange:
    """
    Parse a comma-separated list of clauses.

    Raises:
        VersionError: If the range is empty or any clause is invalid
    """
    clauses = [c for c in (part.strip() for part in range_str.split(",")) if c]
    if not clauses:
        raise VersionError(f"Empty version range: {range_str!r}")
    return VersionRange(tuple(parse_version_constraint(c) for c in clauses))
