"""
Semantic versions and version range expressions.

Ordering is delegated to python-debian's Version: a semver prerelease is
rendered with a '~' separator ('5.0.0-beta1' -> '5.0.0~beta1'), which Debian
sorts below the bare release exactly like semver precedence wants.

Range grammar (same as the blang/semver ranges the mirror configs use):
    '>=1.0.0 <2.0.0'            space separated comparisons are ANDed
    '<1.0.0 || >=2.0.0'         '||' separates alternatives
    '1.2.x', '1.x', 'x'         wildcards expand to ranges
    '=', '==', '!=', '>', '>=', '<', '<='; no operator means '='
"""
import logging
import operator
import re
from dataclasses import dataclass
from functools import total_ordering

from debian.debian_support import Version

from .errors import ConstraintParseError, VersionParseError

logger = logging.getLogger(__name__)

_IDENT = r"[0-9A-Za-z-]+"
_SEMVER_RE = re.compile(
    r"^(?P<major>0|[1-9]\d*)\.(?P<minor>0|[1-9]\d*)\.(?P<patch>0|[1-9]\d*)"
    rf"(?:-(?P<prerelease>{_IDENT}(?:\.{_IDENT})*))?"
    rf"(?:\+(?P<build>{_IDENT}(?:\.{_IDENT})*))?$"
)
_COMPARISON_RE = re.compile(r"^(?P<op>==|!=|>=|<=|=|>|<)?(?P<version>\S+)$")

_OPERATORS = {
    "=": operator.eq,
    "==": operator.eq,
    "!=": operator.ne,
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
}


@total_ordering
@dataclass(frozen=True, eq=False)
class SemVer:
    major: int
    minor: int
    patch: int
    prerelease: str = ""
    build: str = ""

    def _debian_key(self) -> Version:
        upstream = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            upstream += "~" + self.prerelease
        # Explicit revision so hyphens inside the prerelease stay in the upstream part
        return Version(f"{upstream}-0")

    def __eq__(self, other):
        if not isinstance(other, SemVer):
            return NotImplemented
        # Build metadata does not take part in precedence
        return (self.major, self.minor, self.patch, self.prerelease) == \
               (other.major, other.minor, other.patch, other.prerelease)

    def __lt__(self, other):
        if not isinstance(other, SemVer):
            return NotImplemented
        return self._debian_key() < other._debian_key()

    def __hash__(self):
        return hash((self.major, self.minor, self.patch, self.prerelease))

    def __str__(self):
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            text += f"-{self.prerelease}"
        if self.build:
            text += f"+{self.build}"
        return text


def parse_version(text: str) -> SemVer:
    """Parses a strict MAJOR.MINOR.PATCH[-pre][+build] string."""
    match = _SEMVER_RE.match(text.strip()) if text else None
    if not match:
        raise VersionParseError(f"Invalid semantic version: {text!r}")
    version = SemVer(
        major=int(match.group("major")),
        minor=int(match.group("minor")),
        patch=int(match.group("patch")),
        prerelease=match.group("prerelease") or "",
        build=match.group("build") or "",
    )
    try:
        version._debian_key()
    except ValueError as e:
        raise VersionParseError(f"Invalid semantic version: {text!r}") from e
    return version


def compare_versions(version_str1: str, version_str2: str) -> int:
    """
    Compares two semver strings.
    Returns: -1 if v1 < v2, 0 if v1 == v2, 1 if v1 > v2
    """
    v1 = parse_version(version_str1)
    v2 = parse_version(version_str2)
    if v1 > v2: return 1
    elif v1 < v2: return -1
    else: return 0


@dataclass(frozen=True)
class _Comparison:
    op: str
    version: SemVer

    def matches(self, version: SemVer) -> bool:
        return _OPERATORS[self.op](version, self.version)


class Constraint:
    """A parsed version range; alternatives of ANDed comparisons."""

    def __init__(self, text: str, alternatives: list[list[_Comparison]]):
        self.text = text
        self._alternatives = alternatives

    def matches(self, version: SemVer | str) -> bool:
        if isinstance(version, str):
            version = parse_version(version)
        if not self._alternatives:
            return True
        return any(all(c.matches(version) for c in group) for group in self._alternatives)

    def __contains__(self, version) -> bool:
        return self.matches(version)

    def __repr__(self):
        return f"Constraint({self.text!r})"


def _expand_wildcard(op: str, text: str) -> list[_Comparison]:
    parts = text.split(".")
    if len(parts) > 3 or any(not p for p in parts):
        raise ConstraintParseError(f"Invalid wildcard version {text!r}")
    wildcard_at = next(i for i, p in enumerate(parts) if p in ("x", "X", "*"))
    if any(p not in ("x", "X", "*") for p in parts[wildcard_at:]):
        raise ConstraintParseError(f"Wildcard must be trailing in {text!r}")
    try:
        fixed = [int(p) for p in parts[:wildcard_at]]
    except ValueError:
        raise ConstraintParseError(f"Invalid wildcard version {text!r}") from None

    if not fixed:
        # a bare 'x' matches anything
        if op not in ("", "=", "==", ">=", "<="):
            raise ConstraintParseError(f"Operator {op!r} cannot be combined with wildcard {text!r}")
        return []

    low = fixed + [0] * (3 - len(fixed))
    high = list(low)
    high[len(fixed) - 1] += 1
    for i in range(len(fixed), 3):
        high[i] = 0
    lower, upper = SemVer(*low), SemVer(*high)

    if op in ("", "=", "=="):
        return [_Comparison(">=", lower), _Comparison("<", upper)]
    if op == ">":
        return [_Comparison(">=", upper)]
    if op == ">=":
        return [_Comparison(">=", lower)]
    if op == "<":
        return [_Comparison("<", lower)]
    if op == "<=":
        return [_Comparison("<", upper)]
    raise ConstraintParseError(f"Operator {op!r} cannot be combined with wildcard {text!r}")


def _parse_comparison(token: str) -> list[_Comparison]:
    match = _COMPARISON_RE.match(token)
    if not match:
        raise ConstraintParseError(f"Invalid comparison {token!r}")
    op = match.group("op") or ""
    version_text = match.group("version")

    if any(p in ("x", "X", "*") for p in version_text.split(".")):
        return _expand_wildcard(op, version_text)

    try:
        version = parse_version(version_text)
    except VersionParseError as e:
        raise ConstraintParseError(f"Invalid version {version_text!r} in comparison {token!r}") from e
    return [_Comparison(op or "=", version)]


def _tokens(group: str) -> list[str]:
    """Splits a range group on whitespace, joining an operator with a following version."""
    tokens = []
    pending_op = ""
    for piece in group.split():
        if piece in _OPERATORS:
            if pending_op:
                raise ConstraintParseError(f"Dangling operator {pending_op!r} in {group!r}")
            pending_op = piece
            continue
        tokens.append(pending_op + piece)
        pending_op = ""
    if pending_op:
        raise ConstraintParseError(f"Operator {pending_op!r} without a version in {group!r}")
    return tokens


def parse_constraint(text: str | None) -> Constraint:
    """Parses a version range; an empty range matches every version."""
    if text is None or not text.strip():
        return Constraint("", [])

    alternatives = []
    for group in text.split("||"):
        tokens = _tokens(group)
        if not tokens:
            raise ConstraintParseError(f"Empty alternative in version range {text!r}")
        comparisons = []
        for token in tokens:
            comparisons.extend(_parse_comparison(token))
        alternatives.append(comparisons)
    return Constraint(text, alternatives)
