"""
Version normalization and comparison.

Turns free-form version strings ("v1.2", "2.0.0-beta.1", "1.0.x-dev", "dev-main")
into a normalized four-component form ("1.2.0.0", "2.0.0.0-beta1", "1.0.9999999.9999999-dev",
"dev-main") and compares normalized versions with release-aware precedence:
dev < alpha < beta < RC < release < patch.
"""

import re
from functools import cmp_to_key

from package_resolver.exceptions import ConstraintParseError

# Lower value = more stable.
STABILITIES: dict[str, int] = {
    "stable": 0,
    "rc": 5,
    "beta": 10,
    "alpha": 15,
    "dev": 20,
}

MODIFIER_REGEX = r"[._-]?(?:(stable|beta|b|RC|alpha|a|patch|pl|p)((?:[.-]?\d+)*)?)?([.-]?dev)?"

_CLASSICAL_RE = re.compile(r"^v?(\d{1,5})(\.\d+)?(\.\d+)?(\.\d+)?" + MODIFIER_REGEX + "$", re.I)
_DATE_RE = re.compile(r"^v?(\d{4}(?:[.:-]?\d{2}){1,6}(?:[.:-]?\d{1,3})?)" + MODIFIER_REGEX + "$", re.I)
_BRANCH_RE = re.compile(r"^v?(\d+)(\.(?:\d+|[xX*]))?(\.(?:\d+|[xX*]))?(\.(?:\d+|[xX*]))?$")
_STABILITY_SUFFIX_RE = re.compile(MODIFIER_REGEX + r"(?:\+.*)?$", re.I)

# Ordering of the textual parts of a version, "#" stands for any number.
_SPECIAL_FORMS = (
    ("dev", 0),
    ("alpha", 1),
    ("a", 1),
    ("beta", 2),
    ("b", 2),
    ("RC", 3),
    ("rc", 3),
    ("#", 4),
    ("pl", 5),
    ("p", 5),
)


def _expand_stability(stability: str) -> str:
    stability = stability.lower()
    match stability:
        case "a":
            return "alpha"
        case "b":
            return "beta"
        case "p" | "pl":
            return "patch"
        case "rc":
            return "RC"
        case _:
            return stability


def normalize_stability(stability: str) -> str:
    """Return the canonical lower-case tier name ("RC" -> "rc")."""
    stability = stability.lower()
    if stability not in STABILITIES:
        raise ConstraintParseError(f"Unknown stability, expected one of {', '.join(STABILITIES)}", stability)
    return stability


def is_branch(version: str) -> bool:
    """Branch versions ("dev-main") are not comparable with numbered releases."""
    return version.startswith("dev-")


def normalize(version: str) -> str:
    """
    Normalize a version string into its comparable form.

    Raises:
        ConstraintParseError: If the string is not a recognizable version.
    """
    original = version
    version = version.strip()

    # strip off an inline alias ("dev-main as 1.0.x-dev")
    match = re.match(r"^([^,\s]+) +as +[^,\s]+$", version)
    if match:
        version = match.group(1)

    # strip off a stability flag
    match = re.match(r"^([^,\s@]+) *@(?:stable|RC|beta|alpha|dev)$", version, re.I)
    if match:
        version = match.group(1)

    if version.lower() in ("master", "trunk", "default"):
        return "dev-" + version
    if version.lower().startswith("dev-"):
        return "dev-" + version[4:]

    # strip off build metadata
    match = re.match(r"^([^,\s+]+)\+\S+$", version)
    if match:
        version = match.group(1)

    normalized = None
    index = 0
    match = _CLASSICAL_RE.match(version)
    if match:
        normalized = match.group(1) + "".join(match.group(i) or ".0" for i in (2, 3, 4))
        index = 5
    else:
        match = _DATE_RE.match(version)
        if match:
            normalized = re.sub(r"\D", ".", match.group(1))
            index = 2

    if match and normalized is not None:
        modifier = match.group(index)
        if modifier:
            if modifier.lower() == "stable":
                return normalized
            suffix = (match.group(index + 1) or "").lstrip(".-")
            normalized += "-" + _expand_stability(modifier) + suffix
        if match.group(index + 2):
            normalized += "-dev"
        return normalized

    match = re.match(r"^(.*?)[.-]?dev$", version, re.I)
    if match:
        branch = normalize_branch(match.group(1))
        if not is_branch(branch):
            return branch

    raise ConstraintParseError("Invalid version string", original)


def normalize_branch(name: str) -> str:
    """Normalize a branch name; numeric branches ("1.x") become dev versions."""
    name = name.strip()
    match = _BRANCH_RE.match(name)
    if match:
        version = match.group(1)
        for i in (2, 3, 4):
            version += (match.group(i) or ".x").replace("*", "x").replace("X", "x")
        return version.replace("x", "9999999") + "-dev"
    return "dev-" + name


def parse_stability(version: str) -> str:
    """Return the stability tier implied by a (raw or normalized) version string."""
    version = re.sub(r"#.+$", "", version)
    if version.startswith("dev-") or version.endswith("-dev"):
        return "dev"

    match = _STABILITY_SUFFIX_RE.search(version.lower())
    if match:
        if match.group(3):
            return "dev"
        modifier = match.group(1)
        if modifier in ("beta", "b"):
            return "beta"
        if modifier in ("alpha", "a"):
            return "alpha"
        if modifier == "rc":
            return "rc"
    return "stable"


def _canonicalize(version: str) -> list[str]:
    version = re.sub(r"[-_+]", ".", version)
    version = re.sub(r"(?<=[^\d.])(?=\d)|(?<=\d)(?=[^\d.])", ".", version)
    return [part for part in version.split(".") if part]


def _special_order(part: str) -> int:
    for form, order in _SPECIAL_FORMS:
        if part.startswith(form):
            return order
    return -6


def _cmp(a: int, b: int) -> int:
    return (a > b) - (a < b)


def version_compare(a: str, b: str) -> int:
    """
    Compare two normalized numeric versions.

    Returns a negative number, zero or a positive number when ``a`` is lower than,
    equal to or greater than ``b``.
    """
    parts_a = _canonicalize(a)
    parts_b = _canonicalize(b)

    for part_a, part_b in zip(parts_a, parts_b):
        digit_a, digit_b = part_a.isdigit(), part_b.isdigit()
        if digit_a and digit_b:
            result = _cmp(int(part_a), int(part_b))
        elif digit_a:
            result = _cmp(_special_order("#"), _special_order(part_b))
        elif digit_b:
            result = _cmp(_special_order(part_a), _special_order("#"))
        else:
            result = _cmp(_special_order(part_a), _special_order(part_b))
        if result:
            return result

    if len(parts_a) > len(parts_b):
        rest = parts_a[len(parts_b)]
        return 1 if rest.isdigit() else _cmp(_special_order(rest), _special_order("#"))
    if len(parts_b) > len(parts_a):
        rest = parts_b[len(parts_a)]
        return -1 if rest.isdigit() else _cmp(_special_order("#"), _special_order(rest))
    return 0


def compare_versions(a: str, b: str) -> int:
    """
    Total order over normalized versions, branches included.

    Branches sort below every numbered version and among themselves by name.
    """
    branch_a, branch_b = is_branch(a), is_branch(b)
    if branch_a and branch_b:
        return (a > b) - (a < b)
    if branch_a:
        return -1
    if branch_b:
        return 1
    return version_compare(a, b)


version_sort_key = cmp_to_key(compare_versions)
