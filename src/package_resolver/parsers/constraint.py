"""
Version constraint parser.

Supports exact versions, comparison operators (``>=1.0``, ``<2``, ``!=1.5``), caret
(``^1.2``) and tilde (``~1.2.3``) ranges, wildcards (``1.2.*``), hyphen ranges
(``1.0 - 2.0``), AND (``,`` or space) and OR (``||``) combinations, ``@stability``
flags and ``dev-`` branches.
"""

import re
from dataclasses import replace

from package_resolver.exceptions import ConstraintParseError
from package_resolver.models.constraint import (
    BaseConstraint,
    Constraint,
    MatchAllConstraint,
    MultiConstraint,
)
from package_resolver.parsers.version import MODIFIER_REGEX, normalize, parse_stability

_VERSION = (
    r"v?(?P<major>\d+)(?:\.(?P<minor>\d+))?(?:\.(?P<patch>\d+))?(?:\.(?P<build>\d+))?"
    r"(?:[._-]?(?:(?P<mod>stable|beta|b|RC|alpha|a|patch|pl|p)(?P<modnum>(?:[.-]?\d+)*)?)?(?P<dev>[.-]?dev)?)"
    r"(?:\+[^\s]+)?"
)

_TILDE_RE = re.compile(r"^~>?" + _VERSION + "$", re.I)
_CARET_RE = re.compile(r"^\^" + _VERSION + "$", re.I)
_WILDCARD_RE = re.compile(r"^v?(?P<major>\d+)(?:\.(?P<minor>\d+))?(?:\.(?P<patch>\d+))?(?:\.[xX*])+$")
_HYPHEN_RE = re.compile(
    r"^(?P<low>" + _VERSION.replace("?P<", "?P<l_") + r") +- +(?P<high>" + _VERSION.replace("?P<", "?P<h_") + r")$",
    re.I,
)
_OPERATOR_RE = re.compile(r"^(<>|!=|>=?|<=?|==?)?\s*(.*)$")
_MATCH_ALL_RE = re.compile(r"^v?[xX*](\.[xX*])*$")
_EXPLICIT_MODIFIER_RE = re.compile("-" + MODIFIER_REGEX + "$", re.I)


def parse_constraints(constraints: str) -> BaseConstraint:
    """
    Parse a constraint string into a constraint object.

    Raises:
        ConstraintParseError: If any part of the string cannot be parsed.
    """
    pretty = constraints
    text = constraints.strip()
    if not text:
        raise ConstraintParseError("Empty version constraint", constraints)

    # "dev-main as 1.0.x-dev" requires the real version, the alias is handled by the loader
    match = re.match(r"^([^,\s]+) +as +[^,\s]+$", text)
    if match:
        text = match.group(1)

    or_constraints: list[BaseConstraint] = []
    for or_part in re.split(r"\s*\|\|?\s*", text):
        and_constraints: list[BaseConstraint] = []
        for and_part in _split_and(or_part):
            and_constraints.extend(_parse_constraint(and_part))
        if len(and_constraints) == 1:
            or_constraints.append(and_constraints[0])
        else:
            or_constraints.append(MultiConstraint(tuple(and_constraints), conjunctive=True))

    if len(or_constraints) == 1:
        result = or_constraints[0]
    else:
        result = MultiConstraint(tuple(or_constraints), conjunctive=False)

    return replace(result, pretty_string=pretty)


def _split_and(constraint: str) -> list[str]:
    constraint = constraint.strip()
    if not constraint:
        raise ConstraintParseError("Empty constraint in OR group")
    if _HYPHEN_RE.match(constraint):
        return [constraint]
    # glue operators to their versions: ">= 1.0" -> ">=1.0"
    constraint = re.sub(r"([=<>!~^]+)\s+", r"\1", constraint)
    return [part for part in re.split(r"\s*,\s*|\s+", constraint) if part]


def _parse_constraint(constraint: str) -> list[BaseConstraint]:
    original = constraint

    stability_modifier = None
    match = re.match(r"^([^,\s]*?)@(stable|RC|beta|alpha|dev)$", constraint, re.I)
    if match:
        constraint = match.group(1) or "*"
        if match.group(2).lower() != "stable":
            stability_modifier = match.group(2).lower()

    match = re.match(r"^(dev-[^,\s@]+?|[^,\s@]+?\.x-dev)#.+$", constraint, re.I)
    if match:
        constraint = match.group(1)

    if _MATCH_ALL_RE.match(constraint):
        return [MatchAllConstraint()]

    match = _TILDE_RE.match(constraint)
    if match:
        if constraint.startswith("~>"):
            raise ConstraintParseError("Invalid operator \"~>\", you probably meant to use the \"~\" operator", original)
        position = _specified_position(match)
        if match.group("dev"):
            position += 1
        suffix = "" if (match.group("mod") or match.group("dev")) else "-dev"
        low = normalize(constraint[1:] + suffix)
        high = _manipulate(match, max(1, position - 1), 1) + "-dev"
        return [Constraint(">=", low), Constraint("<", high)]

    match = _CARET_RE.match(constraint)
    if match:
        if match.group("major") != "0" or not match.group("minor"):
            position = 1
        elif match.group("minor") != "0" or not match.group("patch"):
            position = 2
        else:
            position = 3
        suffix = "" if (match.group("mod") or match.group("dev")) else "-dev"
        low = normalize(constraint[1:] + suffix)
        high = _manipulate(match, position, 1) + "-dev"
        return [Constraint(">=", low), Constraint("<", high)]

    match = _WILDCARD_RE.match(constraint)
    if match:
        if match.group("patch"):
            position = 3
        elif match.group("minor"):
            position = 2
        else:
            position = 1
        low = _manipulate(match, position) + "-dev"
        high = _manipulate(match, position, 1) + "-dev"
        if low == "0.0.0.0-dev":
            return [Constraint("<", high)]
        return [Constraint(">=", low), Constraint("<", high)]

    match = _HYPHEN_RE.match(constraint)
    if match:
        low_suffix = "" if (match.group("l_mod") or match.group("l_dev")) else "-dev"
        low = Constraint(">=", normalize(match.group("low") + low_suffix))

        if (match.group("h_minor") and match.group("h_patch")) or match.group("h_mod") or match.group("h_dev"):
            high = Constraint("<=", normalize(match.group("high")))
        else:
            numbers = {"major": match.group("h_major"), "minor": match.group("h_minor")}
            position = 2 if numbers["minor"] else 1
            high = Constraint("<", _manipulate_numbers(numbers, position, 1) + "-dev")
        return [low, high]

    match = _OPERATOR_RE.match(constraint)
    if match and match.group(2):
        operator = match.group(1) or "=="
        raw_version = match.group(2)
        try:
            version = normalize(raw_version)
        except ConstraintParseError:
            version = None
        if version is not None:
            if operator not in ("=", "==") and stability_modifier and parse_stability(version) == "stable":
                version += "-" + stability_modifier
            elif operator in ("<", ">="):
                # "<2.0" must also exclude 2.0 pre-releases, ">=2.0" must include them
                if not _EXPLICIT_MODIFIER_RE.search(raw_version.lower()) and not raw_version.startswith("dev-"):
                    version += "-dev"
            match operator:
                case "=":
                    operator = "=="
                case "<>":
                    operator = "!="
            return [Constraint(operator, version)]

    raise ConstraintParseError("Could not parse version constraint", original)


def _specified_position(match: re.Match) -> int:
    if match.group("build"):
        return 4
    if match.group("patch"):
        return 3
    if match.group("minor"):
        return 2
    return 1


def _manipulate(match: re.Match, position: int, increment: int = 0) -> str:
    numbers = {key: match.group(key) for key in ("major", "minor", "patch")}
    if "build" in match.re.groupindex:
        numbers["build"] = match.group("build")
    return _manipulate_numbers(numbers, position, increment)


def _manipulate_numbers(numbers: dict, position: int, increment: int = 0) -> str:
    """Bump the component at ``position`` (1-based) and zero everything after it."""
    parts = [int(numbers.get(key) or 0) for key in ("major", "minor", "patch", "build")]
    for i in range(4, 0, -1):
        if i > position:
            parts[i - 1] = 0
        elif i == position and increment:
            parts[i - 1] += increment
    return ".".join(str(part) for part in parts)
