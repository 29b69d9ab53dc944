"""
Unsatisfiable-result explanations.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from package_resolver.models.package import is_platform_package
from package_resolver.models.rule import Rule, RuleType

if TYPE_CHECKING:
    from package_resolver.core.pool import Pool

_TYPE_RANK = {RuleType.ROOT_REQUIRE: 0, RuleType.FIXED: 1}


class Problem:
    """
    The rules behind an unsatisfiable request.

    Learned rules are replaced by the rules they were derived from, duplicates are
    dropped, and the result is ordered root requirements first (in request order),
    then fixed packages, then everything else in generation order.
    """

    def __init__(self, rules: list[Rule]):
        self.rules = self._flatten(rules)

    @staticmethod
    def _flatten(rules: list[Rule]) -> list[Rule]:
        seen: set[int] = set()
        flat: list[Rule] = []
        stack = list(reversed(rules))
        while stack:
            rule = stack.pop()
            if id(rule) in seen:
                continue
            seen.add(id(rule))
            if rule.type is RuleType.LEARNED:
                stack.extend(reversed(rule.learned_from))
            else:
                flat.append(rule)
        return sorted(flat, key=lambda rule: (_TYPE_RANK.get(rule.type, 2), rule.id))

    def root_requirements(self) -> list:
        return [rule.requirement for rule in self.rules if rule.type is RuleType.ROOT_REQUIRE]

    def explain(self, pool: Pool) -> list[str]:
        lines = []
        for rule in self.rules:
            line = describe_rule(rule, pool)
            if line not in lines:
                lines.append(line)
        return lines

    def __str__(self) -> str:
        return "\n".join(f"#{rule.id} {rule!r}" for rule in self.rules)


def _describe_packages(pool: Pool, literals) -> str:
    versions: dict[str, list[str]] = {}
    for literal in literals:
        package = pool.literal_to_package(literal)
        versions.setdefault(package.pretty_name, []).append(package.pretty_version)
    parts = []
    for name, pretty_versions in versions.items():
        if len(pretty_versions) == 1:
            parts.append(f"{name}[{pretty_versions[0]}]")
        else:
            parts.append(f"{name}[{', '.join(pretty_versions)}]")
    return ", ".join(parts)


def describe_rule(rule: Rule, pool: Pool) -> str:
    """Render a single rule as a readable sentence."""
    match rule.type:
        case RuleType.ROOT_REQUIRE:
            requirement = rule.requirement
            target = f"{requirement.name} {requirement.pretty_constraint}"
            if not rule.literals:
                if is_platform_package(requirement.name):
                    if pool.exists(requirement.name):
                        return f"Root requires {target} but the platform provides {_describe_packages(pool, pool.what_provides(requirement.name))}."
                    return f"Root requires {target} but it is missing from the platform."
                if pool.exists(requirement.name):
                    return f"Root requires {target}, found {_describe_packages(pool, pool.what_provides(requirement.name))} but none match the constraint."
                return f"Root requires {target}, it could not be found in any version."
            return f"Root requires {target} -> satisfiable by {_describe_packages(pool, rule.literals)}."

        case RuleType.FIXED:
            package = rule.package
            if package.repository == "platform":
                return f"{package.pretty_name} {package.pretty_version} is provided by the platform."
            return f"{package} is locked and not allowed to change."

        case RuleType.PACKAGE_REQUIRES:
            link = rule.link
            source = pool.literal_to_package(rule.literals[0])
            providers = rule.literals[1:]
            target = f"{link.target} {link.pretty_constraint}"
            if providers:
                return f"{source} requires {target} -> satisfiable by {_describe_packages(pool, providers)}."
            if is_platform_package(link.target):
                if pool.exists(link.target):
                    return f"{source} requires {target} but the platform provides {_describe_packages(pool, pool.what_provides(link.target))}."
                return f"{source} requires {target} but it is missing from the platform."
            return f"{source} requires {target} -> no matching package found."

        case RuleType.PACKAGE_CONFLICT:
            first, second = (pool.literal_to_package(literal) for literal in rule.literals)
            return f"{first} conflicts with {second}."

        case RuleType.PACKAGE_SAME_NAME:
            return f"Only one of these can be installed: {_describe_packages(pool, rule.literals)}."

        case RuleType.PACKAGE_ALIAS:
            alias = rule.package
            return f"{alias} is an alias of {alias.alias_of} and must be installed with it."

        case RuleType.PACKAGE_INVERSE_ALIAS:
            alias = rule.package
            return f"{alias.alias_of} is installed together with its alias {alias}."

        case _:
            literals = ", ".join(pool.literal_to_string(literal) for literal in rule.literals)
            return f"Conclusion: at least one of {literals} must hold."
