"""Tests for candidate ordering."""

from functools import cmp_to_key

import pytest

from package_resolver.core.policy import Policy
from package_resolver.parsers.package import load_package


def ordered(policy: Policy, packages):
    return [str(pkg) for pkg in sorted(packages, key=cmp_to_key(policy.compare_versions))]


class TestCompareVersions:
    def test_highest_version_first(self, package):
        packages = [package("a/a", "1.0.0"), package("a/a", "2.0.0"), package("a/a", "1.5.0")]
        assert ordered(Policy(), packages) == ["a/a 2.0.0", "a/a 1.5.0", "a/a 1.0.0"]

    def test_prefer_lowest(self, package):
        packages = [package("a/a", "1.0.0"), package("a/a", "2.0.0")]
        assert ordered(Policy(prefer_lowest=True), packages) == ["a/a 1.0.0", "a/a 2.0.0"]

    def test_prefer_stable(self, package):
        packages = [package("a/a", "2.0.0-beta1"), package("a/a", "1.0.0")]
        assert ordered(Policy(), packages) == ["a/a 2.0.0-beta1", "a/a 1.0.0"]
        assert ordered(Policy(prefer_stable=True), packages) == ["a/a 1.0.0", "a/a 2.0.0-beta1"]

    def test_preferred_version_wins(self, package):
        packages = [package("a/a", "2.0.0"), package("a/a", "1.0.0")]
        policy = Policy(preferred_versions={"a/a": "1.0.0.0"})
        assert ordered(policy, packages) == ["a/a 1.0.0", "a/a 2.0.0"]

    def test_priority_breaks_version_ties(self):
        low = load_package({"name": "b/b", "version": "1.0.0"}, priority=1)
        high = load_package({"name": "c/c", "version": "1.0.0"}, priority=0)
        assert ordered(Policy(), [low, high]) == ["c/c 1.0.0", "b/b 1.0.0"]

    def test_name_breaks_remaining_ties(self, package):
        assert ordered(Policy(), [package("z/z", "1.0.0"), package("m/m", "1.0.0")]) == ["m/m 1.0.0", "z/z 1.0.0"]


class TestStabilityAcceptable:
    @pytest.mark.parametrize(
        "stability, minimum, flags, expected",
        [
            ("stable", "stable", {}, True),
            ("beta", "stable", {}, False),
            ("beta", "beta", {}, True),
            ("rc", "beta", {}, True),
            ("dev", "alpha", {}, False),
            ("dev", "stable", {"a/a": "dev"}, True),
            ("alpha", "stable", {"other/pkg": "dev"}, False),
        ],
    )
    def test_floor(self, stability, minimum, flags, expected):
        assert Policy.is_stability_acceptable("a/a", stability, minimum, flags) is expected


class TestSelectPreferredPackages:
    def test_required_name_group_first(self, pool_of):
        pool = pool_of(
            ("a/a", "1.0.0"),
            ("fork/a", "2.0.0", {"replace": {"a/a": "1.0.0"}}),
        )
        literals = pool.what_provides("a/a")
        result = Policy().select_preferred_packages(pool, literals, "a/a")
        assert [str(pool.package_by_id(i)) for i in result] == ["a/a 1.0.0", "fork/a 2.0.0"]

    def test_same_vendor_group_before_others(self, pool_of):
        pool = pool_of(
            ("other/impl", "3.0.0", {"provide": {"acme/api": "1.0.0"}}),
            ("acme/impl", "1.0.0", {"provide": {"acme/api": "1.0.0"}}),
        )
        literals = pool.what_provides("acme/api")
        result = Policy().select_preferred_packages(pool, literals, "acme/api")
        assert [pool.package_by_id(i).name for i in result] == ["acme/impl", "other/impl"]

    def test_versions_sorted_within_group(self, pool_of):
        pool = pool_of(("a/a", "1.0.0"), ("a/a", "1.2.0"), ("a/a", "1.1.0"))
        literals = pool.what_provides("a/a")
        result = Policy(prefer_lowest=True).select_preferred_packages(pool, literals, "a/a")
        assert [pool.package_by_id(i).pretty_version for i in result] == ["1.0.0", "1.1.0", "1.2.0"]
