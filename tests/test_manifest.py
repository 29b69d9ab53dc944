"""Tests for manifest loading and request assembly."""

import pytest

from package_resolver.exceptions import ConstraintParseError, InputInvariantViolation
from package_resolver.models.request import RootAlias
from package_resolver.parsers.manifest import Manifest, build_request, extract_aliases, extract_stability_flags

MANIFEST = """{
    "name": "acme/app",
    "require": {
        "python": ">=3.8",
        "acme/http": "^1.0"
    },
    "require-dev": {
        "acme/test-kit": "2.0.0-beta1"
    },
    "minimum-stability": "stable",
    "prefer-stable": true,
    "config": {"platform": {"python": "3.11.0"}}
}
"""


class TestManifest:
    def test_from_string(self):
        manifest = Manifest.from_string(MANIFEST)
        assert manifest.name == "acme/app"
        assert manifest.require == {"python": ">=3.8", "acme/http": "^1.0"}
        assert manifest.require_dev == {"acme/test-kit": "2.0.0-beta1"}
        assert manifest.prefer_stable is True
        assert manifest.platform_overrides == {"python": "3.11.0"}
        assert manifest.repositories == []
        assert manifest.content == MANIFEST

    def test_defaults(self):
        manifest = Manifest.from_string("{}")
        assert manifest.name == "__root__"
        assert manifest.minimum_stability == "stable"
        assert manifest.prefer_stable is False

    def test_from_file(self, tmp_path):
        path = tmp_path / "project.json"
        path.write_text(MANIFEST, encoding="utf-8")
        manifest = Manifest.from_file(path)
        assert manifest.path == path
        assert manifest.require["acme/http"] == "^1.0"

    def test_missing_file(self, tmp_path):
        with pytest.raises(InputInvariantViolation, match="does not exist"):
            Manifest.from_file(tmp_path / "project.json")

    @pytest.mark.parametrize("content", ["{", "[]"])
    def test_invalid_document(self, content):
        with pytest.raises(InputInvariantViolation):
            Manifest.from_string(content)


class TestStabilityFlags:
    @pytest.mark.parametrize(
        "constraint, expected",
        [
            ("1.0.0@beta", "beta"),
            ("^1.0@RC", "rc"),
            ("dev-main", "dev"),
            ("2.0.0-RC1", "rc"),
            ("1.0.0-alpha2 || ^2.0", "alpha"),
            ("^1.0", None),
            (">=1.0 <2.0", None),
        ],
    )
    def test_flag_from_constraint(self, constraint, expected):
        flags = extract_stability_flags({"Acme/Pkg": constraint}, "stable")
        assert flags.get("acme/pkg") == expected

    def test_implicit_flag_not_below_minimum_stability(self):
        assert extract_stability_flags({"a/a": "dev-main"}, "dev") == {}
        assert extract_stability_flags({"a/a": "1.0.0-beta1"}, "beta") == {}
        assert extract_stability_flags({"a/a": "1.0.0-alpha1"}, "beta") == {"a/a": "alpha"}

    def test_explicit_flag_wins_even_above_minimum(self):
        assert extract_stability_flags({"a/a": "^1.0@stable"}, "dev") == {"a/a": "stable"}


class TestAliases:
    def test_inline_alias(self):
        aliases = extract_aliases({"Acme/Pkg": "dev-main as 1.0.x-dev", "b/b": "^1.0"})
        assert aliases == [RootAlias("acme/pkg", "dev-main", "1.0.x-dev", "1.0.9999999.9999999-dev")]

    def test_invalid_alias(self):
        with pytest.raises(ConstraintParseError):
            extract_aliases({"a/a": "1.0.0 as ,"})


class TestBuildRequest:
    def test_requirements_in_declaration_order(self):
        request = build_request(Manifest.from_string(MANIFEST), platform={"python": "3.11.0"})
        assert [(req.name, req.pretty_constraint, req.dev) for req in request.requires] == [
            ("python", ">=3.8", False),
            ("acme/http", "^1.0", False),
            ("acme/test-kit", "2.0.0-beta1", True),
        ]
        assert request.stability_flags == {"acme/test-kit": "beta"}
        assert request.prefer_stable is True
        assert request.platform == {"python": "3.11.0"}
        assert request.platform_overrides == {"python": "3.11.0"}

    def test_without_dev(self):
        request = build_request(Manifest.from_string(MANIFEST), include_dev=False)
        assert [req.name for req in request.active_requires()] == ["python", "acme/http"]
        assert request.stability_flags == {}

    def test_ignore_platform_reqs(self):
        request = build_request(Manifest.from_string(MANIFEST), ignore_platform_reqs=True)
        assert "python" not in [req.name for req in request.requires]
        assert request.ignore_platform_reqs is True

    def test_locked_and_updatable(self, package):
        locked = [package("acme/http", "1.0.0"), package("acme/log", "1.0.0")]
        request = build_request(Manifest.from_string(MANIFEST), locked=locked, update=["ACME/LOG"])
        assert set(request.fixed) == {"acme/http", "acme/log"}
        assert request.is_updatable("acme/log")
        assert [str(pkg) for pkg in request.locked_fixed()] == ["acme/http 1.0.0"]

    def test_invalid_constraint(self):
        manifest = Manifest.from_string('{"require": {"a/a": "not a constraint"}}')
        with pytest.raises(ConstraintParseError):
            build_request(manifest)
