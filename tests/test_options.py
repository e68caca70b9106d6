# tests/test_options.py
"""
Tests for run configuration and its argparse integration.
"""

import argparse

import pytest

from bindweave.abi import DEFAULT_TARGET
from bindweave.errors import ConfigError
from bindweave.options import (
    BindgenOptions,
    DenyPolicy,
    EnumStyle,
    InstantiationPolicy,
    MaterializeAll,
    MaterializeMatching,
    OpaqueInstantiations,
    PaddingPolicy,
    add_option_arguments,
    options_from_args,
    parse_instantiation_policy,
)


def _parse(argv):
    parser = argparse.ArgumentParser()
    add_option_arguments(parser)
    return parser.parse_args(argv)


class TestDefaults:

    def test_defaults(self):
        options = BindgenOptions()
        assert options.target == DEFAULT_TARGET
        assert options.deny_policy is DenyPolicy.OPAQUE
        assert options.enum_style is EnumStyle.CONSTS
        assert options.padding is PaddingPolicy.ALWAYS
        assert isinstance(options.instantiation_policy, OpaqueInstantiations)
        assert options.flatten_namespaces
        assert not options.has_allowlist

    def test_lists_become_tuples(self):
        options = BindgenOptions(allowlist_types=["A"])
        assert options.allowlist_types == ("A",)
        assert options.has_allowlist


class TestValidate:

    def test_unknown_target(self):
        with pytest.raises(ConfigError) as info:
            BindgenOptions(target="pdp11-unknown-none").validate()
        assert "known targets" in info.value.error_message.hint

    def test_bad_pattern(self):
        with pytest.raises(ConfigError):
            BindgenOptions(blocklist_items=("[",)).validate()

    def test_unknown_language(self):
        with pytest.raises(ConfigError):
            BindgenOptions(language="fortran").validate()

    def test_validate_returns_self(self):
        options = BindgenOptions()
        assert options.validate() is options


class TestMerged:

    def test_extend_and_replace(self):
        base = BindgenOptions(clang_args=("-I", "a"), target="i686-unknown-linux-gnu")
        merged = base.merged({"clang_args": ["-DX"], "target": DEFAULT_TARGET})
        assert merged.clang_args == ("-I", "a", "-DX")
        assert merged.target == DEFAULT_TARGET

    def test_unknown_key(self):
        with pytest.raises(ConfigError):
            BindgenOptions().merged({"colour": True})


class TestInstantiationPolicy:

    def test_parse(self):
        assert parse_instantiation_policy("opaque") == OpaqueInstantiations()
        assert parse_instantiation_policy("all") == MaterializeAll()
        assert parse_instantiation_policy("matching:Box,Vec<int>") == MaterializeMatching(
            ("Box", "Vec<int>"))

    @pytest.mark.parametrize("text", ["some", "matching:", "matching:("])
    def test_parse_errors(self, text):
        with pytest.raises(ConfigError):
            parse_instantiation_policy(text)

    def test_matching(self):
        policy = MaterializeMatching(("Box",))
        assert policy.selects("Box", "Box<int>")
        assert not policy.selects("Vec", "Vec<int>")
        spelled = MaterializeMatching(("Vec<int>",))
        assert spelled.selects("Vec", "Vec< int >")
        assert not spelled.selects("Vec", "Vec<long>")

    def test_base_policy_is_abstract(self):
        with pytest.raises(TypeError):
            InstantiationPolicy()


class TestFromArgs:

    def test_defaults(self):
        assert options_from_args(_parse([])) == BindgenOptions()

    def test_flags(self):
        ns = _parse([
            "--allowlist-function", "api_.*",
            "--blocklist-type", "Secret",
            "--deny-policy", "force-include",
            "--enum-style", "newtype",
            "--padding", "when-required",
            "--instantiate", "all",
            "--no-flatten-namespaces",
            "--no-layout-tests",
        ])
        options = options_from_args(ns, ["-I", "include"])
        assert options.allowlist_functions == ("api_.*",)
        assert options.blocklist_types == ("Secret",)
        assert options.deny_policy is DenyPolicy.FORCE_INCLUDE
        assert options.enum_style is EnumStyle.NEWTYPE
        assert options.padding is PaddingPolicy.WHEN_REQUIRED
        assert options.instantiation_policy == MaterializeAll()
        assert not options.flatten_namespaces
        assert not options.layout_tests
        assert options.clang_args == ("-I", "include")

    def test_invalid_target(self):
        with pytest.raises(ConfigError):
            options_from_args(_parse(["--target", "nope"]))
