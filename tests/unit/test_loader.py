"""
Unit tests for compiling policy documents.

Tests cover:
- Building a policy type from a document
- Fact-backed conditions and their defaults
- Rules, global prevents and overrides from documents
- Error wrapping for invalid documents
"""

import pytest

from tollgate.errors import PolicyDocumentError, RuleSyntaxError
from tollgate.policy import Policy, build_policy, load_policy
from tollgate.schema import Scope, load_policy_document_from_string


def compile_document(content: str) -> type[Policy]:
    return build_policy(load_policy_document_from_string(content))


class TestBuildPolicy:
    """Tests for build_policy."""

    def test_policy_type(self, vehicle_policy_yaml: str) -> None:
        policy_type = compile_document(vehicle_policy_yaml)
        assert issubclass(policy_type, Policy)
        assert policy_type.__name__ == "VehicleDocumentPolicy"
        assert policy_type.configuration().ability_names == ["drive_vehicle", "sell_vehicle"]

    def test_condition_declarations(self, vehicle_policy_yaml: str) -> None:
        conditions = compile_document(vehicle_policy_yaml).configuration().conditions
        assert conditions["owns"].score == 0
        assert conditions["intoxicated"].scope is Scope.USER
        assert conditions["old_enough_to_drive"].score is None

    def test_decisions_follow_facts(self, vehicle_policy_yaml: str) -> None:
        policy_type = compile_document(vehicle_policy_yaml)
        facts = {"owns": True, "old_enough_to_drive": True, "has_driving_license": True}

        assert policy_type(None, facts).allowed("drive_vehicle", "sell_vehicle")
        assert policy_type(None, {**facts, "intoxicated": True}).disallowed("drive_vehicle")
        assert policy_type(None, {**facts, "owns": False}).disallowed("drive_vehicle")

    def test_missing_facts_use_default(self) -> None:
        policy_type = compile_document("""
conditions:
  - name: verified
    default: true
rules:
  - when: verified
    enable: [post]
""")
        assert policy_type(None, {}).allowed("post")
        assert policy_type(None, {"verified": False}).disallowed("post")

    def test_non_mapping_subject_uses_defaults(self) -> None:
        policy_type = compile_document("""
conditions:
  - name: verified
rules:
  - when: ~verified
    enable: [sign_up]
""")
        assert policy_type(None, "not facts").allowed("sign_up")

    def test_compound_rules_and_prevent_all(self) -> None:
        policy_type = compile_document("""
conditions:
  - name: member
  - name: admin
  - name: suspended
rules:
  - when: any?(member, admin)
    enable: [read]
  - when: all?(member, ~admin)
    prevent: [delete]
  - when: admin
    enable: [delete]
  - when: suspended
    prevent_all: true
""")
        assert policy_type(None, {"member": True}).allowed("read")
        assert policy_type(None, {"admin": True}).allowed("read", "delete")
        assert policy_type(None, {"member": True, "admin": True}).allowed("delete")
        assert policy_type(None, {"admin": True, "suspended": True}).disallowed("read", "delete")
        assert policy_type(None, {"suspended": True}).banned()

    def test_overrides(self) -> None:
        policy_type = compile_document("""
overrides: [delete]
""")
        assert policy_type.configuration().overrides == {"delete"}

    def test_base_type(self) -> None:
        class Base(Policy):
            rules = []

        policy_type = build_policy(load_policy_document_from_string("name: Child"), base=Base)
        assert issubclass(policy_type, Base)

    def test_same_name_documents_do_not_share_cache(self) -> None:
        content = """
conditions:
  - name: flag
    scope: global
rules:
  - when: flag
    enable: [go]
"""
        first, second = compile_document(content), compile_document(content)
        cache: dict = {}
        facts = {"flag": True}
        assert first(None, facts, cache=cache).allowed("go")
        assert second(None, {"flag": False}, cache=cache).disallowed("go")

    def test_rule_syntax_error(self) -> None:
        with pytest.raises(RuleSyntaxError):
            compile_document("""
rules:
  - when: all?(a,
    enable: [x]
""")


class TestLoadPolicy:
    """Tests for load_policy error handling."""

    def test_load(self, vehicle_policy_file) -> None:
        assert load_policy(vehicle_policy_file).__name__ == "VehicleDocumentPolicy"

    def test_invalid_schema(self, tmp_path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("rules:\n  - when: owns\n")
        with pytest.raises(PolicyDocumentError) as exc_info:
            load_policy(path)
        assert exc_info.value.context["path"] == str(path)

    def test_invalid_yaml(self, tmp_path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("rules: [unclosed\n")
        with pytest.raises(PolicyDocumentError):
            load_policy(path)

    def test_invalid_rule_text(self, tmp_path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("rules:\n  - when: 'a $ b'\n    enable: [x]\n")
        with pytest.raises(PolicyDocumentError) as exc_info:
            load_policy(path)
        assert exc_info.value.suggestion

    def test_missing_file(self, tmp_path) -> None:
        with pytest.raises(FileNotFoundError):
            load_policy(tmp_path / "missing.yaml")
