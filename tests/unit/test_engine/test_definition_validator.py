"""Tests for design-time definition checks"""
import pytest

from flowengine.domain.errors import WorkflowValidationError
from flowengine.domain.models import WorkflowDefinition
from flowengine.engine.definition_validator import DefinitionValidator


def definition(nodes, root="start", **extra):
    return WorkflowDefinition.model_validate({"id": "WF-test", "rootNodeId": root, "nodes": nodes, **extra})


def codes(issues):
    return sorted(i.code for i in issues)


@pytest.fixture
def validator():
    return DefinitionValidator()


def test_valid_definition_has_no_issues(validator, manager_review_workflow):
    assert validator.validate(manager_review_workflow) == []


def test_empty_definition(validator):
    assert codes(validator.validate(definition([]))) == ["NO_NODES"]


def test_missing_root(validator):
    issues = validator.validate(definition(
        [{"id": "a", "type": "action", "config": {"action": "AUTO_APPROVE"}}],
        root="nope"
    ))
    assert codes(issues) == ["MISSING_ROOT"]


def test_dangling_reference_and_unreachable_node(validator):
    issues = validator.validate(definition([
        {"id": "start", "type": "action", "config": {"action": "AUTO_APPROVE"}, "next": "ghost"},
        {"id": "island", "type": "action", "config": {"action": "AUTO_APPROVE"}},
    ]))
    assert codes(issues) == ["MISSING_NODE", "UNREACHABLE_NODE"]
    assert {i.node_id for i in issues} == {"start", "island"}


def test_decision_checks(validator):
    issues = validator.validate(definition([
        {"id": "start", "type": "decision", "config": {"condition": "amount >", "trueNodeId": "end"}},
        {"id": "end", "type": "action", "config": {"action": "AUTO_APPROVE"}},
    ]))
    assert codes(issues) == ["INVALID_CONDITION", "MISSING_BRANCH"]


@pytest.mark.parametrize("node,code", [
    ({"type": "action", "config": {"action": "SELF_DESTRUCT"}}, "UNKNOWN_ACTION"),
    ({"type": "action", "config": {"action": "update_status"}}, "MISSING_STATUS"),
    ({"type": "assignment", "config": {"assignTo": "team:ops"}}, "INVALID_TARGET"),
    ({"type": "assignment", "config": {"assignTo": "dynamic:requestor_manager"}}, "UNRESOLVABLE_TARGET"),
    ({"type": "notification", "config": {"channel": "fax", "sendTo": "U-1"}}, "UNKNOWN_CHANNEL"),
    ({"type": "delay", "config": {"delayType": "fortnights", "delayValue": 1}}, "UNKNOWN_DELAY_TYPE"),
    ({"type": "delay", "config": {"delayType": "until"}}, "MISSING_DELAY_UNTIL"),
    ({"type": "delay", "config": {"delayType": "until", "delayUntil": "soon"}}, "INVALID_DELAY_UNTIL"),
    ({"type": "delay", "config": {"delayType": "days"}}, "MISSING_DELAY_VALUE"),
])
def test_config_checks(validator, node, code):
    issues = validator.validate(definition([{"id": "start", **node}]))
    assert codes(issues) == [code]


def test_invalid_trigger_condition(validator):
    issues = validator.validate(definition(
        [{"id": "start", "type": "action", "config": {"action": "AUTO_APPROVE"}}],
        triggerConditions="requestData.category == "
    ))
    assert codes(issues) == ["INVALID_TRIGGER_CONDITION"]


def test_validate_or_raise(validator):
    with pytest.raises(WorkflowValidationError) as exc_info:
        validator.validate_or_raise(definition([]))
    assert exc_info.value.details["issues"][0]["code"] == "NO_NODES"


def test_node_keys_must_match_ids():
    with pytest.raises(ValueError):
        WorkflowDefinition.model_validate({
            "id": "WF-test",
            "rootNodeId": "a",
            "nodes": {"a": {"id": "b", "type": "action", "config": {"action": "AUTO_APPROVE"}}}
        })


def test_node_types_are_case_insensitive():
    parsed = definition([{"id": "start", "type": "Action", "config": {"action": "AUTO_APPROVE"}}])
    assert parsed.nodes["start"].type == "action"


def test_unresolvable_dynamic_target_is_only_a_warning(validator):
    manager = definition([{"id": "start", "type": "assignment", "config": {"assignTo": "dynamic:requestor_manager"}}])

    [issue] = validator.validate(manager)
    assert issue.severity == "warning"
    assert issue.is_error is False

    assert validator.validate_or_raise(manager) == [issue]


def test_validate_or_raise_reports_warnings_alongside_errors(validator):
    with pytest.raises(WorkflowValidationError) as exc_info:
        validator.validate_or_raise(definition([
            {"id": "start", "type": "assignment", "config": {"assignTo": "dynamic:requestor_manager"}, "next": "ghost"},
        ]))
    issues = exc_info.value.details["issues"]
    assert sorted((i["code"], i["severity"]) for i in issues) == [
        ("MISSING_NODE", "error"), ("UNRESOLVABLE_TARGET", "warning")
    ]
