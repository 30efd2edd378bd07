"""Tests for the node processors"""
from datetime import timedelta

import httpx
import pytest

from flowengine.domain.enums import AssignmentTargetType, TaskStatus
from flowengine.domain.errors import (
    ActionExecutionError, AssignmentResolutionError, DefinitionError, IntegrationError,
    NotificationSendError
)
from flowengine.domain.models import (
    ActionNode, AssignmentNode, DecisionNode, DelayNode, Execution, IntegrationNode, NotificationNode
)
from flowengine.engine.processors import (
    ActionProcessor, AssignmentProcessor, DecisionProcessor, DelayProcessor,
    IntegrationProcessor, NotificationProcessor, build_registry
)
from flowengine.engine.processors.assignment import parse_target
from flowengine.repositories.memory import InMemoryTaskRepository

from tests.conftest import START


@pytest.fixture
def execution():
    return Execution(
        execution_id="WFX-test",
        workflow_id="WF-test",
        created_at=START,
        last_activity_at=START
    )


def node(cls, **data):
    return cls.model_validate(data)


class TestDecisionProcessor:

    def test_takes_true_branch(self, execution):
        decision = node(DecisionNode, id="d", type="decision", config={
            "condition": "amount < 500", "trueNodeId": "yes", "falseNodeId": "no"
        })
        result = DecisionProcessor().process(decision, {"amount": 100}, execution)

        assert result.next_node_id == "yes"
        assert result.should_pause is False
        assert result.details == {"condition": "amount < 500", "result": True}

    def test_takes_false_branch(self, execution):
        decision = node(DecisionNode, id="d", type="decision", config={
            "condition": "amount < 500", "trueNodeId": "yes", "falseNodeId": "no"
        })
        assert DecisionProcessor().process(decision, {"amount": 900}, execution).next_node_id == "no"

    def test_missing_selected_branch_is_definition_error(self, execution):
        decision = node(DecisionNode, id="d", type="decision", config={
            "condition": "amount < 500", "trueNodeId": "yes"
        })
        with pytest.raises(DefinitionError):
            DecisionProcessor().process(decision, {"amount": 900}, execution)


class TestActionProcessor:

    def test_dispatches_and_returns_context_updates(self, operations, execution):
        action = node(ActionNode, id="a", type="action", config={"action": "auto_reject", "reason": "Too big"}, next="n")
        result = ActionProcessor(operations).process(action, {"requestId": "REQ-1"}, execution)

        assert operations.calls == [("reject_request", "REQ-1", "Too big")]
        assert result.next_node_id == "n"
        assert result.context_updates == {"rejectionReason": "Too big"}

    def test_create_pr_passes_vendor(self, operations, execution):
        action = node(ActionNode, id="a", type="action", config={"action": "CREATE_PR", "vendorId": "V-9"})
        result = ActionProcessor(operations).process(action, {"requestId": "REQ-1"}, execution)

        assert operations.calls == [("create_purchase_requisition", "REQ-1", "V-9")]
        assert result.context_updates["purchaseRequisitionId"] == "PR-1"

    def test_requires_request_id(self, operations, execution):
        action = node(ActionNode, id="a", type="action", config={"action": "AUTO_APPROVE"})
        with pytest.raises(ActionExecutionError):
            ActionProcessor(operations).process(action, {}, execution)
        assert operations.calls == []

    def test_unknown_action(self, operations, execution):
        action = node(ActionNode, id="a", type="action", config={"action": "LAUNCH_ROCKET"})
        with pytest.raises(DefinitionError):
            ActionProcessor(operations).process(action, {"requestId": "REQ-1"}, execution)

    def test_update_status_needs_status(self, operations, execution):
        action = node(ActionNode, id="a", type="action", config={"action": "UPDATE_STATUS"})
        with pytest.raises(DefinitionError):
            ActionProcessor(operations).process(action, {"requestId": "REQ-1"}, execution)

    def test_unexpected_failure_is_wrapped(self, operations, execution):
        operations.fail_with = RuntimeError("connection reset")
        action = node(ActionNode, id="a", type="action", config={"action": "FULFILL_REQUEST"})

        with pytest.raises(ActionExecutionError) as exc_info:
            ActionProcessor(operations).process(action, {"requestId": "REQ-1"}, execution)
        assert "connection reset" in exc_info.value.message

    def test_insufficient_stock_propagates(self, operations, execution):
        action = node(ActionNode, id="a", type="action", config={"action": "RESERVE_STOCK"})
        with pytest.raises(ActionExecutionError, match="Insufficient stock"):
            ActionProcessor(operations).process(action, {"requestId": "REQ-no-stock"}, execution)


class TestParseTarget:

    @pytest.mark.parametrize("target,expected", [
        ("user:U-1", (AssignmentTargetType.USER, "U-1")),
        ("role:site-manager", (AssignmentTargetType.ROLE, "site-manager")),
        ("ROLE:Regional Manager", (AssignmentTargetType.ROLE, "Regional Manager")),
        ("dynamic:requestor", (AssignmentTargetType.DYNAMIC, "requestor")),
    ])
    def test_valid(self, target, expected):
        assert parse_target(target) == expected

    @pytest.mark.parametrize("target", ["", "U-1", "group:ops", "user:"])
    def test_invalid(self, target):
        with pytest.raises(DefinitionError):
            parse_target(target)


class TestAssignmentProcessor:

    @pytest.fixture
    def tasks(self):
        return InMemoryTaskRepository()

    def _assignment(self, assign_to, **config):
        return node(AssignmentNode, id="assign", type="assignment", next="after", config={
            "assignTo": assign_to, **config
        })

    def test_creates_task_and_pauses_until_deadline(self, tasks, directory, clock, execution):
        processor = AssignmentProcessor(tasks, directory, clock)
        result = processor.process(
            self._assignment("role:site-manager", slaHours=24, allowedActions=["approve"], escalateTo="role:director"),
            {},
            execution
        )

        assert result.should_pause is True
        assert result.next_node_id == "after"
        assert result.resume_at == START + timedelta(hours=24)

        [task] = tasks.get_pending_tasks("WFX-test")
        assert task.node_id == "assign"
        assert task.assign_to == "role:site-manager"
        assert task.assignee_id is None
        assert task.sla_deadline == START + timedelta(hours=24)
        assert task.escalate_to == "role:director"
        assert task.allowed_actions == ["approve"]
        assert result.details["task_id"] == task.task_id

    def test_reprocessing_reuses_pending_task(self, tasks, directory, clock, execution):
        processor = AssignmentProcessor(tasks, directory, clock)
        first = processor.process(self._assignment("role:ops"), {}, execution)
        second = processor.process(self._assignment("role:ops"), {}, execution)

        assert first.details["task_id"] == second.details["task_id"]
        assert len(tasks.get_tasks_for_execution("WFX-test")) == 1

    def test_no_sla_means_no_deadline(self, tasks, directory, clock, execution):
        result = AssignmentProcessor(tasks, directory, clock).process(self._assignment("role:ops"), {}, execution)
        assert result.resume_at is None

    def test_resolves_requestor(self, tasks, directory, clock, execution):
        result = AssignmentProcessor(tasks, directory, clock).process(
            self._assignment("dynamic:requestor"), {"requestData": {"requestorId": "U-7"}}, execution
        )
        assert result.details["assignee_id"] == "U-7"

    def test_resolves_site_manager(self, tasks, directory, clock, execution):
        directory.roles[("Site Manager", "S-1")] = "U-mgr"
        result = AssignmentProcessor(tasks, directory, clock).process(
            self._assignment("dynamic:site_manager"), {"requestData": {"siteId": "S-1"}}, execution
        )
        assert result.details["assignee_id"] == "U-mgr"

    def test_unresolved_dynamic_assignee_is_not_fatal(self, tasks, directory, clock, execution):
        result = AssignmentProcessor(tasks, directory, clock).process(
            self._assignment("dynamic:requestor_manager"), {}, execution
        )
        assert result.should_pause is True
        assert result.details["assignee_id"] is None
        assert "assignment_warning" in result.details
        assert tasks.get_pending_tasks("WFX-test")[0].status == TaskStatus.PENDING

    def test_unknown_user_raises_from_resolve(self, tasks, directory, clock):
        processor = AssignmentProcessor(tasks, directory, clock)
        with pytest.raises(AssignmentResolutionError):
            processor.resolve_assignee(AssignmentTargetType.USER, "U-ghost", {})

        directory.add_user("U-real")
        assert processor.resolve_assignee(AssignmentTargetType.USER, "U-real", {}) == "U-real"

    def test_invalid_target_is_definition_error(self, tasks, directory, clock, execution):
        with pytest.raises(DefinitionError):
            AssignmentProcessor(tasks, directory, clock).process(self._assignment("nobody"), {}, execution)


class TestNotificationProcessor:

    def _notification(self, **config):
        return node(NotificationNode, id="notify", type="notification", next="done", config=config)

    def test_email_to_requestor_uses_their_address(self, sender, directory, execution):
        directory.add_user("U-req", email="req@example.com")
        context = {"requestData": {"requestId": "REQ-1", "requestorId": "U-req"}}

        result = NotificationProcessor(sender, directory).process(
            self._notification(channel="email", sendTo="dynamic:requestor", template="request_approved"),
            context,
            execution
        )

        [message] = sender.sent
        assert message["channel"] == "email"
        assert message["recipient"] == "req@example.com"
        assert message["subject"] == "Request REQ-1 approved"
        assert message["metadata"]["execution_id"] == "WFX-test"
        assert result.next_node_id == "done"
        assert result.details["notification_id"] == "NTF-1"

    def test_role_recipient_resolved_at_site(self, sender, directory, execution):
        directory.roles[("Procurement", "S-1")] = "U-buyer"
        NotificationProcessor(sender, directory).process(
            self._notification(channel="in_app", sendTo="role:Procurement", customMessage="Hello"),
            {"requestData": {"siteId": "S-1"}},
            execution
        )
        assert sender.sent[0]["recipient"] == "U-buyer"
        assert sender.sent[0]["body"] == "Hello"

    def test_raw_address_passes_through(self, sender, directory, execution):
        NotificationProcessor(sender, directory).process(
            self._notification(channel="slack", sendTo="#ops-alerts"), {}, execution
        )
        assert sender.sent[0]["recipient"] == "#ops-alerts"

    def test_unresolved_recipient_fails(self, sender, directory, execution):
        with pytest.raises(NotificationSendError):
            NotificationProcessor(sender, directory).process(
                self._notification(channel="email", sendTo="dynamic:requestor"), {}, execution
            )
        assert sender.sent == []

    def test_unknown_channel(self, sender, directory, execution):
        with pytest.raises(DefinitionError):
            NotificationProcessor(sender, directory).process(
                self._notification(channel="pigeon", sendTo="U-1"), {}, execution
            )


class TestDelayProcessor:

    def _delay(self, **config):
        return node(DelayNode, id="wait", type="delay", next="after", config=config)

    @pytest.mark.parametrize("config,expected", [
        ({"delayType": "hours", "delayValue": 2}, START + timedelta(hours=2)),
        ({"delayType": "days", "delayValue": 1.5}, START + timedelta(days=1.5)),
        ({"delayType": "HOURS", "delayValue": 0}, START),
        ({"delayType": "until", "delayUntil": "2024-03-05T12:00:00Z"}, START + timedelta(days=4, hours=3)),
    ])
    def test_computes_resume_at(self, clock, execution, config, expected):
        result = DelayProcessor(clock).process(self._delay(**config), {}, execution)
        assert result.should_pause is True
        assert result.resume_at == expected
        assert result.next_node_id == "after"

    @pytest.mark.parametrize("config", [
        {"delayType": "weeks", "delayValue": 1},
        {"delayType": "hours"},
        {"delayType": "until"},
        {"delayType": "until", "delayUntil": "next tuesday"},
    ])
    def test_invalid_config(self, clock, execution, config):
        with pytest.raises(DefinitionError):
            DelayProcessor(clock).process(self._delay(**config), {}, execution)


class TestIntegrationProcessor:

    def _integration(self, **config):
        return node(IntegrationNode, id="call", type="integration", next="after", config={
            "url": "https://erp.example.com/api/budget", "responseKey": "budget", **config
        })

    def test_stores_json_response(self, execution):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["content_type"] = request.headers["content-type"]
            seen["token"] = request.headers.get("x-api-key")
            seen["body"] = request.content
            return httpx.Response(200, json={"remaining": 4200})

        processor = IntegrationProcessor(httpx.MockTransport(handler))
        result = processor.process(
            self._integration(method="post", headers={"X-Api-Key": "k"}, body={"siteId": "S-1"}),
            {},
            execution
        )

        assert result.context_updates == {"budget": {"remaining": 4200}}
        assert result.next_node_id == "after"
        assert seen["method"] == "POST"
        assert seen["content_type"] == "application/json"
        assert seen["token"] == "k"
        assert b"S-1" in seen["body"]

    def test_non_2xx_fails(self, execution):
        processor = IntegrationProcessor(httpx.MockTransport(lambda request: httpx.Response(503)))
        with pytest.raises(IntegrationError) as exc_info:
            processor.process(self._integration(), {}, execution)
        assert exc_info.value.details["status_code"] == 503

    def test_timeout_fails(self, execution):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        processor = IntegrationProcessor(httpx.MockTransport(handler))
        with pytest.raises(IntegrationError, match="timed out after 250ms"):
            processor.process(self._integration(timeoutMs=250), {}, execution)

    def test_trickling_body_hits_overall_deadline(self, execution):
        now = [0.0]
        chunks_sent = []

        def trickle():
            for _ in range(100):
                now[0] += 0.03
                chunks_sent.append(1)
                yield b" "

        processor = IntegrationProcessor(
            httpx.MockTransport(lambda request: httpx.Response(200, content=trickle())),
            monotonic=lambda: now[0]
        )
        with pytest.raises(IntegrationError, match="timed out after 50ms"):
            processor.process(self._integration(timeoutMs=50), {}, execution)
        assert len(chunks_sent) < 5

    def test_non_json_body_fails(self, execution):
        processor = IntegrationProcessor(httpx.MockTransport(lambda request: httpx.Response(200, text="<html>")))
        with pytest.raises(IntegrationError):
            processor.process(self._integration(), {}, execution)


class TestRegistry:

    def test_unknown_type_is_definition_error(self, operations, directory, sender):
        registry = build_registry(InMemoryTaskRepository(), operations, directory, sender)
        with pytest.raises(DefinitionError):
            registry.get("teleport")

    def test_one_processor_per_type(self, operations, directory, sender):
        registry = build_registry(InMemoryTaskRepository(), operations, directory, sender)
        assert isinstance(registry.get("decision"), DecisionProcessor)
        assert isinstance(registry.get("integration"), IntegrationProcessor)
