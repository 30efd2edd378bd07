"""Tests for the workflow engine lifecycle"""
from datetime import timedelta

import httpx
import pytest

from flowengine.domain.enums import ExecutionStatus, HistoryEventType, NodeType, TaskStatus
from flowengine.domain.errors import (
    ExecutionLockedError, ExecutionNotFoundError, InvalidStateError, TaskNotFoundError,
    ValidationError, WorkflowNotFoundError
)
from flowengine.domain.models import NodeResult
from flowengine.engine.processors import ActionProcessor, NodeProcessor, NodeProcessorRegistry
from flowengine.engine.sla_sweep import SlaSweep

from tests.conftest import START


def visited_nodes(engine, execution_id):
    return [
        h.node_id for h in engine.get_execution_history(execution_id)
        if h.event_type == HistoryEventType.NODE_PROCESSED
    ]


def event_types(engine, execution_id):
    return [h.event_type for h in engine.get_execution_history(execution_id)]


class TestStartExecution:

    def test_small_request_is_auto_approved(self, engine, operations, auto_approve_workflow, request_context):
        execution_id = engine.start_execution("WF-auto-approve", request_context)

        execution = engine.get_execution(execution_id)
        assert execution.status == ExecutionStatus.COMPLETED
        assert execution.current_node_id == "approve"
        assert execution.steps_taken == 2
        assert operations.calls == [("approve_request", "REQ-1", None)]

        history = engine.get_execution_history(execution_id)
        assert [h.event_type for h in history] == [
            HistoryEventType.EXECUTION_STARTED,
            HistoryEventType.NODE_PROCESSED,
            HistoryEventType.NODE_PROCESSED,
            HistoryEventType.EXECUTION_COMPLETED,
        ]
        assert history[1].node_id == "check"
        assert history[1].details["result"] is True
        assert history[1].details["next_node_id"] == "approve"
        assert history[2].node_id == "approve"
        assert history[2].details["action"] == "AUTO_APPROVE"

    def test_same_input_visits_same_nodes(self, engine, auto_approve_workflow, request_context):
        first = engine.start_execution("WF-auto-approve", request_context)
        second = engine.start_execution("WF-auto-approve", request_context)

        assert first != second
        assert visited_nodes(engine, first) == visited_nodes(engine, second) == ["check", "approve"]

    def test_trigger_context_is_copied(self, engine, auto_approve_workflow, request_context):
        execution_id = engine.start_execution("WF-auto-approve", request_context)
        request_context["requestData"]["totalValue"] = 99999

        assert engine.get_execution(execution_id).context["requestData"]["totalValue"] == 120

    def test_unknown_workflow(self, engine):
        with pytest.raises(WorkflowNotFoundError):
            engine.start_execution("WF-missing", {})

    def test_inactive_workflow(self, engine, save_definition):
        save_definition({
            "id": "WF-off",
            "rootNodeId": "only",
            "isActive": False,
            "nodes": [{"id": "only", "type": "action", "config": {"action": "AUTO_APPROVE"}}]
        })
        with pytest.raises(InvalidStateError):
            engine.start_execution("WF-off", {"requestId": "REQ-1"})


class TestPauseAndTasks:

    def test_assignment_pauses_with_one_task(self, engine, manager_review_workflow, request_context):
        execution_id = engine.start_execution("WF-manager-review", request_context)

        status = engine.get_execution_status(execution_id)
        assert status.status == ExecutionStatus.PAUSED
        assert status.current_node_id == "assign"
        assert status.resume_at == START + timedelta(hours=24)

        [task] = engine.get_tasks_for_execution(execution_id)
        assert task.assign_to == "role:site-manager"
        assert task.status == TaskStatus.PENDING
        assert task.sla_deadline == START + timedelta(hours=24)
        assert event_types(engine, execution_id)[-1] == HistoryEventType.EXECUTION_PAUSED

    def test_complete_task_resumes_with_user_action(self, engine, operations, manager_review_workflow, request_context):
        execution_id = engine.start_execution("WF-manager-review", request_context)
        [task] = engine.get_tasks_for_execution(execution_id)

        view = engine.complete_task(task.task_id, "U-mgr", "approve", notes="Looks fine")

        assert view.status == ExecutionStatus.COMPLETED
        assert view.context["lastUserAction"] == {
            "actorId": "U-mgr", "action": "approve", "notes": "Looks fine", "taskId": task.task_id
        }
        assert operations.calls == [("approve_request", "REQ-1", None)]
        assert visited_nodes(engine, execution_id) == ["assign", "decide", "approve"]

        completed = engine.get_task(task.task_id)
        assert completed.status == TaskStatus.COMPLETED
        assert completed.completed_by == "U-mgr"
        assert completed.action_taken == "approve"

    def test_reject_branch(self, engine, operations, manager_review_workflow, request_context):
        execution_id = engine.start_execution("WF-manager-review", request_context)
        [task] = engine.get_tasks_for_execution(execution_id)

        view = engine.complete_task(task.task_id, "U-mgr", "reject")

        assert view.status == ExecutionStatus.COMPLETED
        assert view.context["rejectionReason"] == "Declined by manager"
        assert operations.calls == [("reject_request", "REQ-1", "Declined by manager")]

    def test_disallowed_action(self, engine, manager_review_workflow, request_context):
        execution_id = engine.start_execution("WF-manager-review", request_context)
        [task] = engine.get_tasks_for_execution(execution_id)

        with pytest.raises(ValidationError):
            engine.complete_task(task.task_id, "U-mgr", "escalate")
        assert engine.get_execution_status(execution_id).status == ExecutionStatus.PAUSED

    def test_task_cannot_be_completed_twice(self, engine, manager_review_workflow, request_context):
        execution_id = engine.start_execution("WF-manager-review", request_context)
        [task] = engine.get_tasks_for_execution(execution_id)
        engine.complete_task(task.task_id, "U-mgr", "approve")

        with pytest.raises(InvalidStateError):
            engine.complete_task(task.task_id, "U-other", "reject")

    def test_unknown_task(self, engine):
        with pytest.raises(TaskNotFoundError):
            engine.complete_task("TSK-missing", "U-1", "approve")


class TestResume:

    def test_resume_merges_payload_and_closes_task(self, engine, manager_review_workflow, request_context):
        execution_id = engine.start_execution("WF-manager-review", request_context)
        [task] = engine.get_tasks_for_execution(execution_id)

        view = engine.resume_execution(execution_id, "U-mgr", {"lastUserAction": {"action": "approve"}})

        assert view.status == ExecutionStatus.COMPLETED
        assert engine.get_task(task.task_id).status == TaskStatus.COMPLETED
        resumed = [
            h for h in engine.get_execution_history(execution_id)
            if h.event_type == HistoryEventType.EXECUTION_RESUMED
        ]
        assert len(resumed) == 1
        assert resumed[0].details["payload_keys"] == ["lastUserAction"]

    def test_resume_of_finished_execution_is_a_no_op(self, engine, auto_approve_workflow, request_context):
        execution_id = engine.start_execution("WF-auto-approve", request_context)
        history_before = event_types(engine, execution_id)

        view = engine.resume_execution(execution_id, "U-1", {"extra": 1})

        assert view.status == ExecutionStatus.COMPLETED
        assert "extra" not in view.context
        assert event_types(engine, execution_id) == history_before

    def test_duplicate_resume_runs_once(self, engine, operations, manager_review_workflow, request_context):
        execution_id = engine.start_execution("WF-manager-review", request_context)
        payload = {"lastUserAction": {"action": "approve"}}

        engine.resume_execution(execution_id, "U-mgr", payload)
        engine.resume_execution(execution_id, "U-mgr", payload)

        assert operations.calls == [("approve_request", "REQ-1", None)]

    def test_resume_while_locked(self, engine, stores, manager_review_workflow, request_context):
        execution_id = engine.start_execution("WF-manager-review", request_context)
        assert stores["executions"].acquire_lock(execution_id, "other-worker", 60)

        with pytest.raises(ExecutionLockedError):
            engine.resume_execution(execution_id, "U-mgr", {})
        assert engine.get_execution_status(execution_id).status == ExecutionStatus.PAUSED

    def test_unknown_execution(self, engine):
        with pytest.raises(ExecutionNotFoundError):
            engine.resume_execution("WFX-missing")

    def test_pause_on_last_node_completes_on_resume(self, engine, save_definition):
        save_definition({
            "id": "WF-single-task",
            "rootNodeId": "review",
            "nodes": [{"id": "review", "type": "assignment", "config": {"assignTo": "role:ops"}}]
        })
        execution_id = engine.start_execution("WF-single-task", {})
        assert engine.get_execution_status(execution_id).status == ExecutionStatus.PAUSED

        view = engine.resume_execution(execution_id, "U-1", {"action": "done"})

        assert view.status == ExecutionStatus.COMPLETED
        [task] = engine.get_tasks_for_execution(execution_id)
        assert task.status == TaskStatus.COMPLETED
        assert task.action_taken == "done"


class TestDelay:

    def test_zero_delay_pauses_and_resumes_on_next_sweep(self, engine, sender, clock, save_definition):
        save_definition({
            "id": "WF-delay",
            "rootNodeId": "wait",
            "nodes": [
                {"id": "wait", "type": "delay", "config": {"delayType": "hours", "delayValue": 0}, "next": "tell"},
                {"id": "tell", "type": "notification", "config": {"channel": "slack", "sendTo": "#ops"}}
            ]
        })
        execution_id = engine.start_execution("WF-delay", {})

        status = engine.get_execution_status(execution_id)
        assert status.status == ExecutionStatus.PAUSED
        assert status.resume_at == clock.now
        assert sender.sent == []

        report = SlaSweep(engine).run()

        assert report.resumed == [execution_id]
        status = engine.get_execution_status(execution_id)
        assert status.status == ExecutionStatus.COMPLETED
        assert status.context["delayElapsed"]["nodeId"] == "wait"
        assert len(sender.sent) == 1


class TestFailures:

    def test_missing_branch_fails_at_decision(self, engine, save_definition):
        save_definition({
            "id": "WF-half-decision",
            "rootNodeId": "check",
            "nodes": [
                {
                    "id": "check",
                    "type": "decision",
                    "config": {"condition": "amount > 10", "trueNodeId": "done"}
                },
                {"id": "done", "type": "notification", "config": {"channel": "slack", "sendTo": "#ops"}}
            ]
        })
        execution_id = engine.start_execution("WF-half-decision", {"amount": 1})

        execution = engine.get_execution(execution_id)
        assert execution.status == ExecutionStatus.FAILED
        assert execution.current_node_id == "check"
        assert execution.error_code == "DEFINITION_ERROR"

        failed = [
            h for h in engine.get_execution_history(execution_id)
            if h.event_type == HistoryEventType.EXECUTION_FAILED
        ]
        assert len(failed) == 1
        assert failed[0].node_id == "check"

    def test_integration_timeout_fails_and_keeps_context(self, make_engine, save_definition):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        engine = make_engine(http_transport=httpx.MockTransport(handler))
        save_definition({
            "id": "WF-budget",
            "rootNodeId": "fetch",
            "nodes": [{
                "id": "fetch",
                "type": "integration",
                "config": {"url": "https://erp.example.com/budget", "responseKey": "budget", "timeoutMs": 100}
            }]
        })
        execution_id = engine.start_execution("WF-budget", {"requestId": "REQ-1"})

        execution = engine.get_execution(execution_id)
        assert execution.status == ExecutionStatus.FAILED
        assert execution.error_code == "INTEGRATION_ERROR"
        assert execution.current_node_id == "fetch"
        assert execution.context == {"requestId": "REQ-1"}

    def test_action_error_fails_execution(self, engine, operations, save_definition):
        save_definition({
            "id": "WF-reserve",
            "rootNodeId": "reserve",
            "nodes": [{"id": "reserve", "type": "action", "config": {"action": "RESERVE_STOCK"}}]
        })
        execution_id = engine.start_execution("WF-reserve", {"requestId": "REQ-no-stock"})

        execution = engine.get_execution(execution_id)
        assert execution.status == ExecutionStatus.FAILED
        assert execution.error_code == "ACTION_EXECUTION_ERROR"
        assert "Insufficient stock" in execution.error_message

    def test_cycle_hits_step_budget(self, make_engine, save_definition):
        engine = make_engine(max_steps=5)
        save_definition({
            "id": "WF-loop",
            "rootNodeId": "spin",
            "nodes": [{
                "id": "spin",
                "type": "decision",
                "config": {"condition": "true", "trueNodeId": "spin", "falseNodeId": "spin"}
            }]
        })
        execution_id = engine.start_execution("WF-loop", {})

        execution = engine.get_execution(execution_id)
        assert execution.status == ExecutionStatus.FAILED
        assert execution.error_code == "STEP_BUDGET_EXCEEDED"
        assert execution.steps_taken == 5


class TestCancel:

    def test_cancel_paused_execution(self, engine, manager_review_workflow, request_context):
        execution_id = engine.start_execution("WF-manager-review", request_context)
        [task] = engine.get_tasks_for_execution(execution_id)

        view = engine.cancel_execution(execution_id, "U-admin", "Duplicate request")

        assert view.status == ExecutionStatus.CANCELLED
        assert view.error_message == "Duplicate request"
        assert view.resume_at is None
        assert engine.get_task(task.task_id).status == TaskStatus.EXPIRED
        assert event_types(engine, execution_id)[-1] == HistoryEventType.EXECUTION_CANCELLED

        with pytest.raises(InvalidStateError):
            engine.complete_task(task.task_id, "U-mgr", "approve")

    def test_cancel_finished_execution(self, engine, auto_approve_workflow, request_context):
        execution_id = engine.start_execution("WF-auto-approve", request_context)
        with pytest.raises(InvalidStateError):
            engine.cancel_execution(execution_id)

    def test_cancel_unknown_execution(self, engine):
        with pytest.raises(ExecutionNotFoundError):
            engine.cancel_execution("WFX-missing")

    def test_resume_after_cancel_is_a_no_op(self, engine, operations, manager_review_workflow, request_context):
        execution_id = engine.start_execution("WF-manager-review", request_context)
        engine.cancel_execution(execution_id)

        view = engine.resume_execution(execution_id, "U-mgr", {"lastUserAction": {"action": "approve"}})

        assert view.status == ExecutionStatus.CANCELLED
        assert operations.calls == []

    def test_cancel_during_step_loop_stops_at_next_boundary(self, make_engine, operations, save_definition):
        class CancellingLookup(NodeProcessor):
            """Integration stand-in that withdraws the request while it runs"""
            node_type = NodeType.INTEGRATION

            def process(self, node, context, execution):
                engine.cancel_execution(execution.execution_id, "U-admin", "Withdrawn")
                return NodeResult(next_node_id=node.next, context_updates={"lookup": {"ok": True}})

        engine = make_engine(registry=NodeProcessorRegistry([CancellingLookup(), ActionProcessor(operations)]))
        save_definition({
            "id": "WF-lookup",
            "rootNodeId": "lookup",
            "nodes": [
                {
                    "id": "lookup",
                    "type": "integration",
                    "config": {"url": "https://erp.example.com/budget", "responseKey": "lookup"},
                    "next": "approve"
                },
                {"id": "approve", "type": "action", "config": {"action": "AUTO_APPROVE"}}
            ]
        })

        execution_id = engine.start_execution("WF-lookup", {"requestId": "REQ-1"})

        execution = engine.get_execution(execution_id)
        assert execution.status == ExecutionStatus.CANCELLED
        assert execution.error_message == "Withdrawn"
        assert "lookup" not in execution.context
        assert operations.calls == []
        assert visited_nodes(engine, execution_id) == ["lookup"]

        events = event_types(engine, execution_id)
        assert HistoryEventType.EXECUTION_CANCELLED in events
        assert HistoryEventType.EXECUTION_COMPLETED not in events
        assert HistoryEventType.EXECUTION_FAILED not in events
