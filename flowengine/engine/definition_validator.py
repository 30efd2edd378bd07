"""Definition Validator - Design-time checks of a workflow graph"""
from typing import List, Optional, Set

from ..domain.enums import ActionType, AssignmentTargetType, DelayType, NotificationChannel
from ..domain.errors import ConditionSyntaxError, DefinitionError, WorkflowValidationError
from ..domain.models import (
    ActionNode, AssignmentNode, DecisionNode, DelayNode, NotificationNode,
    ValidationIssue, WorkflowDefinition
)
from .condition_evaluator import ConditionEvaluator
from .processors.assignment import parse_target
from ..utils.time import parse_iso


class DefinitionValidator:
    """
    Check a definition before it is saved

    - the root node exists
    - every referenced node exists
    - every node is reachable from the root
    - conditions parse
    - node configs name known actions, channels, delay types and targets
    """

    def __init__(self, evaluator: Optional[ConditionEvaluator] = None):
        self.evaluator = evaluator or ConditionEvaluator()

    def validate(self, definition: WorkflowDefinition) -> List[ValidationIssue]:
        issues: List[ValidationIssue] = []

        if not definition.nodes:
            issues.append(ValidationIssue(code="NO_NODES", message="Workflow has no nodes"))
            return issues

        if not definition.has_node(definition.root_node_id):
            issues.append(ValidationIssue(
                node_id=definition.root_node_id,
                code="MISSING_ROOT",
                message=f"Root node '{definition.root_node_id}' does not exist"
            ))

        if definition.trigger_conditions:
            issues.extend(self._check_condition(None, definition.trigger_conditions, "INVALID_TRIGGER_CONDITION"))

        for node_id, node in definition.nodes.items():
            for target in self._successors(node):
                if not definition.has_node(target):
                    issues.append(ValidationIssue(
                        node_id=node_id,
                        code="MISSING_NODE",
                        message=f"Node '{node_id}' references missing node '{target}'"
                    ))
            issues.extend(self._check_config(node))

        if definition.has_node(definition.root_node_id):
            reachable = self._reachable(definition)
            for node_id in definition.nodes:
                if node_id not in reachable:
                    issues.append(ValidationIssue(
                        node_id=node_id,
                        code="UNREACHABLE_NODE",
                        message=f"Node '{node_id}' is not reachable from the root"
                    ))

        return issues

    def validate_or_raise(self, definition: WorkflowDefinition) -> List[ValidationIssue]:
        """
        Raise WorkflowValidationError if any issue is an error

        Returns the warnings, which do not block a save.
        """
        issues = self.validate(definition)
        if any(issue.is_error for issue in issues):
            raise WorkflowValidationError(
                f"Workflow {definition.workflow_id} failed validation",
                details={"issues": [i.model_dump() for i in issues]}
            )
        return issues

    def _successors(self, node) -> List[str]:
        if isinstance(node, DecisionNode):
            return [t for t in (node.config.true_node_id, node.config.false_node_id) if t]
        return [node.next] if node.next else []

    def _reachable(self, definition: WorkflowDefinition) -> Set[str]:
        seen: Set[str] = set()
        stack = [definition.root_node_id]
        while stack:
            node_id = stack.pop()
            if node_id in seen or not definition.has_node(node_id):
                continue
            seen.add(node_id)
            stack.extend(self._successors(definition.nodes[node_id]))
        return seen

    def _check_condition(self, node_id: Optional[str], expression: str, code: str) -> List[ValidationIssue]:
        try:
            self.evaluator.validate(expression)
        except ConditionSyntaxError as e:
            return [ValidationIssue(node_id=node_id, code=code, message=e.message)]
        return []

    def _check_config(self, node) -> List[ValidationIssue]:
        issues: List[ValidationIssue] = []
        config = node.config

        def issue(code: str, message: str, severity: str = "error") -> None:
            issues.append(ValidationIssue(node_id=node.id, code=code, message=message, severity=severity))

        if isinstance(node, DecisionNode):
            issues.extend(self._check_condition(node.id, config.condition, "INVALID_CONDITION"))
            if not config.true_node_id or not config.false_node_id:
                issue("MISSING_BRANCH", f"Decision node '{node.id}' should define both branches")

        elif isinstance(node, ActionNode):
            if config.action.upper() not in ActionType.__members__:
                issue("UNKNOWN_ACTION", f"Unknown action type: {config.action}")
            elif config.action.upper() == ActionType.UPDATE_STATUS.value and not config.status:
                issue("MISSING_STATUS", "UPDATE_STATUS needs a status")

        elif isinstance(node, AssignmentNode):
            try:
                target_type, target_value = parse_target(config.assign_to, node.id)
            except DefinitionError as e:
                issue("INVALID_TARGET", e.message)
            else:
                if target_type == AssignmentTargetType.DYNAMIC and target_value not in ("requestor", "site_manager"):
                    issue(
                        "UNRESOLVABLE_TARGET",
                        f"Dynamic assignment '{target_value}' has no resolver; the task will be unassigned unless strict resolution is on",
                        severity="warning"
                    )

        elif isinstance(node, NotificationNode):
            if config.channel.lower() not in {c.value for c in NotificationChannel}:
                issue("UNKNOWN_CHANNEL", f"Unknown notification channel: {config.channel}")

        elif isinstance(node, DelayNode):
            delay_type = config.delay_type.lower()
            if delay_type not in {d.value for d in DelayType}:
                issue("UNKNOWN_DELAY_TYPE", f"Unknown delay type: {config.delay_type}")
            elif delay_type == DelayType.UNTIL.value:
                if not config.delay_until:
                    issue("MISSING_DELAY_UNTIL", "Delay 'until' needs delayUntil")
                else:
                    try:
                        parse_iso(config.delay_until)
                    except (ValueError, OverflowError):
                        issue("INVALID_DELAY_UNTIL", f"Invalid delayUntil timestamp: {config.delay_until}")
            elif config.delay_value is None:
                issue("MISSING_DELAY_VALUE", f"Delay '{delay_type}' needs delayValue")

        return issues
