"""Script to validate a workflow definition

Usage:
    python -m scripts.validate_workflow --file definition.json
    python -m scripts.validate_workflow --id WF-6aaba4d2fb47
"""
import argparse
import json
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from flowengine.domain.errors import DomainError
from flowengine.domain.models import WorkflowDefinition
from flowengine.engine.condition_evaluator import ConditionEvaluator
from flowengine.engine.definition_validator import DefinitionValidator
from flowengine.repositories.workflow_repo import WorkflowRepository


def load_definition(args: argparse.Namespace) -> WorkflowDefinition:
    if args.file:
        with open(args.file, encoding="utf-8") as fh:
            return WorkflowDefinition.model_validate(json.load(fh))
    return WorkflowRepository().get_definition_or_raise(args.id)


def print_report(definition: WorkflowDefinition) -> bool:
    print(f"✅ Found workflow: {definition.name}")
    print(f"   ID: {definition.workflow_id}")
    print(f"   Version: {definition.version}")
    print(f"   Trigger: {definition.trigger_type}")
    if definition.trigger_conditions:
        print(f"   Trigger condition: {definition.trigger_conditions}")
    print()

    print("=" * 60)
    print("WORKFLOW ANALYSIS")
    print("=" * 60)

    node_types = {}
    for node in definition.nodes.values():
        node_types[node.type] = node_types.get(node.type, 0) + 1

    print(f"\n📊 NODE SUMMARY ({len(definition.nodes)} total):")
    for nt, count in node_types.items():
        print(f"   • {nt}: {count}")
    print(f"🚀 ROOT NODE: {definition.root_node_id}")

    print("\n" + "=" * 60)
    print("NODE FLOW")
    print("=" * 60)

    for node_id, node in definition.nodes.items():
        label = f" ({node.label})" if node.label else ""
        if node.type == "decision":
            print(f"   [{node.type}] {node_id}{label}: if {node.config.condition}")
            print(f"      true  --> {node.config.true_node_id}")
            print(f"      false --> {node.config.false_node_id}")
        else:
            print(f"   [{node.type}] {node_id}{label} --> {node.next or '🏁 end'}")

    print("\n" + "=" * 60)
    print("VALIDATION RESULTS")
    print("=" * 60)

    issues = DefinitionValidator(ConditionEvaluator()).validate(definition)
    errors = [issue for issue in issues if issue.is_error]
    warnings = [issue for issue in issues if not issue.is_error]

    if warnings:
        print("\n⚠️  WARNINGS:")
        for issue in warnings:
            where = f"[{issue.node_id}] " if issue.node_id else ""
            print(f"   • {where}{issue.code}: {issue.message}")

    if not errors:
        print("\n🎉 WORKFLOW IS VALID!")
        return True

    print("\n❌ ERRORS:")
    for issue in errors:
        where = f"[{issue.node_id}] " if issue.node_id else ""
        print(f"   • {where}{issue.code}: {issue.message}")
    print("\n❌ WORKFLOW HAS ERRORS")
    return False


def main() -> int:
    parser = argparse.ArgumentParser(description="Validate a workflow definition")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--file", help="Path to a definition JSON document")
    source.add_argument("--id", help="Workflow id stored in MongoDB")
    args = parser.parse_args()

    try:
        definition = load_definition(args)
    except DomainError as e:
        print(f"❌ {e.message}")
        return 1

    return 0 if print_report(definition) else 1


if __name__ == "__main__":
    sys.exit(main())
