"""
Print a structural report for a workflow
Run: python -m scripts.validate_workflow <workflow_id or code>
"""
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from incidentflow.domain.errors import WorkflowNotFoundError
from incidentflow.services.workflow_service import WorkflowService


def describe(service: WorkflowService, key: str) -> int:
    workflow = service.repo.get_workflow_by_code(key) or service.repo.get_workflow(key, include_deleted=True)
    if workflow is None:
        raise WorkflowNotFoundError(f"Workflow {key} not found")

    states = service.repo.list_states(workflow.workflow_id)
    names = {s.state_id: s.name for s in states}
    print(f"Workflow: {workflow.name} [{workflow.code}] v{workflow.version} ({workflow.record_type.value})")
    if workflow.deleted_at:
        print("  (deleted)")

    print(f"\nStates ({len(states)}):")
    for state in states:
        sla = f"{state.sla_hours}h" if state.sla_hours else "no SLA"
        print(f"  - {state.name} [{state.state_type.value}] {sla}")

    transitions = service.repo.list_transitions(workflow.workflow_id)
    print(f"\nTransitions ({len(transitions)}):")
    for t in transitions:
        flags = []
        if not t.is_active:
            flags.append("inactive")
        if t.allowed_role_ids:
            flags.append(f"roles={','.join(t.allowed_role_ids)}")
        if t.requirements:
            flags.append(f"requires={','.join(r.requirement_type.value for r in t.requirements)}")
        if t.actions:
            flags.append(f"actions={len(t.actions)}")
        source = names.get(t.from_state_id, t.from_state_id)
        target = names.get(t.to_state_id, t.to_state_id)
        print(f"  - {t.name}: {source} -> {target} {' '.join(flags)}".rstrip())

    report = service.validate_workflow(workflow.workflow_id)
    print()
    for error in report.errors:
        print(f"ERROR: {error}")
    for warning in report.warnings:
        print(f"WARNING: {warning}")
    print("Valid" if report.is_valid else "Invalid")
    return 0 if report.is_valid else 1


def main():
    if len(sys.argv) != 2:
        print("Usage: python -m scripts.validate_workflow <workflow_id or code>")
        sys.exit(2)
    sys.exit(describe(WorkflowService(), sys.argv[1]))


if __name__ == "__main__":
    main()
