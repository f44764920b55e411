# flowpatch/errors.py
from __future__ import annotations


class FlowPatchError(Exception):
    """Base class for every fatal error raised by flowpatch."""


class LookupFailure(FlowPatchError, LookupError):
    """A required node could not be resolved; the whole run must abort."""


class NodeNotFoundError(LookupFailure):
    def __init__(self, lookup: str, workflow_name: str | None = None):
        self.lookup = lookup
        self.workflow_name = workflow_name
        where = f" in workflow '{workflow_name}'" if workflow_name else ""
        super().__init__(f"Cannot find node {lookup}{where}")


class AmbiguousNodeError(LookupFailure):
    def __init__(self, lookup: str, matches: list, workflow_name: str | None = None):
        self.lookup = lookup
        self.matches = list(matches)
        self.workflow_name = workflow_name
        where = f" in workflow '{workflow_name}'" if workflow_name else ""
        super().__init__(
            f"Node lookup {lookup} is ambiguous{where}: "
            f"{len(self.matches)} nodes match ({', '.join(map(str, self.matches))})"
        )


class PlanError(FlowPatchError, ValueError):
    """A patch plan is malformed or names an unknown operation."""


class WorkflowSchemaError(FlowPatchError, ValueError):
    """Input does not look like an n8n workflow export."""
