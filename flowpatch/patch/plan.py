# flowpatch/patch/plan.py
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import yaml

from flowpatch.errors import PlanError
from flowpatch.patch import ops
from flowpatch.patch.lookup import describe_ref, resolve_node
from flowpatch.schema import validate_plan
from flowpatch.transform.rename import apply_renames
from flowpatch.utils.io import PathLike, load_any, to_path
from flowpatch.utils.logger import get_logger

logger = get_logger("patch.plan")

PLANS_DIR = Path(__file__).resolve().parent.parent / "plans"


@dataclass
class Fix:
    op: str
    args: Dict[str, Any] = field(default_factory=dict)
    note: str = ""


@dataclass
class PatchPlan:
    name: str
    fixes: List[Fix] = field(default_factory=list)
    renames: Dict[str, str] = field(default_factory=dict)
    description: str = ""
    output: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PatchPlan":
        validate_plan(data)
        fixes = []
        for raw in data.get("fixes") or []:
            args = {k: v for k, v in raw.items() if k not in ("op", "note")}
            fixes.append(Fix(op=raw["op"], args=args, note=raw.get("note", "")))
        return cls(
            name=data["name"],
            fixes=fixes,
            renames=dict(data.get("renames") or {}),
            description=data.get("description", ""),
            output=data.get("output"),
        )


def load_plan(path: PathLike) -> PatchPlan:
    """Load and validate a YAML/JSON patch plan."""
    p = to_path(path)
    try:
        data = load_any(p)
    except (ValueError, yaml.YAMLError) as e:
        raise PlanError(f"Cannot read patch plan {p}: {e}") from e
    if not isinstance(data, dict):
        raise PlanError(f"Patch plan {p} must be a mapping, got {type(data).__name__}")
    plan = PatchPlan.from_dict(data)
    logger.debug("loaded plan '%s' from %s (%d fixes, %d renames)",
                 plan.name, p, len(plan.fixes), len(plan.renames))
    return plan


def bundled_plans() -> List[str]:
    return sorted(p.stem for p in PLANS_DIR.glob("*.yaml"))


def bundled_plan(name: str) -> Path:
    """Path of a plan shipped with the package (by stem, e.g. "lead_gen_fixes")."""
    p = PLANS_DIR / f"{name}.yaml"
    if not p.exists():
        raise PlanError(f"Unknown bundled plan '{name}'. Choose one of: {', '.join(bundled_plans())}")
    return p


# ---------------------------------------------------------------------------
# Fix handlers: (workflow, args) -> workflow
# ---------------------------------------------------------------------------

def _set_conditions(workflow: Dict[str, Any], args: Dict[str, Any]) -> Dict[str, Any]:
    ops.set_conditions(resolve_node(workflow, args["node"]), args["conditions"])
    return workflow


def _set_retry_policy(workflow: Dict[str, Any], args: Dict[str, Any]) -> Dict[str, Any]:
    # Resolve all first so a missing id aborts before any node is touched
    nodes = [resolve_node(workflow, ref) for ref in args["nodes"]]
    for node in nodes:
        ops.set_retry_policy(
            node,
            max_tries=args.get("max_tries", ops.DEFAULT_MAX_TRIES),
            wait_between_tries=args.get("wait_between_tries", ops.DEFAULT_WAIT_BETWEEN_TRIES),
        )
    return workflow


def _remove_option(workflow: Dict[str, Any], args: Dict[str, Any]) -> Dict[str, Any]:
    ops.remove_option(resolve_node(workflow, args["node"]), args["key"])
    return workflow


def _set_parameter(workflow: Dict[str, Any], args: Dict[str, Any]) -> Dict[str, Any]:
    ops.set_parameter(resolve_node(workflow, args["node"]), args["path"], args["value"])
    return workflow


def _set_setting(workflow: Dict[str, Any], args: Dict[str, Any]) -> Dict[str, Any]:
    return ops.set_setting(workflow, args["key"], args["value"])


OPERATIONS: Dict[str, Callable[[Dict[str, Any], Dict[str, Any]], Dict[str, Any]]] = {
    "set_conditions": _set_conditions,
    "set_retry_policy": _set_retry_policy,
    "remove_option": _remove_option,
    "set_parameter": _set_parameter,
    "set_setting": _set_setting,
}


def _fix_label(fix: Fix) -> str:
    if "node" in fix.args:
        target = describe_ref(fix.args["node"])
    elif "nodes" in fix.args:
        target = ", ".join(describe_ref(r) for r in fix.args["nodes"])
    else:
        target = fix.args.get("key", "")
    return f"{fix.op}({target})" + (f" - {fix.note}" if fix.note else "")


def apply_fix(workflow: Dict[str, Any], fix: Fix) -> Dict[str, Any]:
    handler = OPERATIONS.get(fix.op)
    if handler is None:
        raise PlanError(f"Unknown fix operation '{fix.op}'. Choose one of: {', '.join(OPERATIONS)}")
    logger.info("fix %s", _fix_label(fix))
    return handler(workflow, fix.args)


def apply_plan(workflow: Dict[str, Any], plan: PatchPlan) -> Dict[str, Any]:
    """
    Apply every fix in order, then the plan's renames.
    Fixes see the pre-rename names, so payload expressions like $('If5')
    are carried over by the rename pass. Any lookup failure propagates and
    aborts the run.
    """
    logger.info("applying plan '%s' to workflow '%s'", plan.name, workflow.get("name", "<unnamed>"))
    for fix in plan.fixes:
        workflow = apply_fix(workflow, fix)
    return apply_renames(workflow, plan.renames)
