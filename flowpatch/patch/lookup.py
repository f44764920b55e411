# flowpatch/patch/lookup.py
from __future__ import annotations

from typing import Any, Dict, Mapping

from flowpatch.errors import AmbiguousNodeError, NodeNotFoundError, PlanError
from flowpatch.utils.logger import get_logger

logger = get_logger("patch.lookup")


def find_node_by_id(workflow: Dict[str, Any], node_id: str) -> Dict[str, Any]:
    """Return the node with this exact id; abort the run if there is none."""
    for node in workflow.get("nodes") or []:
        if node.get("id") == node_id:
            return node
    logger.error("node id %s not found", node_id)
    raise NodeNotFoundError(f"id '{node_id}'", workflow.get("name"))


def find_node_by_id_prefix(workflow: Dict[str, Any], prefix: str) -> Dict[str, Any]:
    """
    Return the single node whose id starts with `prefix`.
    The prefix must identify exactly one node: no match raises NodeNotFoundError,
    several matches raise AmbiguousNodeError (never silently the first one).
    """
    matches = [
        node for node in workflow.get("nodes") or []
        if str(node.get("id", "")).startswith(prefix)
    ]
    if not matches:
        logger.error("no node id starts with %s", prefix)
        raise NodeNotFoundError(f"id prefix '{prefix}'", workflow.get("name"))
    if len(matches) > 1:
        ids = [n.get("id") for n in matches]
        logger.error("node id prefix %s matches %d nodes", prefix, len(ids))
        raise AmbiguousNodeError(f"id prefix '{prefix}'", ids, workflow.get("name"))
    return matches[0]


def resolve_node(workflow: Dict[str, Any], ref: Mapping[str, str]) -> Dict[str, Any]:
    """Resolve a plan node reference: {"id": ...} or {"id_prefix": ...}."""
    if "id" in ref:
        return find_node_by_id(workflow, ref["id"])
    if "id_prefix" in ref:
        return find_node_by_id_prefix(workflow, ref["id_prefix"])
    raise PlanError(f"Node reference needs 'id' or 'id_prefix', got {dict(ref)}")


def describe_ref(ref: Mapping[str, str]) -> str:
    if "id" in ref:
        return f"id={ref['id']}"
    return f"id^={ref.get('id_prefix')}"
