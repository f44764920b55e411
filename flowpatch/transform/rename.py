# flowpatch/transform/rename.py
from __future__ import annotations

import re
from collections import Counter
from functools import lru_cache
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional

from flowpatch.transform.strings import iter_strings, map_strings
from flowpatch.utils.logger import get_logger

logger = get_logger("transform.rename")

RenameMap = Mapping[str, str]

# n8n node reference call: $('Node Name') or $("Node Name")
REFERENCE_QUOTES = ("'", '"')

# Only these connection ports get their targets rewritten
RENAME_PORTS = ("main",)


def node_reference(name: str, quote: str = "'") -> str:
    """Build the expression text that references a node by name, e.g. $('If5')."""
    return f"$({quote}{name}{quote})"


@lru_cache(maxsize=1024)
def _reference_pattern(name: str, quote: str) -> re.Pattern:
    return re.compile(re.escape(node_reference(name, quote)))


def rename_expressions(text: str, rename_map: RenameMap) -> str:
    """
    Rewrite $('Old') -> $('New') and $("Old") -> $("New") for every map entry,
    applied in map order. Old names match literally; new names are inserted literally.
    """
    result = text
    for old, new in rename_map.items():
        for quote in REFERENCE_QUOTES:
            replacement = node_reference(new, quote)
            result = _reference_pattern(old, quote).sub(lambda _m: replacement, result)
    return result


def rename_key(name: Any, rename_map: RenameMap) -> Any:
    """Rename or keep."""
    if isinstance(name, str) and name in rename_map:
        return rename_map[name]
    return name


def _expression_fn(rename_map: RenameMap) -> Callable[[str], str]:
    return lambda text: rename_expressions(text, rename_map)


def iter_port_targets(
    connections: Mapping[str, Any], ports=RENAME_PORTS
) -> Iterator[Dict[str, Any]]:
    """Yield every target descriptor dict under the given ports of each connection group."""
    for group in (connections or {}).values():
        if not isinstance(group, dict):
            continue
        for port in ports:
            slots = group.get(port)
            if not isinstance(slots, list):
                continue
            for slot in slots:
                if not isinstance(slot, list):
                    continue
                for target in slot:
                    if isinstance(target, dict):
                        yield target


# ---------------------------------------------------------------------------
# Rename steps: each takes (workflow, rename_map) and returns the workflow
# ---------------------------------------------------------------------------

def rename_node_expressions(workflow: Dict[str, Any], rename_map: RenameMap) -> Dict[str, Any]:
    fn = _expression_fn(rename_map)
    workflow["nodes"] = [map_strings(node, fn) for node in workflow.get("nodes") or []]
    return workflow


def rename_pin_data(workflow: Dict[str, Any], rename_map: RenameMap) -> Dict[str, Any]:
    pin_data = workflow.get("pinData")
    if not pin_data:
        return workflow
    fn = _expression_fn(rename_map)
    workflow["pinData"] = {
        rename_key(key, rename_map): map_strings(value, fn)
        for key, value in pin_data.items()
    }
    return workflow


def rename_connection_keys(workflow: Dict[str, Any], rename_map: RenameMap) -> Dict[str, Any]:
    connections = workflow.get("connections") or {}
    workflow["connections"] = {
        rename_key(key, rename_map): group for key, group in connections.items()
    }
    return workflow


def rename_connection_targets(workflow: Dict[str, Any], rename_map: RenameMap) -> Dict[str, Any]:
    changed = 0
    for target in iter_port_targets(workflow.get("connections") or {}):
        new = rename_key(target.get("node"), rename_map)
        if new != target.get("node"):
            target["node"] = new
            changed += 1
    logger.debug("connection targets renamed: %d", changed)
    return workflow


def rename_node_names(workflow: Dict[str, Any], rename_map: RenameMap) -> Dict[str, Any]:
    for node in workflow.get("nodes") or []:
        old = node.get("name")
        new = rename_key(old, rename_map)
        if new != old:
            logger.debug("node %s: '%s' -> '%s'", node.get("id"), old, new)
            node["name"] = new
    return workflow


# Expression/pinData rewriting searches for the pre-rename names,
# so it runs before the node name fields change.
RENAME_STEPS = (
    rename_node_expressions,
    rename_pin_data,
    rename_connection_keys,
    rename_connection_targets,
    rename_node_names,
)


def apply_renames(workflow: Dict[str, Any], rename_map: RenameMap) -> Dict[str, Any]:
    """
    Rename nodes and propagate the new names to every reference site:
    expressions inside nodes, pinData (keys and values), connection keys,
    connection targets and the node `name` fields.

    The workflow is mutated and returned. Names absent from the map are kept;
    nothing here raises for a missing key. The map must not merge two nodes
    into one name (see check_rename_map).
    """
    if not rename_map:
        return workflow
    present = {n.get("name") for n in workflow.get("nodes") or []}
    hits = sum(1 for old in rename_map if old in present)

    for step in RENAME_STEPS:
        workflow = step(workflow, rename_map)

    logger.info(
        "applied %d renames (%d matched existing nodes)", len(rename_map), hits
    )
    return workflow


# ---------------------------------------------------------------------------
# Verification
# ---------------------------------------------------------------------------

def find_stale_references(workflow: Dict[str, Any], rename_map: RenameMap) -> List[str]:
    """
    List every place where an old name from the map is still referenced.
    Empty result means the rename invariant holds for this document.
    """
    issues: List[str] = []
    nodes = workflow.get("nodes") or []
    pin_data = workflow.get("pinData") or {}
    connections = workflow.get("connections") or {}

    for old in rename_map:
        refs = [node_reference(old, q) for q in REFERENCE_QUOTES]

        for node in nodes:
            if any(ref in text for text in iter_strings(node) for ref in refs):
                issues.append(
                    f"[RENAME] Node '{node.get('name')}' still references '{old}' in an expression"
                )
            if node.get("name") == old:
                issues.append(f"[RENAME] Node {node.get('id')} is still named '{old}'")

        if old in pin_data:
            issues.append(f"[RENAME] pinData still keyed by '{old}'")
        for key, value in pin_data.items():
            if any(ref in text for text in iter_strings(value) for ref in refs):
                issues.append(
                    f"[RENAME] pinData for '{key}' still references '{old}' in an expression"
                )

        if old in connections:
            issues.append(f"[RENAME] connections still keyed by '{old}'")
        for target in iter_port_targets(connections):
            if target.get("node") == old:
                issues.append(f"[RENAME] A connection still targets '{old}'")
    return issues


def check_rename_map(rename_map: RenameMap, workflow: Optional[Dict[str, Any]] = None) -> List[str]:
    """
    Report rename-map problems the applicator does not guard against:
    collisions, chained renames and (given a workflow) clashes with kept names
    and keys that name no node.
    """
    issues: List[str] = []

    counts = Counter(rename_map.values())
    for new, count in counts.items():
        if count > 1:
            olds = sorted(k for k, v in rename_map.items() if v == new)
            issues.append(f"[MAP] {count} nodes would be renamed to '{new}': {olds}")

    chained = sorted(set(rename_map) & set(rename_map.values()))
    for name in chained:
        issues.append(
            f"[MAP] '{name}' is both renamed and a rename target (chained rename, not idempotent)"
        )

    if workflow is not None:
        names = [n.get("name") for n in workflow.get("nodes") or []]
        kept = {n for n in names if n not in rename_map}
        for old, new in rename_map.items():
            if new in kept:
                issues.append(f"[MAP] '{old}' -> '{new}' clashes with an existing node named '{new}'")
        missing = [old for old in rename_map if old not in names]
        for old in missing:
            logger.warning("rename map key '%s' names no node", old)
            issues.append(f"[MAP] '{old}' does not name any node")
    return issues
