# flowpatch/patch/ops.py
from __future__ import annotations

import copy
from typing import Any, Dict, List

from flowpatch.utils.logger import get_logger

logger = get_logger("patch.ops")

DEFAULT_MAX_TRIES = 3
DEFAULT_WAIT_BETWEEN_TRIES = 5000  # ms


def _child(parent: Dict[str, Any], key: str) -> Dict[str, Any]:
    """Return parent[key], creating an empty mapping if absent or null."""
    if not isinstance(parent.get(key), dict):
        parent[key] = {}
    return parent[key]


def set_conditions(node: Dict[str, Any], conditions: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Replace the If-node condition list: parameters.conditions.conditions."""
    block = _child(_child(node, "parameters"), "conditions")
    block["conditions"] = copy.deepcopy(list(conditions))
    logger.debug("node %s: set %d conditions", node.get("id"), len(block["conditions"]))
    return node


def set_retry_policy(
    node: Dict[str, Any],
    max_tries: int = DEFAULT_MAX_TRIES,
    wait_between_tries: int = DEFAULT_WAIT_BETWEEN_TRIES,
) -> Dict[str, Any]:
    node["retryOnFail"] = True
    node["maxTries"] = max_tries
    node["waitBetweenTries"] = wait_between_tries
    logger.debug(
        "node %s: retryOnFail maxTries=%d waitBetweenTries=%d",
        node.get("id"), max_tries, wait_between_tries,
    )
    return node


def remove_option(node: Dict[str, Any], key: str) -> Dict[str, Any]:
    """Delete parameters.options[key] if present; no-op otherwise."""
    options = (node.get("parameters") or {}).get("options")
    if isinstance(options, dict) and key in options:
        del options[key]
        logger.debug("node %s: removed option %s", node.get("id"), key)
    return node


def set_parameter(node: Dict[str, Any], path: str, value: Any) -> Dict[str, Any]:
    """Set a dotted path under `parameters`, e.g. "options.batchSize"."""
    keys = [k for k in path.split(".") if k]
    if not keys:
        raise ValueError("Parameter path must not be empty")
    target = _child(node, "parameters")
    for key in keys[:-1]:
        target = _child(target, key)
    target[keys[-1]] = copy.deepcopy(value)
    logger.debug("node %s: set parameters.%s", node.get("id"), path)
    return node


def set_setting(workflow: Dict[str, Any], key: str, value: Any) -> Dict[str, Any]:
    _child(workflow, "settings")[key] = copy.deepcopy(value)
    logger.debug("settings.%s = %r", key, value)
    return workflow
