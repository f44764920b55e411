# flowpatch/schema.py
from typing import Any, Dict

from jsonschema import Draft7Validator, ValidationError, validate
from jsonschema.exceptions import best_match

from flowpatch.errors import PlanError, WorkflowSchemaError

_TARGET = {
    "type": "object",
    "required": ["node"],
    "properties": {
        "node": {"type": "string"},
        # Optional hop type (usually "main")
        "type": {"type": "string"},
        "index": {"type": "integer", "minimum": 0},
    },
    "additionalProperties": True,
}

WORKFLOW_SCHEMA = {
    "type": "object",
    "required": ["nodes", "connections"],
    "properties": {
        "name": {"type": "string"},
        "nodes": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["id", "name"],
                "properties": {
                    "id": {"type": ["string", "number"]},
                    "name": {"type": "string", "minLength": 1},
                    # n8n-like pattern: n8n-nodes-base.if, @n8n/n8n-nodes-langchain.agent
                    "type": {
                        "type": "string",
                        "pattern": "^@?[A-Za-z0-9_/-]+\\.[A-Za-z0-9_.-]+$",
                    },
                    "parameters": {"type": "object"},
                    "retryOnFail": {"type": "boolean"},
                    "maxTries": {"type": "integer", "minimum": 1},
                    "waitBetweenTries": {"type": "integer", "minimum": 0},
                },
                "additionalProperties": True,
            },
        },
        "connections": {
            "type": "object",
            # Top-level keys: source node names
            "patternProperties": {
                "^.+$": {
                    "type": "object",
                    # Inner keys: output ports (e.g., "main")
                    "patternProperties": {
                        "^.+$": {
                            "type": "array",
                            # Output slots; an unconnected output is an empty list (or null)
                            "items": {
                                "anyOf": [
                                    {"type": "array", "items": _TARGET},
                                    {"type": "null"},
                                ]
                            },
                        }
                    },
                    "additionalProperties": False,
                }
            },
            "additionalProperties": False,
        },
        "pinData": {"type": "object"},
        "settings": {"type": "object"},
    },
}


_NODE_REF = {
    "type": "object",
    "oneOf": [
        {"required": ["id"], "properties": {"id": {"type": "string", "minLength": 1}}},
        {"required": ["id_prefix"], "properties": {"id_prefix": {"type": "string", "minLength": 1}}},
    ],
}


def _fix(op: str, required: list, properties: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "type": "object",
        "required": ["op"] + required,
        "properties": {"op": {"const": op}, "note": {"type": "string"}, **properties},
        "additionalProperties": False,
    }


PATCH_PLAN_SCHEMA = {
    "type": "object",
    "required": ["name"],
    "properties": {
        "name": {"type": "string", "minLength": 1},
        "description": {"type": "string"},
        "fixes": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["op"],
                "properties": {
                    "op": {
                        "enum": [
                            "set_conditions",
                            "set_retry_policy",
                            "remove_option",
                            "set_parameter",
                            "set_setting",
                        ]
                    }
                },
                "allOf": [
                    {
                        "if": {"properties": {"op": {"const": "set_conditions"}}},
                        "then": _fix("set_conditions", ["node", "conditions"], {
                            "node": _NODE_REF,
                            "conditions": {"type": "array", "items": {"type": "object"}},
                        }),
                    },
                    {
                        "if": {"properties": {"op": {"const": "set_retry_policy"}}},
                        "then": _fix("set_retry_policy", ["nodes"], {
                            "nodes": {"type": "array", "items": _NODE_REF, "minItems": 1},
                            "max_tries": {"type": "integer", "minimum": 1},
                            "wait_between_tries": {"type": "integer", "minimum": 0},
                        }),
                    },
                    {
                        "if": {"properties": {"op": {"const": "remove_option"}}},
                        "then": _fix("remove_option", ["node", "key"], {
                            "node": _NODE_REF,
                            "key": {"type": "string", "minLength": 1},
                        }),
                    },
                    {
                        "if": {"properties": {"op": {"const": "set_parameter"}}},
                        "then": _fix("set_parameter", ["node", "path", "value"], {
                            "node": _NODE_REF,
                            "path": {"type": "string", "pattern": "^[^.]+(\\.[^.]+)*$"},
                            "value": {},
                        }),
                    },
                    {
                        "if": {"properties": {"op": {"const": "set_setting"}}},
                        "then": _fix("set_setting", ["key", "value"], {
                            "key": {"type": "string", "minLength": 1},
                            "value": {},
                        }),
                    },
                ],
            },
        },
        "renames": {
            "type": "object",
            "additionalProperties": {"type": "string", "minLength": 1},
        },
        # default output file name, written beside the input
        "output": {"type": "string", "pattern": "^[^/\\\\]+\\.json$"},
    },
    "additionalProperties": False,
}


def _path(e: ValidationError) -> str:
    return "/".join(str(p) for p in e.absolute_path) or "<root>"


def validate_workflow(workflow: Any) -> None:
    """Raise WorkflowSchemaError if this does not look like an n8n workflow export."""
    try:
        validate(instance=workflow, schema=WORKFLOW_SCHEMA)
    except ValidationError as e:
        raise WorkflowSchemaError(f"Schema validation error at {_path(e)}: {e.message}") from e


def validate_plan(plan: Any) -> None:
    """Raise PlanError with the most relevant schema violation of a patch plan."""
    e = best_match(Draft7Validator(PATCH_PLAN_SCHEMA).iter_errors(plan))
    if e is not None:
        raise PlanError(f"Invalid patch plan at {_path(e)}: {e.message}")
