import copy
import json
from pathlib import Path

import pytest

from flowpatch.patch.lookup import find_node_by_id
from flowpatch.patch.plan import apply_plan, bundled_plan, load_plan
from flowpatch.schema import validate_workflow
from flowpatch.transform.rename import apply_renames, find_stale_references
from flowpatch.utils.graph import dangling_targets

CASES = Path(__file__).parent / "cases"


def _load(case_dir: Path):
    wf_file = case_dir / "workflow.json"
    exp_file = case_dir / "expect.json"

    assert wf_file.exists(), f"Missing workflow.json in {case_dir}"
    assert exp_file.exists(), f"Missing expect.json in {case_dir}"

    with wf_file.open("r", encoding="utf-8") as f:
        workflow = json.load(f)
    with exp_file.open("r", encoding="utf-8") as f:
        expect = json.load(f)
    return workflow, expect


def _dig(value, path: str):
    for key in path.split("."):
        value = value[int(key)] if isinstance(value, list) else value[key]
    return value


@pytest.mark.parametrize("case_dir", sorted(CASES.glob("R*")), ids=lambda p: p.name)
def test_rename_case(case_dir: Path):
    """
    Rename cases:
    - load workflow.json
    - apply the rename map from expect.json
    - compare against the full expected document
    """
    workflow, expect = _load(case_dir)
    validate_workflow(workflow)

    got = apply_renames(workflow, expect["renames"])

    assert got == expect["expected"], f"{case_dir.name}: renamed workflow differs"
    assert find_stale_references(got, expect["renames"]) == []


@pytest.mark.parametrize("case_dir", sorted(CASES.glob("P*")), ids=lambda p: p.name)
def test_bundled_plan_case(case_dir: Path):
    """
    Plan cases:
    - load workflow.json and the bundled plan named in expect.json
    - run fixes + renames
    - check names by id, patched parameters, retry policy, settings and graph keys
    """
    workflow, expect = _load(case_dir)
    plan = load_plan(bundled_plan(expect["plan"]))
    original = copy.deepcopy(workflow)

    got = apply_plan(workflow, plan)
    asserts = expect.get("assert") or {}

    for node_id, name in (asserts.get("names") or {}).items():
        assert find_node_by_id(got, node_id)["name"] == name, f"{case_dir.name}: node {node_id}"

    for check in asserts.get("parameters") or []:
        node = find_node_by_id(got, check["id"])
        assert _dig(node["parameters"], check["path"]) == check["value"], (
            f"{case_dir.name}: {check['id']} parameters.{check['path']}"
        )

    retry_ids = set(asserts.get("retry") or [])
    for node in got["nodes"]:
        if node["id"] in retry_ids:
            assert node["retryOnFail"] is True
            assert node["maxTries"] == 3
            assert node["waitBetweenTries"] == 5000
        else:
            assert "retryOnFail" not in node, f"{case_dir.name}: unexpected retry on {node['name']}"

    if "settings" in asserts:
        assert got["settings"] == asserts["settings"]
    if "pin_keys" in asserts:
        assert list(got["pinData"]) == asserts["pin_keys"]
    if "connection_keys" in asserts:
        assert list(got["connections"]) == asserts["connection_keys"]

    # ids are stable across the whole run
    assert [n["id"] for n in got["nodes"]] == [n["id"] for n in original["nodes"]]
    assert find_stale_references(got, plan.renames) == []
    assert dangling_targets(got) == []
    validate_workflow(got)
