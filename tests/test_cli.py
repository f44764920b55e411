import json
import logging
import shutil
from pathlib import Path

import pytest
from typer.testing import CliRunner

from flowpatch.cli import app

CASES = Path(__file__).parent / "cases"

runner = CliRunner()


@pytest.fixture(autouse=True)
def _detach_log_handlers():
    # CliRunner closes its captured streams after each invoke
    yield
    logging.getLogger("flowpatch").handlers.clear()


@pytest.fixture
def lead_gen(tmp_path: Path) -> Path:
    dst = tmp_path / "Lead Gen System (4).json"
    shutil.copy(CASES / "P01_lead_gen" / "workflow.json", dst)
    return dst


def test_apply_bundled_plan_writes_fixed_copy(lead_gen: Path):
    result = runner.invoke(app, ["apply", "--input", str(lead_gen), "--bundled", "lead_gen_fixes"])
    assert result.exit_code == 0, result.output

    # bundled plans carry the original output name
    out = lead_gen.with_name("Lead Gen System (Fixed).json")
    assert out.exists()
    text = out.read_text(encoding="utf-8")
    assert text.endswith("}\n")
    wf = json.loads(text)
    assert "Check EE Updated OK" in wf["connections"]
    assert "[ok] applied 'lead-gen-fixes'" in result.output
    # keys of the bundled map that the fixture does not have are reported, not fatal
    assert "'If1' does not name any node" in result.output


def test_apply_strict_rejects_map_issues(lead_gen: Path, tmp_path: Path):
    out = tmp_path / "out.json"
    result = runner.invoke(
        app, ["apply", "-i", str(lead_gen), "-b", "lead_gen_fixes", "-o", str(out), "--strict"]
    )
    assert result.exit_code == 1
    assert not out.exists()


def test_apply_missing_node_aborts_without_output(tmp_path: Path):
    wf = tmp_path / "wf.json"
    wf.write_text(json.dumps({"nodes": [{"id": "1", "name": "If"}], "connections": {}}), encoding="utf-8")
    plan = tmp_path / "plan.yaml"
    plan.write_text(
        "name: broken\n"
        "fixes:\n"
        "  - op: set_retry_policy\n"
        "    nodes: [{id: not-there}]\n"
        "renames:\n"
        "  If: Checked\n",
        encoding="utf-8",
    )
    out = tmp_path / "out.json"
    result = runner.invoke(app, ["apply", "-i", str(wf), "-p", str(plan), "-o", str(out)])
    assert result.exit_code == 1
    assert "Cannot find node id 'not-there'" in result.output
    assert not out.exists()


def test_apply_requires_one_plan_source(lead_gen: Path):
    result = runner.invoke(app, ["apply", "-i", str(lead_gen)])
    assert result.exit_code != 0


def test_rename_command(tmp_path: Path):
    src = tmp_path / "wf.json"
    shutil.copy(CASES / "R02_connection_graph" / "workflow.json", src)
    out = tmp_path / "renamed.json"
    result = runner.invoke(
        app, ["rename", "-i", str(src), "-m", "If=Checked", "-m", "Loop=Batch", "-o", str(out), "--indent", "4"]
    )
    assert result.exit_code == 0, result.output
    expect = json.loads((CASES / "R02_connection_graph" / "expect.json").read_text(encoding="utf-8"))
    assert json.loads(out.read_text(encoding="utf-8")) == expect["expected"]
    assert '\n    "name"' in out.read_text(encoding="utf-8")


def test_rename_bad_pair(tmp_path: Path):
    src = tmp_path / "wf.json"
    shutil.copy(CASES / "R01_if_expression" / "workflow.json", src)
    result = runner.invoke(app, ["rename", "-i", str(src), "-m", "If"])
    assert result.exit_code != 0


def test_check_clean_and_dangling(tmp_path: Path):
    good = CASES / "R02_connection_graph" / "workflow.json"
    result = runner.invoke(app, ["check", "-i", str(good)])
    assert result.exit_code == 0, result.output

    bad = tmp_path / "bad.json"
    wf = json.loads(good.read_text(encoding="utf-8"))
    wf["nodes"] = [n for n in wf["nodes"] if n["name"] != "Done"]
    bad.write_text(json.dumps(wf), encoding="utf-8")
    result = runner.invoke(app, ["check", "-i", str(bad)])
    assert result.exit_code == 1
    assert "connects to unknown node 'Done'" in result.output


def test_check_schema_error(tmp_path: Path):
    bad = tmp_path / "bad.json"
    bad.write_text(json.dumps({"nodes": "nope"}), encoding="utf-8")
    result = runner.invoke(app, ["check", "-i", str(bad)])
    assert result.exit_code == 1
    assert "[error]" in result.output


def test_plans_lists_bundled():
    result = runner.invoke(app, ["plans"])
    assert result.exit_code == 0
    assert "lead_gen_fixes: lead-gen-fixes (4 fixes, 30 renames)" in result.output
    assert "rerun_ee_fixes: rerun-ee-fixes (4 fixes, 5 renames)" in result.output


@pytest.fixture
def rerun(tmp_path: Path) -> Path:
    dst = tmp_path / "Rerun EE Calculation.json"
    shutil.copy(CASES / "P02_rerun_ee" / "workflow.json", dst)
    return dst


def test_apply_two_workflows_in_one_run(lead_gen: Path, rerun: Path, tmp_path: Path):
    result = runner.invoke(
        app,
        ["apply", "-i", str(lead_gen), "-b", "lead_gen_fixes", "-i", str(rerun), "-b", "rerun_ee_fixes"],
    )
    assert result.exit_code == 0, result.output
    assert (tmp_path / "Lead Gen System (Fixed).json").exists()
    fixed = json.loads((tmp_path / "Rerun EE Calculation (Fixed).json").read_text(encoding="utf-8"))
    assert "Check EE Found" in fixed["connections"]


def test_apply_second_lookup_failure_writes_nothing(lead_gen: Path, rerun: Path, tmp_path: Path):
    wf = json.loads(rerun.read_text(encoding="utf-8"))
    wf["nodes"] = [n for n in wf["nodes"] if not n["id"].startswith("0984c26f")]
    rerun.write_text(json.dumps(wf), encoding="utf-8")

    result = runner.invoke(
        app,
        ["apply", "-i", str(lead_gen), "-b", "lead_gen_fixes", "-i", str(rerun), "-b", "rerun_ee_fixes"],
    )
    assert result.exit_code == 1
    assert "id prefix '0984c26f'" in result.output
    assert not (tmp_path / "Lead Gen System (Fixed).json").exists()
    assert not (tmp_path / "Rerun EE Calculation (Fixed).json").exists()


def test_apply_plan_count_must_match_inputs(lead_gen: Path, rerun: Path):
    result = runner.invoke(app, ["apply", "-i", str(lead_gen), "-i", str(rerun), "-b", "lead_gen_fixes"])
    assert result.exit_code != 0


@pytest.mark.parametrize(
    "plan_text",
    [
        "name: [unclosed\n",
        "name: bad-path\n"
        "fixes:\n"
        "  - op: set_parameter\n"
        "    node: {id: '1'}\n"
        "    path: '.'\n"
        "    value: 1\n",
    ],
    ids=["yaml-syntax", "empty-path"],
)
def test_apply_malformed_plan_is_a_clean_error(tmp_path: Path, plan_text: str):
    wf = tmp_path / "wf.json"
    wf.write_text(json.dumps({"nodes": [{"id": "1", "name": "If"}], "connections": {}}), encoding="utf-8")
    plan = tmp_path / "plan.yaml"
    plan.write_text(plan_text, encoding="utf-8")

    result = runner.invoke(app, ["apply", "-i", str(wf), "-p", str(plan)])
    assert result.exit_code == 1
    assert "[error]" in result.output
    assert isinstance(result.exception, SystemExit)


def test_check_invalid_json_input(tmp_path: Path):
    wf = tmp_path / "wf.json"
    wf.write_text("{not json", encoding="utf-8")
    result = runner.invoke(app, ["check", "-i", str(wf)])
    assert result.exit_code == 1
    assert "is not valid JSON" in result.output
