#!/usr/bin/env python3
# flowpatch/cli.py

import logging
from pathlib import Path
from typing import Dict, List, Optional

import typer

from flowpatch.errors import FlowPatchError, WorkflowSchemaError
from flowpatch.patch.plan import PatchPlan, apply_plan, bundled_plan, bundled_plans, load_plan
from flowpatch.schema import validate_workflow
from flowpatch.transform.rename import apply_renames, check_rename_map, find_stale_references
from flowpatch.utils.graph import dangling_targets, duplicate_names
from flowpatch.utils.io import fixed_output_path, read_json, write_json
from flowpatch.utils.logger import init_logger

app = typer.Typer(help="flowpatch CLI - Patch and rename nodes in exported n8n workflows")


@app.callback()
def main(
    log_dir: Optional[Path] = typer.Option(None, "--log-dir", help="Also write a rotating log file here"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
):
    init_logger(level=logging.DEBUG if verbose else None, log_dir=log_dir)


def _fail(msg: str) -> None:
    typer.echo(f"[error] {msg}", err=True)
    raise typer.Exit(code=1)


def _load_workflow(path: Path) -> dict:
    try:
        wf = read_json(path)
    except ValueError as e:
        raise WorkflowSchemaError(f"{path} is not valid JSON: {e}") from e
    validate_workflow(wf)
    return wf


def _parse_map(pairs: List[str]) -> Dict[str, str]:
    rename_map: Dict[str, str] = {}
    for pair in pairs:
        old, sep, new = pair.partition("=")
        if not sep or not old or not new:
            raise typer.BadParameter(f"Expected OLD=NEW, got '{pair}'", param_hint="--map")
        rename_map[old] = new
    return rename_map


def _report(issues: List[str], title: str) -> None:
    if issues:
        typer.echo(f"{title}:")
        for it in issues:
            typer.echo(f"- {it}")


def _verify(wf: dict, rename_map: Dict[str, str]) -> List[str]:
    return find_stale_references(wf, rename_map) + dangling_targets(wf) + duplicate_names(wf)


def _output_for(input: Path, plan: PatchPlan, explicit: Optional[Path]) -> Path:
    if explicit is not None:
        return explicit
    if plan.output:
        return input.with_name(plan.output)
    return fixed_output_path(input)


@app.command()
def apply(
    inputs: List[Path] = typer.Option(..., "--input", "-i", exists=True, readable=True, help="Path to n8n workflow JSON (repeatable)"),
    plan_files: Optional[List[Path]] = typer.Option(None, "--plan", "-p", exists=True, readable=True, help="Patch plan (YAML/JSON), one per --input"),
    bundled: Optional[List[str]] = typer.Option(None, "--bundled", "-b", help="Plan shipped with flowpatch (see `plans`), one per --input"),
    outputs: Optional[List[Path]] = typer.Option(None, "--output", "-o", help="Where to write, one per --input; default is the plan's output name or '<input> (Fixed).json'"),
    strict: bool = typer.Option(False, "--strict", help="Fail on rename-map or post-rename issues instead of warning"),
    indent: int = typer.Option(2, "--indent", help="JSON indent of the written files"),
):
    """
    Apply patch plans (fixes, then renames) to workflows, pairing the n-th --input
    with the n-th plan. Every workflow is patched in memory first; nothing is
    written unless all of them succeed.
    """
    plan_files, bundled, outputs = plan_files or [], bundled or [], outputs or []
    if bool(plan_files) == bool(bundled):
        raise typer.BadParameter("Pass --plan or --bundled (not both), once per --input")
    sources = plan_files or bundled
    if len(sources) != len(inputs):
        raise typer.BadParameter(f"Got {len(inputs)} --input but {len(sources)} plans")
    if outputs and len(outputs) != len(inputs):
        raise typer.BadParameter(f"Got {len(inputs)} --input but {len(outputs)} --output")

    results = []
    for n, (input, source) in enumerate(zip(inputs, sources)):
        typer.echo(f"[{input.name}]")
        try:
            p = load_plan(source if plan_files else bundled_plan(source))
            wf = _load_workflow(input)

            map_issues = check_rename_map(p.renames, wf)
            _report(map_issues, "Rename map issues")
            if strict and map_issues:
                _fail(f"{input.name}: rename map rejected (--strict), nothing written")

            wf = apply_plan(wf, p)
        except FlowPatchError as e:
            _fail(f"{input.name}: {e} (nothing written)")

        issues = _verify(wf, p.renames)
        _report(issues, "Detected issues")
        if strict and issues:
            _fail(f"{input.name}: post-patch verification failed (--strict), nothing written")

        out = _output_for(input, p, outputs[n] if outputs else None)
        results.append((p, wf, out))

    for p, wf, out in results:
        write_json(out, wf, indent=indent)
        typer.echo(f"[ok] applied '{p.name}' ({len(p.fixes)} fixes, {len(p.renames)} renames) -> {out}")


@app.command()
def rename(
    input: Path = typer.Option(..., "--input", "-i", exists=True, readable=True, help="Path to n8n workflow JSON"),
    mapping: List[str] = typer.Option(..., "--map", "-m", help="OLD=NEW (repeatable, applied in order)"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Where to write; default '<input> (Fixed).json'"),
    strict: bool = typer.Option(False, "--strict", help="Fail on rename-map issues"),
    indent: int = typer.Option(2, "--indent", help="JSON indent of the written file"),
):
    """Rename nodes and rewrite every reference to them."""
    rename_map = _parse_map(mapping)
    try:
        wf = _load_workflow(input)
    except FlowPatchError as e:
        _fail(str(e))

    map_issues = check_rename_map(rename_map, wf)
    _report(map_issues, "Rename map issues")
    if strict and map_issues:
        _fail("rename map rejected (--strict)")

    wf = apply_renames(wf, rename_map)
    _report(find_stale_references(wf, rename_map), "Detected issues")

    out = output or fixed_output_path(input)
    write_json(out, wf, indent=indent)
    typer.echo(f"[ok] renamed {len(rename_map)} nodes -> {out}")


@app.command()
def check(
    input: Path = typer.Option(..., "--input", "-i", exists=True, readable=True, help="Path to n8n workflow JSON"),
):
    """Validate schema and connection graph; exit 1 if any issue is found."""
    try:
        wf = _load_workflow(input)
    except FlowPatchError as e:
        _fail(str(e))

    issues = dangling_targets(wf) + duplicate_names(wf)
    if issues:
        _report(issues, "Detected issues")
        raise typer.Exit(code=1)
    typer.echo(f"[ok] {input}: {len(wf.get('nodes') or [])} nodes, no issues")


@app.command()
def plans():
    """List the patch plans shipped with flowpatch."""
    for name in bundled_plans():
        p = load_plan(bundled_plan(name))
        typer.echo(f"{name}: {p.name} ({len(p.fixes)} fixes, {len(p.renames)} renames)")


if __name__ == "__main__":
    app()
