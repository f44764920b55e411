# flowpatch/utils/graph.py
from typing import Any, Dict, List

import networkx as nx


def build_graph(workflow: Dict[str, Any]) -> nx.DiGraph:
    """
    Build a directed graph keyed by node *name* from n8n native json.
    Every port is followed (main, ai_tool, ...). Names referenced by the
    connections but absent from `nodes` are added with known=False.
    """
    G = nx.DiGraph()
    for n in workflow.get("nodes", []) or []:
        name = n.get("name")
        if name is None:
            continue
        G.add_node(name, id=n.get("id"), type=n.get("type"), known=True)

    # n8n connections: connections[<nodeName>][<port>][<outputIndex>] -> list of {node: <name>, type, index}
    conns = workflow.get("connections") or {}
    for src, ports in conns.items():
        if src not in G:
            G.add_node(src, known=False)
        if not isinstance(ports, dict):
            continue
        for port, slots in ports.items():
            for out_idx, slot in enumerate(slots or []):
                for hop in slot or []:
                    if not isinstance(hop, dict):
                        continue
                    tgt = hop.get("node")
                    if tgt is None:
                        continue
                    if tgt not in G:
                        G.add_node(tgt, known=False)
                    G.add_edge(src, tgt, port=port, output=out_idx)
    return G


def dangling_targets(workflow: Dict[str, Any]) -> List[str]:
    """Connection sources/targets that do not name any node, as [GRAPH] issues."""
    G = build_graph(workflow)
    issues: List[str] = []
    for name, data in G.nodes(data=True):
        if data.get("known"):
            continue
        if G.out_degree(name) > 0:
            issues.append(f"[GRAPH] Connections keyed by unknown node '{name}'")
        for pred in sorted(G.predecessors(name)):
            issues.append(f"[GRAPH] '{pred}' connects to unknown node '{name}'")
    return issues


def duplicate_names(workflow: Dict[str, Any]) -> List[str]:
    """Node names must be unique since connections and pinData key on them."""
    seen: Dict[str, int] = {}
    for n in workflow.get("nodes", []) or []:
        name = n.get("name")
        seen[name] = seen.get(name, 0) + 1
    return [f"[GRAPH] Duplicate node name '{name}' ({count} nodes)"
            for name, count in seen.items() if count > 1]
