"""
Combinador lógico do Action Resolver.
Ordena o grafo topologicamente e combina os vereditos via conectivos booleanos.
"""

import logging
from collections import deque
from dataclasses import dataclass
from typing import Dict, List, Mapping, Sequence, Tuple

from .models import (
    ConditionResult, Connection, CyclicGraphError, LogicResult, Node, NodeKind,
    fold_text
)


logger = logging.getLogger(__name__)


CONNECTIVES = ('AND', 'OR', 'NOT', 'XOR')


@dataclass(frozen=True)
class GraphPlan:
    """Ordem de avaliação e arestas relevantes do grafo."""
    order: Tuple[Node, ...]
    inbound: Mapping[str, Tuple[str, ...]]
    signal_inputs: Tuple[str, ...]


def plan_graph(signal: Node, nodes: Sequence[Node], connections: Sequence[Connection]) -> GraphPlan:
    """
    Ordena condições e lógicas topologicamente (algoritmo de Kahn).

    Empates são resolvidos pela ordem de declaração. Arestas para nós
    desconhecidos são ignoradas; arestas para o sinal são guardadas à parte.

    Raises:
        CyclicGraphError: Se houver ciclo entre nós de condição/lógica
    """
    graph_nodes = [n for n in nodes if n.kind in (NodeKind.CONDITION, NodeKind.LOGIC)]
    position = {n.id: i for i, n in enumerate(graph_nodes)}

    inbound: Dict[str, List[str]] = {n.id: [] for n in graph_nodes}
    outbound: Dict[str, List[str]] = {n.id: [] for n in graph_nodes}
    signal_inputs: List[str] = []

    for conn in connections:
        if conn.source not in position:
            logger.warning(f"Conexão ignorada, origem desconhecida: {conn.source} -> {conn.target}")
            continue
        if conn.target == signal.id:
            if conn.source not in signal_inputs:
                signal_inputs.append(conn.source)
            continue
        if conn.target not in position:
            logger.warning(f"Conexão ignorada, destino desconhecido: {conn.source} -> {conn.target}")
            continue
        if conn.source not in inbound[conn.target]:
            inbound[conn.target].append(conn.source)
            outbound[conn.source].append(conn.target)

    pending = {node_id: len(sources) for node_id, sources in inbound.items()}
    ready = deque(n.id for n in graph_nodes if pending[n.id] == 0)
    order: List[Node] = []

    while ready:
        node_id = ready.popleft()
        order.append(graph_nodes[position[node_id]])
        released = []
        for target in outbound[node_id]:
            pending[target] -= 1
            if pending[target] == 0:
                released.append(target)
        ready.extend(sorted(released, key=position.get))

    if len(order) < len(graph_nodes):
        stuck = sorted((nid for nid, count in pending.items() if count > 0), key=position.get)
        raise CyclicGraphError(f"Cyclic graph: nodes {stuck} form or depend on a cycle")

    return GraphPlan(
        order=tuple(order),
        inbound={k: tuple(v) for k, v in inbound.items()},
        signal_inputs=tuple(signal_inputs),
    )


def connective_of(node: Node) -> str:
    """Conectivo declarado no nó (AND por padrão)."""
    config = node.config if isinstance(node.config, Mapping) else {}
    raw = config.get('connective', config.get('operator', config.get('operador', 'AND')))
    return fold_text(raw).upper()


def apply_connective(connective: str, inputs: Sequence[bool]) -> Tuple[bool, str]:
    """
    Aplica um conectivo aos vereditos de entrada.

    Returns:
        Tupla de (passou, motivo)
    """
    if not inputs:
        return False, "no inputs"

    passed_count = sum(1 for v in inputs if v)
    summary = f"{passed_count}/{len(inputs)} inputs passed"

    if connective == 'AND':
        return passed_count == len(inputs), summary
    if connective == 'OR':
        return passed_count > 0, summary
    if connective == 'XOR':
        return passed_count == 1, summary
    if connective == 'NOT':
        if len(inputs) == 1:
            return not inputs[0], f"input {'passed' if inputs[0] else 'failed'}, inverted"
        return passed_count == 0, f"{summary}, none required"
    return False, f"unknown connective '{connective}' (expected one of {list(CONNECTIVES)})"


def combine(plan: GraphPlan, condition_results: Sequence[ConditionResult]) -> Tuple[LogicResult, ...]:
    """
    Avalia os nós de lógica em ordem topológica.

    Args:
        plan: Plano do grafo
        condition_results: Resultados de todos os nós de condição

    Returns:
        Um LogicResult por nó de lógica, na ordem de avaliação
    """
    verdicts: Dict[str, bool] = {r.node_id: r.passed for r in condition_results}
    results: List[LogicResult] = []

    for node in plan.order:
        if node.kind != NodeKind.LOGIC:
            continue
        connective = connective_of(node)
        inputs = [verdicts[source] for source in plan.inbound.get(node.id, ()) if source in verdicts]
        passed, reason = apply_connective(connective, inputs)
        verdicts[node.id] = passed
        results.append(LogicResult(node.id, connective, passed, reason))
        logger.debug(f"Lógica {node.id} ({connective}): {'PASSOU' if passed else 'falhou'} - {reason}")

    return tuple(results)
