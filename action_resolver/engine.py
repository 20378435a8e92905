"""
Motor principal do Action Resolver.
Valida a requisição, executa o pipeline e monta a telemetria.
"""

from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Tuple
import logging

from .conditions import evaluate_condition, get_evaluator
from .derivation import derive_numbers
from .gating import apply_gating
from .history import parse_history
from .logic import combine, plan_graph
from .models import (
    ConfigurationError, Connection, MissingSignalError, Node, NodeKind,
    ResolverConfig, ResolverResult, SelectionMode, SignalConfig,
    as_roulette_number, fold_text
)


logger = logging.getLogger(__name__)


# ============================================================================
# ESQUEMA DA REQUISIÇÃO
# ============================================================================

@dataclass(frozen=True)
class ResolverRequest:
    """Requisição validada."""
    signal: Node
    signal_config: SignalConfig
    mode: SelectionMode
    nodes: Tuple[Node, ...]
    connections: Tuple[Connection, ...]
    history_input: Any

    @property
    def condition_nodes(self) -> Tuple[Node, ...]:
        return tuple(n for n in self.nodes if n.kind == NodeKind.CONDITION)


def _node_config(raw: Mapping[str, Any], kind: NodeKind) -> Any:
    """
    Extrai data.config. Só o sinal exige um objeto; condições e lógicas
    recebem o valor bruto e falham isoladamente na avaliação.
    """
    data = raw.get('data') or {}
    config = data.get('config') if isinstance(data, Mapping) else None
    if config is None:
        return {}
    if not isinstance(config, Mapping):
        if kind == NodeKind.SIGNAL:
            raise ConfigurationError(f"node {raw.get('id')!r}: data.config must be an object")
        return config
    return dict(config)


def parse_node(raw: Any) -> Node:
    """Valida um nó bruto da requisição."""
    if not isinstance(raw, Mapping):
        raise ConfigurationError("each node must be an object")
    node_id = raw.get('id')
    if node_id is None or isinstance(node_id, bool) or str(node_id).strip() == '':
        raise ConfigurationError("node without id")
    try:
        kind = NodeKind(fold_text(raw.get('type', '')))
    except ValueError:
        raise ConfigurationError(f"node {node_id!r}: unknown type {raw.get('type')!r}")

    subtype = raw.get('subtype')
    if subtype is None and isinstance(raw.get('data'), Mapping):
        subtype = raw['data'].get('conditionType')
    return Node(
        id=str(node_id),
        kind=kind,
        subtype=str(subtype) if subtype is not None else None,
        config=_node_config(raw, kind),
    )


def parse_connection(raw: Any) -> Connection:
    """Valida uma aresta; aceita from/to ou source/target."""
    if not isinstance(raw, Mapping):
        raise ConfigurationError("each connection must be an object")
    source = raw.get('from', raw.get('source'))
    target = raw.get('to', raw.get('target'))
    if source is None or target is None:
        raise ConfigurationError(f"connection without endpoints: {dict(raw)}")
    return Connection(str(source), str(target))


def _setting(name: str, value: Any, default: int) -> int:
    """Inteiro não negativo, ou o padrão quando o valor é inválido."""
    if value is None:
        return default
    if (isinstance(value, bool) or not isinstance(value, (int, float))
            or not float(value).is_integer() or value < 0):
        logger.warning(f"Valor inválido para {name}: {value!r}. Usando {default}")
        return default
    return int(value)


def parse_manual_numbers(raw: Any) -> Tuple[Tuple[int, ...], Tuple[Any, ...]]:
    """Separa números manuais válidos (0-36, sem duplicatas) dos rejeitados."""
    if raw is None:
        return (), ()
    if not isinstance(raw, (list, tuple)):
        return (), (raw,)
    accepted: List[int] = []
    rejected: List[Any] = []
    for item in raw:
        number = as_roulette_number(item)
        if number is None:
            rejected.append(item)
        elif number not in accepted:
            accepted.append(number)
    if rejected:
        logger.warning(f"Números manuais ignorados: {rejected}")
    return tuple(accepted), tuple(rejected)


def parse_signal_config(
    config: Mapping[str, Any],
    gating: Mapping[str, Any],
    mode: SelectionMode,
    defaults: ResolverConfig,
) -> SignalConfig:
    """
    Monta a configuração do sinal.

    Precedência: `gating` da requisição > config do nó de sinal > padrões.
    """
    def pick(*keys):
        for source in (gating, config):
            for key in keys:
                if source.get(key) is not None:
                    return source[key]
        return None

    manual, rejected = parse_manual_numbers(config.get('manualNumbers', config.get('numeros')))
    exclude_zero = pick('excludeZero')
    if exclude_zero is not None and not isinstance(exclude_zero, bool):
        logger.warning(f"Valor inválido para excludeZero: {exclude_zero!r}")
        exclude_zero = None

    return SignalConfig(
        action=str(config.get('action', config.get('acao', 'bet'))),
        selection_mode=mode,
        manual_numbers=manual,
        rejected_manual=rejected,
        max_numbers_auto=_setting('maxNumbersAuto', pick('maxNumbersAuto'), defaults.max_numbers_auto),
        max_numbers_hybrid=_setting('maxNumbersHybrid', pick('maxNumbersHybrid'), defaults.max_numbers_hybrid),
        min_manual_numbers_hybrid=_setting(
            'minManualHybrid', pick('minManualHybrid', 'minManualNumbersHybrid'),
            defaults.min_manual_numbers_hybrid,
        ),
        exclude_zero=defaults.exclude_zero if exclude_zero is None else exclude_zero,
    )


def parse_request(payload: Any, defaults: ResolverConfig) -> ResolverRequest:
    """
    Valida o corpo da requisição.

    Raises:
        ConfigurationError: Para requisições estruturalmente inválidas
    """
    if not isinstance(payload, Mapping):
        raise ConfigurationError("request body must be a JSON object")

    raw_nodes = payload.get('nodes')
    if not isinstance(raw_nodes, list) or not raw_nodes:
        raise ConfigurationError("nodes required")
    nodes = tuple(parse_node(n) for n in raw_nodes)

    ids = [n.id for n in nodes]
    duplicates = sorted({i for i in ids if ids.count(i) > 1})
    if duplicates:
        raise ConfigurationError(f"duplicate node ids: {duplicates}")

    signals = [n for n in nodes if n.kind == NodeKind.SIGNAL]
    if not signals:
        raise MissingSignalError("missing signal node")
    if len(signals) > 1:
        raise MissingSignalError(f"exactly one signal node is allowed, got {len(signals)}")
    signal = signals[0]

    # Subtipos desconhecidos são rejeitados antes de qualquer avaliação
    for node in nodes:
        if node.kind == NodeKind.CONDITION:
            get_evaluator(node.subtype)

    raw_connections = payload.get('connections') or []
    if not isinstance(raw_connections, list):
        raise ConfigurationError("connections must be a list")
    connections = tuple(parse_connection(c) for c in raw_connections)

    raw_mode = payload.get('selectionMode') or signal.config.get('selectionMode') or defaults.default_selection_mode
    try:
        mode = SelectionMode(fold_text(raw_mode))
    except ValueError:
        raise ConfigurationError(f"unknown selection mode: {raw_mode!r}")

    gating = payload.get('gating') or {}
    if not isinstance(gating, Mapping):
        raise ConfigurationError("gating must be an object")

    return ResolverRequest(
        signal=signal,
        signal_config=parse_signal_config(signal.config, gating, mode, defaults),
        mode=mode,
        nodes=nodes,
        connections=connections,
        history_input=payload.get('historyInput', payload.get('history')),
    )


# ============================================================================
# RESOLVER
# ============================================================================

class ActionResolver:
    """
    Função de decisão pura sobre histórico e grafo de condições.
    Sem estado entre requisições: pode ser compartilhado entre threads.
    """

    def __init__(self, config: Optional[ResolverConfig] = None):
        self.config = config or ResolverConfig()

    def resolve(self, payload: Any) -> ResolverResult:
        """
        Resolve uma requisição completa.

        Args:
            payload: Corpo JSON já decodificado

        Returns:
            ResolverResult (success=False apenas em erros de configuração)
        """
        try:
            request = parse_request(payload, self.config)
            plan = plan_graph(request.signal, request.nodes, request.connections)
        except ConfigurationError as e:
            logger.warning(f"Requisição rejeitada: {e}")
            return ResolverResult.failure(str(e))

        history = parse_history(request.history_input, self.config.max_history_length)

        condition_results = tuple(evaluate_condition(n, history.tokens) for n in request.condition_nodes)
        logic_results = combine(plan, condition_results)

        derivation = derive_numbers(
            request.signal, request.signal_config, request.mode,
            condition_results, logic_results, plan.signal_inputs,
        )
        gating = apply_gating(derivation.candidates, derivation.manual, request.signal_config, request.mode)

        logger.info(
            f"Resolução {request.mode.value}: {len(history)} giros, "
            f"{sum(r.passed for r in condition_results)}/{len(condition_results)} condições, "
            f"{len(gating.numbers)} números"
        )

        return ResolverResult(
            success=True,
            mode=request.mode,
            derived_numbers=gating.numbers,
            condition_results=condition_results,
            logic_results=logic_results,
            derived_by=derivation.entries,
            gating=gating.outcome,
            inputs={
                'historyLength': len(history),
                'lastToken': history.last.to_json() if history.last else None,
                'droppedTokens': len(history.dropped),
                'truncatedTokens': history.truncated,
                'selectionModeEvaluated': request.mode.value,
            },
        )
