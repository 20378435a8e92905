"""
Derivação de números candidatos a partir dos nós que passaram.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple

from .models import (
    AxisValue, ConditionResult, DerivationEntry, DerivedValue, LogicResult,
    Node, SelectionMode, SignalConfig, derived_value_to_json
)


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Derivation:
    """Lista bruta de candidatos (ordenada, sem duplicatas) e a trilha de derivação."""
    candidates: Tuple[int, ...]
    manual: Tuple[int, ...]
    entries: Tuple[DerivationEntry, ...]


def expand_derived_value(value: DerivedValue) -> List[int]:
    """
    Expande um valor derivado nos números que ele representa.

    int -> [n]; AxisValue -> todos os números do valor no eixo; tupla -> ela mesma.
    """
    if value is None:
        return []
    if isinstance(value, AxisValue):
        return value.numbers()
    if isinstance(value, tuple):
        return list(value)
    return [value]


def _merge(target: List[int], seen: set, numbers: Sequence[int]) -> None:
    for n in numbers:
        if n not in seen:
            seen.add(n)
            target.append(n)


def derive_numbers(
    signal: Node,
    signal_config: SignalConfig,
    mode: SelectionMode,
    condition_results: Sequence[ConditionResult],
    logic_results: Sequence[LogicResult],
    signal_inputs: Sequence[str],
) -> Derivation:
    """
    Monta a lista bruta de candidatos.

    Args:
        signal: Nó de sinal
        signal_config: Configuração validada do sinal
        mode: Modo de seleção efetivo
        condition_results: Resultados na ordem de declaração dos nós
        logic_results: Resultados dos nós de lógica
        signal_inputs: Nós conectados diretamente ao sinal

    Returns:
        Derivation com candidatos (manuais primeiro no modo híbrido)
    """
    entries: List[DerivationEntry] = []
    manual = signal_config.manual_numbers if mode != SelectionMode.AUTO else ()

    if mode != SelectionMode.AUTO:
        entries.append(DerivationEntry(
            signal.id, 'manual-selection',
            params={'numbers': list(manual), 'rejected': list(signal_config.rejected_manual)},
        ))

    if not signal_config.is_bet:
        entries.append(DerivationEntry(signal.id, 'action-not-bet', params={'action': signal_config.action}))
        return Derivation((), (), tuple(entries))

    candidates: List[int] = []
    seen: set = set()
    _merge(candidates, seen, manual)

    if mode == SelectionMode.MANUAL:
        return Derivation(tuple(candidates), tuple(manual), tuple(entries))

    verdicts: Dict[str, bool] = {r.node_id: r.passed for r in condition_results}
    verdicts.update((r.node_id, r.passed) for r in logic_results)
    if signal_inputs and not any(verdicts.get(node_id, False) for node_id in signal_inputs):
        entries.append(DerivationEntry(
            signal.id, 'signal-inputs-failed', params={'inputs': list(signal_inputs)},
        ))
        logger.info(f"Nenhuma entrada do sinal {signal.id} passou; derivação bloqueada")
        return Derivation(tuple(candidates), tuple(manual), tuple(entries))

    derived_count = 0
    for result in condition_results:
        if not result.passed:
            continue
        numbers = expand_derived_value(result.derived_value)
        if not numbers:
            continue
        derived_count += len(numbers)
        _merge(candidates, seen, numbers)
        entries.append(DerivationEntry(
            result.node_id, result.reason, subtype=result.subtype,
            params={'derivedValue': derived_value_to_json(result.derived_value), 'numbers': numbers},
        ))

    if mode == SelectionMode.HYBRID:
        entries.append(DerivationEntry(
            signal.id, 'hybrid-merge',
            params={'manualCount': len(manual), 'candidateCount': len(candidates)},
        ))

    logger.debug(f"Derivação ({mode.value}): {len(candidates)} candidatos de {derived_count} contribuições")
    return Derivation(tuple(candidates), tuple(manual), tuple(entries))
