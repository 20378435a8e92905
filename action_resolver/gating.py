"""
Gating de candidatos: exclusão do zero, mínimo de manuais e limite máximo.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Sequence, Tuple

from .models import GatingOutcome, SelectionMode, SignalConfig


logger = logging.getLogger(__name__)


REASON_ZERO_EXCLUDED = 'zero excluded'
REASON_INSUFFICIENT_MANUAL = 'insufficient manual numbers'
REASON_MAX_EXCEEDED = 'exceeded max numbers'


@dataclass(frozen=True)
class GatingResult:
    numbers: Tuple[int, ...]
    outcome: GatingOutcome


def apply_gating(
    candidates: Sequence[int],
    manual: Sequence[int],
    signal_config: SignalConfig,
    mode: SelectionMode,
) -> GatingResult:
    """
    Aplica as restrições de capacidade e elegibilidade.

    Nunca aborta: faltas de números manuais e excesso de candidatos viram
    motivos em `reasons`. A ordem estabelecida (manuais primeiro) é preservada.

    Args:
        candidates: Lista bruta ordenada
        manual: Números manuais válidos
        signal_config: Regras de gating efetivas
        mode: Modo de seleção

    Returns:
        GatingResult com os números finais e o resumo para telemetria
    """
    current: List[int] = list(candidates)
    reasons: List[str] = []
    steps: List[Dict[str, Any]] = []

    # 1. Exclusão do zero
    if signal_config.exclude_zero and 0 in current:
        before = len(current)
        current = [n for n in current if n != 0]
        reasons.append(REASON_ZERO_EXCLUDED)
        steps.append({'reason': REASON_ZERO_EXCLUDED, 'before': before, 'after': len(current)})

    # 2. Limite aplicável ao modo
    cap = signal_config.cap_for(mode)

    # 3. Mínimo de números manuais no modo híbrido
    if mode == SelectionMode.HYBRID:
        surviving = [n for n in manual if n in current]
        required = signal_config.min_manual_numbers_hybrid
        if len(surviving) < required:
            reasons.append(REASON_INSUFFICIENT_MANUAL)
            steps.append({'reason': REASON_INSUFFICIENT_MANUAL,
                          'required': required, 'available': len(surviving)})

    # 4. Truncamento ao limite
    if cap is not None and len(current) > cap:
        before = len(current)
        current = current[:cap]
        reasons.append(REASON_MAX_EXCEEDED)
        steps.append({'reason': REASON_MAX_EXCEEDED, 'before': before, 'after': len(current), 'max': cap})

    gated = current != list(candidates)
    if reasons:
        logger.info(f"Gating ({mode.value}): {len(candidates)} -> {len(current)} {reasons}")

    outcome = GatingOutcome(
        gated=gated,
        mode=mode,
        pre_count=len(candidates),
        post_count=len(current),
        reasons=tuple(reasons),
        rules=signal_config.rules(),
        steps=tuple(steps),
    )
    return GatingResult(tuple(current), outcome)
