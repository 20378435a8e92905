"""
Avaliadores de condição do Action Resolver.
Implementa o padrão Strategy com classes abstratas e um registro por subtipo.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .history import normalize_token
from .models import (
    Axis, AxisValue, ConditionConfigError, ConditionResult, DerivedValue,
    History, Node, OutcomeToken, SECTORS, UnknownConditionError,
    as_roulette_number, fold_text, get_axis, wheel_distance, wheel_neighbors,
    wheel_opposite
)


logger = logging.getLogger(__name__)


Verdict = Tuple[bool, DerivedValue, str]

EMPTY_HISTORY_REASON = "insufficient data: empty history"


# ============================================================================
# LEITURA DE CONFIGURAÇÃO
# ============================================================================

def _int_field(raw: Mapping[str, Any], key: str, default: Optional[int] = None, minimum: int = 0) -> int:
    """Lê um inteiro obrigatório (ou com padrão) de uma configuração."""
    value = raw.get(key, default)
    if value is None:
        raise ConditionConfigError(f"'{key}' is required")
    if isinstance(value, bool):
        raise ConditionConfigError(f"'{key}' must be an integer")
    try:
        number = int(value)
    except (TypeError, ValueError, OverflowError):
        raise ConditionConfigError(f"'{key}' must be an integer, got {value!r}")
    if number != value and not (isinstance(value, str) and value.strip().lstrip('-').isdigit()):
        raise ConditionConfigError(f"'{key}' must be an integer, got {value!r}")
    if number < minimum:
        raise ConditionConfigError(f"'{key}' must be >= {minimum}, got {number}")
    return number


def _number_field(raw: Mapping[str, Any], key: str = 'number') -> int:
    """Lê um número de roleta (0-36) obrigatório."""
    if raw.get(key) is None:
        raise ConditionConfigError(f"'{key}' is required")
    number = as_roulette_number(raw[key])
    if number is None:
        raise ConditionConfigError(f"'{key}' must be a roulette number 0-36, got {raw[key]!r}")
    return number


def _choice_field(raw: Mapping[str, Any], key: str, choices: Dict[str, str], default: str) -> str:
    """Lê um campo de escolha, aceitando sinônimos."""
    value = fold_text(raw.get(key, default))
    if value not in choices:
        raise ConditionConfigError(f"'{key}' must be one of {sorted(set(choices.values()))}, got {raw.get(key)!r}")
    return choices[value]


def _bool_field(raw: Mapping[str, Any], key: str, default: bool) -> bool:
    value = raw.get(key, default)
    if not isinstance(value, bool):
        raise ConditionConfigError(f"'{key}' must be a boolean")
    return value


def _ratio_field(raw: Mapping[str, Any], key: str, default: float) -> float:
    """Lê uma proporção entre 0 e 1."""
    value = raw.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not 0 <= value <= 1:
        raise ConditionConfigError(f"'{key}' must be a number between 0 and 1, got {value!r}")
    return float(value)


def _value_field(raw: Mapping[str, Any], axis: Axis, key: str = 'value') -> str:
    """Lê um valor obrigatório do eixo."""
    if raw.get(key) is None:
        raise ConditionConfigError(f"'{key}' is required")
    return axis.normalize_value(raw[key])


SECTOR_PREFIXES = (('voisin', 'voisins'), ('tiers', 'tiers'), ('orphel', 'orphelins'))


def _sector_field(value: Any) -> str:
    """Resolve o nome de um setor (aceita 'Voisins de Zero', 'Tiers du Cylindre'...)."""
    if value is None:
        raise ConditionConfigError("'sector' is required when 'auto' is false")
    name = fold_text(value)
    for prefix, sector in SECTOR_PREFIXES:
        if name.startswith(prefix):
            return sector
    raise ConditionConfigError(f"'sector' must be one of {list(SECTORS)}, got {value!r}")


# ============================================================================
# CONFIGURAÇÕES POR SUBTIPO
# ============================================================================

@dataclass(frozen=True)
class AbsenceConfig:
    axis: Axis
    min_absent_spins: int = 3
    window_size: int = 12
    target: Optional[str] = None


@dataclass(frozen=True)
class RepetitionConfig:
    axis: Axis
    min_run_length: int = 3
    value: Optional[str] = None


@dataclass(frozen=True)
class RepeatNumberConfig:
    number: int
    min_occurrences: int = 2


@dataclass(frozen=True)
class SpecificNumberConfig:
    number: int
    mode: str = 'occurred'
    window_size: int = 10


@dataclass(frozen=True)
class NeighborsConfig:
    number: int
    radius: int = 2
    include_zero: bool = True


@dataclass(frozen=True)
class MirrorConfig:
    radius: int = 0
    include_zero: bool = True


@dataclass(frozen=True)
class HotGroupConfig:
    axis: Axis
    window_size: int = 12
    min_occurrences: int = 5


@dataclass(frozen=True)
class AlternationConfig:
    axis: Axis
    length: int = 4


@dataclass(frozen=True)
class SequenceConfig:
    sequence: Tuple[OutcomeToken, ...]
    mode: str = 'exact'


@dataclass(frozen=True)
class TrendConfig:
    axis: Axis
    value: str
    window_size: int = 10
    min_ratio: float = 0.6


@dataclass(frozen=True)
class BreakConfig:
    axis: Axis
    value: str
    min_run_length: int = 3


@dataclass(frozen=True)
class TimeWindowConfig:
    start: int = 0
    end: Optional[int] = None


@dataclass(frozen=True)
class SectorConfig:
    sector: Optional[str]
    window_size: int
    min_hits: int
    min_ratio: float = 0.0


# ============================================================================
# AVALIADORES
# ============================================================================

class ConditionEvaluator(ABC):
    """Classe base abstrata para avaliadores de condição."""

    subtypes: Tuple[str, ...] = ()
    fields: Tuple[str, ...] = ()

    def parse_config(self, raw: Mapping[str, Any]) -> Any:
        """
        Valida a configuração bruta de um nó.

        Args:
            raw: Objeto de configuração do nó

        Returns:
            Dataclass de configuração do subtipo

        Raises:
            ConditionConfigError: Se a configuração for inválida
        """
        if not isinstance(raw, Mapping):
            raise ConditionConfigError("config must be an object")
        unknown = sorted(set(raw) - set(self.fields))
        if unknown:
            logger.warning(f"{self.__class__.__name__}: chaves ignoradas {unknown}")
        return self._parse(raw)

    @abstractmethod
    def _parse(self, raw: Mapping[str, Any]) -> Any:
        pass

    @abstractmethod
    def evaluate(self, history: History, config: Any) -> Verdict:
        """
        Avalia a condição contra um histórico não vazio.

        Args:
            history: Resultados normalizados (mais recente por último)
            config: Configuração já validada

        Returns:
            Tupla de (passou, valor_derivado, motivo)
        """
        pass


CONDITION_REGISTRY: Dict[str, ConditionEvaluator] = {}


def register_condition(cls):
    """Registra um avaliador sob todos os seus subtipos."""
    instance = cls()
    for subtype in cls.subtypes:
        if subtype in CONDITION_REGISTRY:
            raise ValueError(f"Duplicate condition subtype: {subtype}")
        CONDITION_REGISTRY[subtype] = instance
    return cls


def registered_subtypes() -> List[str]:
    return sorted(CONDITION_REGISTRY)


def get_evaluator(subtype: Optional[str]) -> ConditionEvaluator:
    evaluator = CONDITION_REGISTRY.get(subtype or '')
    if evaluator is None:
        raise UnknownConditionError(f"Unknown condition subtype: {subtype!r}")
    return evaluator


def _trailing_count(history: History, predicate) -> int:
    """Conta entradas consecutivas, a partir da mais recente, que satisfazem o predicado."""
    count = 0
    for token in reversed(history):
        if not predicate(token):
            break
        count += 1
    return count


@register_condition
class AbsenceEvaluator(ConditionEvaluator):
    """Valor do eixo ausente nas últimas rodadas da janela."""

    subtypes = ('absence',)
    fields = ('axis', 'minAbsentSpins', 'windowSize', 'target')

    def _parse(self, raw):
        axis = get_axis(raw.get('axis', 'color'))
        target = raw.get('target')
        return AbsenceConfig(
            axis=axis,
            min_absent_spins=_int_field(raw, 'minAbsentSpins', 3, minimum=1),
            window_size=_int_field(raw, 'windowSize', 12, minimum=1),
            target=axis.normalize_value(target) if target is not None else None,
        )

    def evaluate(self, history, config):
        axis = config.axis
        window = history[-config.window_size:]
        candidates = (config.target,) if config.target else axis.candidates

        # Maior ausência vence; empate resolvido pela ordem do eixo
        best_value, best_count = candidates[0], -1
        for value in candidates:
            count = _trailing_count(window, lambda t, v=value: axis.value_of(t) != v)
            if count > best_count:
                best_value, best_count = value, count

        if best_count >= config.min_absent_spins:
            reason = (f"{best_value} absent for the last {best_count} spins "
                      f"(min {config.min_absent_spins}, window {len(window)})")
            return True, AxisValue(axis.name, best_value), reason

        reason = (f"longest absence is {best_value} with {best_count} spins "
                  f"(min {config.min_absent_spins}, window {len(window)})")
        return False, None, reason


@register_condition
class RepetitionEvaluator(ConditionEvaluator):
    """Sequência atual de valores idênticos no eixo."""

    subtypes = ('repetition',)
    fields = ('axis', 'minRunLength', 'value')

    def _parse(self, raw):
        axis = get_axis(raw.get('axis', 'color'))
        value = raw.get('value')
        return RepetitionConfig(
            axis=axis,
            min_run_length=_int_field(raw, 'minRunLength', 3, minimum=1),
            value=axis.normalize_value(value) if value is not None else None,
        )

    def evaluate(self, history, config):
        axis = config.axis
        last_value = axis.value_of(history[-1])
        if last_value is None:
            return False, None, f"most recent spin has no {axis.name} value"

        run = _trailing_count(history, lambda t: axis.value_of(t) == last_value)

        if config.value and last_value != config.value:
            return False, None, f"current run is {last_value} x{run}, expected {config.value}"
        if run >= config.min_run_length:
            reason = f"{last_value} repeated {run} times (min {config.min_run_length})"
            return True, AxisValue(axis.name, last_value), reason
        return False, None, f"{last_value} repeated {run} times (min {config.min_run_length})"


@register_condition
class RepeatNumberEvaluator(ConditionEvaluator):
    """Ocorrências de um número em todo o histórico."""

    subtypes = ('repeat-number',)
    fields = ('number', 'minOccurrences')

    def _parse(self, raw):
        return RepeatNumberConfig(
            number=_number_field(raw),
            min_occurrences=_int_field(raw, 'minOccurrences', 2, minimum=1),
        )

    def evaluate(self, history, config):
        count = sum(1 for t in history if t.number == config.number)
        reason = (f"{config.number} appeared {count} times in {len(history)} spins "
                  f"(min {config.min_occurrences})")
        if count >= config.min_occurrences:
            return True, config.number, reason
        return False, None, reason


@register_condition
class SpecificNumberEvaluator(ConditionEvaluator):
    """Número ocorreu no histórico, ou está ausente nas últimas rodadas."""

    subtypes = ('specific-number',)
    fields = ('number', 'mode', 'windowSize')
    modes = {'occurred': 'occurred', 'ocorreu': 'occurred', 'absent': 'absent', 'ausente': 'absent'}

    def _parse(self, raw):
        return SpecificNumberConfig(
            number=_number_field(raw),
            mode=_choice_field(raw, 'mode', self.modes, 'occurred'),
            window_size=_int_field(raw, 'windowSize', 10, minimum=1),
        )

    def evaluate(self, history, config):
        if config.mode == 'occurred':
            seen = any(t.number == config.number for t in history)
            reason = f"{config.number} {'occurred' if seen else 'never occurred'} in {len(history)} spins"
            return seen, config.number if seen else None, reason

        window = history[-config.window_size:]
        absent = all(t.number != config.number for t in window)
        reason = f"{config.number} {'absent from' if absent else 'present in'} the last {len(window)} spins"
        return absent, config.number if absent else None, reason


@register_condition
class NeighborsEvaluator(ConditionEvaluator):
    """Algum número recente caiu na vizinhança da referência na roda."""

    subtypes = ('neighbors',)
    fields = ('number', 'radius', 'includeZero')

    def _parse(self, raw):
        return NeighborsConfig(
            number=_number_field(raw),
            radius=_int_field(raw, 'radius', 2),
            include_zero=_bool_field(raw, 'includeZero', True),
        )

    def evaluate(self, history, config):
        recent = history[-max(config.radius * 2, 12):]
        hits = [t.number for t in recent
                if t.number is not None and wheel_distance(t.number, config.number) <= config.radius]
        if not hits:
            return False, None, (f"no spin within {config.radius} pockets of {config.number} "
                                 f"in the last {len(recent)} spins")
        numbers = tuple(wheel_neighbors(config.number, config.radius, config.include_zero))
        reason = f"{len(hits)} spins within {config.radius} pockets of {config.number}"
        return True, numbers, reason


@register_condition
class MirrorEvaluator(ConditionEvaluator):
    """Oposto diametral do último número, com vizinhos."""

    subtypes = ('mirror',)
    fields = ('radius', 'includeZero')

    def _parse(self, raw):
        return MirrorConfig(
            radius=_int_field(raw, 'radius', 0),
            include_zero=_bool_field(raw, 'includeZero', True),
        )

    def evaluate(self, history, config):
        last = next((t.number for t in reversed(history) if t.number is not None), None)
        if last is None:
            return False, None, "no numeric spin in history"
        opposite = wheel_opposite(last)
        numbers = tuple(wheel_neighbors(opposite, config.radius, config.include_zero))
        return True, numbers, f"opposite of {last} is {opposite} (radius {config.radius})"


class HotGroupEvaluator(ConditionEvaluator):
    """Grupos (dúzias ou colunas) com frequência mínima na janela."""

    axis_name = ''
    fields = ('windowSize', 'minOccurrences')

    def _parse(self, raw):
        return HotGroupConfig(
            axis=get_axis(self.axis_name),
            window_size=_int_field(raw, 'windowSize', 12, minimum=1),
            min_occurrences=_int_field(raw, 'minOccurrences', 5, minimum=1),
        )

    def evaluate(self, history, config):
        axis = config.axis
        window = history[-config.window_size:]
        counts = {v: 0 for v in axis.values}
        for token in window:
            value = axis.value_of(token)
            if value is not None:
                counts[value] += 1

        hot = [v for v in axis.values if counts[v] >= config.min_occurrences]
        summary = ', '.join(f"{v}={counts[v]}" for v in axis.values)
        if not hot:
            return False, None, f"no {axis.name} reached {config.min_occurrences} hits ({summary})"

        numbers: List[int] = []
        for value in hot:
            numbers.extend(axis.numbers_for(value))
        return True, tuple(numbers), f"hot {axis.name}: {', '.join(hot)} ({summary})"


@register_condition
class DozenHotEvaluator(HotGroupEvaluator):
    subtypes = ('dozen-hot', 'dozen_hot')
    axis_name = 'dozen'


@register_condition
class ColumnHotEvaluator(HotGroupEvaluator):
    subtypes = ('column-hot', 'column_hot')
    axis_name = 'column'


@register_condition
class AlternationEvaluator(ConditionEvaluator):
    """Últimas rodadas alternando estritamente entre dois valores do eixo."""

    subtypes = ('alternation',)
    fields = ('axis', 'length')

    def _parse(self, raw):
        return AlternationConfig(
            axis=get_axis(raw.get('axis', 'color')),
            length=_int_field(raw, 'length', 4, minimum=2),
        )

    def evaluate(self, history, config):
        axis = config.axis
        if len(history) < config.length:
            return False, None, f"insufficient data: {len(history)} spins, need {config.length}"

        values = [axis.value_of(t) for t in history[-config.length:]]
        if any(v is None or v == 'green' for v in values):
            return False, None, f"zero or unclassified spin within the last {config.length}"
        alternating = len(set(values)) == 2 and all(a != b for a, b in zip(values, values[1:]))
        if not alternating:
            return False, None, f"last {config.length} spins do not alternate: {'-'.join(values)}"

        expected = values[-2]
        return True, AxisValue(axis.name, expected), f"{'-'.join(values)} alternating, next {expected}"


@register_condition
class SequenceEvaluator(ConditionEvaluator):
    """Sequência customizada no fim do histórico (exata) ou na janela recente (parcial)."""

    subtypes = ('sequence', 'sequence_custom', 'pattern')
    fields = ('sequence', 'mode')
    modes = {'exact': 'exact', 'exato': 'exact', 'partial': 'partial', 'parcial': 'partial'}

    def _parse(self, raw):
        items = raw.get('sequence')
        if not isinstance(items, (list, tuple)) or not items:
            raise ConditionConfigError("'sequence' must be a non-empty list")
        sequence = []
        for item in items:
            token = normalize_token(item)
            if token is None:
                raise ConditionConfigError(f"unrecognized sequence token {item!r}")
            sequence.append(token)
        return SequenceConfig(
            sequence=tuple(sequence),
            mode=_choice_field(raw, 'mode', self.modes, 'exact'),
        )

    @staticmethod
    def _matches(pattern: OutcomeToken, token: OutcomeToken) -> bool:
        if pattern.number is not None:
            return token.number == pattern.number
        return token.color == pattern.color

    def _matches_at(self, history: History, start: int, sequence) -> bool:
        return all(self._matches(p, history[start + i]) for i, p in enumerate(sequence))

    def evaluate(self, history, config):
        seq = config.sequence
        label = '-'.join(str(t) for t in seq)
        if len(history) < len(seq):
            return False, None, f"insufficient data: {len(history)} spins, need {len(seq)}"

        if config.mode == 'exact':
            found = self._matches_at(history, len(history) - len(seq), seq)
        else:
            window = history[-(len(seq) + 10):]
            found = any(self._matches_at(window, s, seq) for s in range(len(window) - len(seq) + 1))

        if not found:
            return False, None, f"sequence {label} not found ({config.mode})"

        last = seq[-1]
        derived = last.number if last.number is not None else AxisValue('color', last.color.value)
        return True, derived, f"sequence {label} matched ({config.mode})"


@register_condition
class TrendEvaluator(ConditionEvaluator):
    """Frequência de um valor do eixo na janela recente."""

    subtypes = ('trend',)
    fields = ('axis', 'value', 'windowSize', 'minRatio')

    def _parse(self, raw):
        axis = get_axis(raw.get('axis', 'color'))
        return TrendConfig(
            axis=axis,
            value=_value_field(raw, axis),
            window_size=_int_field(raw, 'windowSize', 10, minimum=1),
            min_ratio=_ratio_field(raw, 'minRatio', 0.6),
        )

    def evaluate(self, history, config):
        window = history[-config.window_size:]
        hits = sum(1 for t in window if config.axis.value_of(t) == config.value)
        ratio = hits / len(window)
        reason = (f"{config.value} in {hits}/{len(window)} spins "
                  f"({ratio:.2f}, min {config.min_ratio:.2f})")
        if ratio >= config.min_ratio:
            return True, AxisValue(config.axis.name, config.value), reason
        return False, None, reason


@register_condition
class BreakEvaluator(ConditionEvaluator):
    """
    Sequência longa de um valor, apostando na quebra.
    Deriva os demais valores do eixo (exceto o verde).
    """

    subtypes = ('break',)
    fields = ('axis', 'value', 'minRunLength')

    def _parse(self, raw):
        axis = get_axis(raw.get('axis', 'color'))
        return BreakConfig(
            axis=axis,
            value=_value_field(raw, axis),
            min_run_length=_int_field(raw, 'minRunLength', 3, minimum=1),
        )

    def evaluate(self, history, config):
        axis = config.axis
        run = _trailing_count(history, lambda t: axis.value_of(t) == config.value)
        reason = f"{config.value} run of {run} (min {config.min_run_length})"
        if run < config.min_run_length:
            return False, None, reason

        others = [v for v in axis.candidates if v != config.value]
        if len(others) == 1:
            return True, AxisValue(axis.name, others[0]), f"{reason}, expecting {others[0]}"
        numbers: List[int] = []
        for value in others:
            numbers.extend(axis.numbers_for(value))
        return True, tuple(numbers), f"{reason}, expecting {' or '.join(others)}"


@register_condition
class TimeWindowEvaluator(ConditionEvaluator):
    """Tamanho do histórico dentro do intervalo [start, end]."""

    subtypes = ('time-window',)
    fields = ('start', 'end')

    def _parse(self, raw):
        start = _int_field(raw, 'start', 0)
        end = _int_field(raw, 'end') if raw.get('end') is not None else None
        if end is not None and end < start:
            raise ConditionConfigError(f"'end' ({end}) must be >= 'start' ({start})")
        return TimeWindowConfig(start=start, end=end)

    def evaluate(self, history, config):
        length = len(history)
        upper = 'inf' if config.end is None else str(config.end)
        inside = length >= config.start and (config.end is None or length <= config.end)
        verb = 'within' if inside else 'outside'
        return inside, None, f"{length} spins {verb} [{config.start}, {upper}]"


@register_condition
class SectorEvaluator(ConditionEvaluator):
    """
    Setores da roda (Voisins, Tiers, Orphelins).

    Com `sector`, exige `minHits` acertos do setor nas últimas `windowSize`
    rodadas. Sem setor (ou com `auto`), escolhe o setor dominante entre os
    últimos números e passa se sua proporção atingir `minRatio`.
    """

    subtypes = ('sector', 'setorDominante')
    fields = ('sector', 'setor', 'auto', 'windowSize', 'minHits', 'minRatio')

    def _parse(self, raw):
        name = raw.get('sector', raw.get('setor'))
        auto = _bool_field(raw, 'auto', name is None)
        window = _int_field(raw, 'windowSize', 18 if auto else 6, minimum=1)
        return SectorConfig(
            sector=None if auto else _sector_field(name),
            window_size=window,
            min_hits=_int_field(raw, 'minHits', (window + 1) // 2, minimum=1),
            min_ratio=_ratio_field(raw, 'minRatio', 0.0),
        )

    def evaluate(self, history, config):
        if config.sector is None:
            return self._dominant(history, config)

        members = SECTORS[config.sector]
        window = history[-config.window_size:]
        hits = sum(1 for t in window if t.number is not None and t.number in members)
        reason = f"{config.sector}: {hits} hits in the last {len(window)} spins (min {config.min_hits})"
        if hits >= config.min_hits:
            return True, members, reason
        return False, None, reason

    @staticmethod
    def _dominant(history: History, config: SectorConfig) -> Verdict:
        numbers = [t.number for t in history if t.number is not None][-max(3, config.window_size):]
        if not numbers:
            return False, None, "no numeric spin in history"

        counts = {name: sum(1 for n in numbers if n in members) for name, members in SECTORS.items()}
        best = max(SECTORS, key=lambda name: counts[name])
        ratio = counts[best] / len(numbers)
        reason = (f"dominant sector {best}: {counts[best]}/{len(numbers)} "
                  f"({ratio:.2f}, min {config.min_ratio:.2f})")
        if ratio >= config.min_ratio:
            return True, SECTORS[best], reason
        return False, None, reason


# ============================================================================
# AVALIAÇÃO ISOLADA POR NÓ
# ============================================================================

def evaluate_condition(node: Node, history: History) -> ConditionResult:
    """
    Avalia um nó de condição, isolando qualquer falha ao próprio nó.

    Raises:
        UnknownConditionError: Se o subtipo não estiver registrado
    """
    evaluator = get_evaluator(node.subtype)
    subtype = node.subtype or ''

    try:
        config = evaluator.parse_config(node.config)
    except ConditionConfigError as e:
        logger.warning(f"Condição {node.id} com configuração inválida: {e}")
        return ConditionResult(node.id, subtype, False, f"invalid configuration: {e}")

    if not history:
        return ConditionResult(node.id, subtype, False, EMPTY_HISTORY_REASON)

    try:
        passed, derived, reason = evaluator.evaluate(history, config)
    except Exception as e:
        logger.exception(f"Erro ao avaliar condição {node.id} ({subtype}): {e}")
        return ConditionResult(node.id, subtype, False, f"evaluation error: {e}")

    logger.debug(f"Condição {node.id} ({subtype}): {'PASSOU' if passed else 'falhou'} - {reason}")
    return ConditionResult(node.id, subtype, passed, reason, derived if passed else None)
