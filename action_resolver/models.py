"""
Modelos de dados do Action Resolver.
Implementa dataclasses imutáveis, eixos de classificação e a hierarquia de erros.
"""

import json
import logging
import re
import unicodedata
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Set, Tuple, Union


logger = logging.getLogger(__name__)


class Color(Enum):
    """Cores da roleta."""
    RED = "red"
    BLACK = "black"
    GREEN = "green"


class SelectionMode(Enum):
    """Modos de seleção de números do nó de sinal."""
    AUTO = "auto"
    HYBRID = "hybrid"
    MANUAL = "manual"


class NodeKind(Enum):
    """Tipos de nó do grafo de estratégia."""
    SIGNAL = "signal"
    CONDITION = "condition"
    LOGIC = "logic"


# Números vermelhos na roleta europeia
RED_NUMBERS: Set[int] = {1, 3, 5, 7, 9, 12, 14, 16, 18, 19, 21, 23, 25, 27, 30, 32, 34, 36}
BLACK_NUMBERS: Set[int] = set(range(1, 37)) - RED_NUMBERS

# Ordem da roda europeia (zero único)
EUROPEAN_WHEEL: Tuple[int, ...] = (
    0, 32, 15, 19, 4, 21, 2, 25, 17, 34, 6,
    27, 13, 36, 11, 30, 8, 23, 10, 5, 24,
    16, 33, 1, 20, 14, 31, 9, 22, 18, 29,
    7, 28, 12, 35, 3, 26,
)

# Setores clássicos da roda; a ordem do dicionário é a ordem de desempate
SECTORS: Dict[str, Tuple[int, ...]] = {
    'voisins': (22, 18, 29, 7, 28, 12, 35, 3, 26, 0, 32, 15, 19, 4, 21, 2, 25),
    'tiers': (27, 13, 36, 11, 30, 8, 23, 10, 5, 24, 16, 33),
    'orphelins': (1, 20, 14, 31, 9, 17, 34, 6),
}


# ============================================================================
# EXCEÇÕES
# ============================================================================

class ResolverError(Exception):
    """Erro base do Action Resolver."""
    pass


class ConfigurationError(ResolverError):
    """Configuração estrutural inválida; a requisição inteira falha."""
    pass


class MissingSignalError(ConfigurationError):
    """Nenhum nó de sinal (ou mais de um) na requisição."""
    pass


class CyclicGraphError(ConfigurationError):
    """O grafo de condições/lógica contém um ciclo."""
    pass


class UnknownConditionError(ConfigurationError):
    """Subtipo de condição sem avaliador registrado."""
    pass


class ConditionConfigError(ResolverError):
    """Configuração inválida de um único nó; isolada ao próprio nó."""
    pass


# ============================================================================
# UTILITÁRIOS
# ============================================================================

# Número da roleta em texto: um ou dois dígitos ASCII
NUMBER_TEXT = re.compile(r"[0-9]{1,2}")


def fold_text(raw: Any) -> str:
    """Normaliza texto: minúsculas, sem acentos e sem espaços nas bordas."""
    text = unicodedata.normalize('NFKD', str(raw).strip().lower())
    return ''.join(c for c in text if not unicodedata.combining(c))


def as_roulette_number(raw: Any) -> Optional[int]:
    """Converte para inteiro 0-36 ou retorna None."""
    if isinstance(raw, bool):
        return None
    if isinstance(raw, float):
        if not raw.is_integer():
            return None
        raw = int(raw)
    if isinstance(raw, str):
        raw = raw.strip()
        if not NUMBER_TEXT.fullmatch(raw):
            return None
        raw = int(raw)
    if isinstance(raw, int) and 0 <= raw <= 36:
        return raw
    return None


def wheel_distance(a: int, b: int) -> int:
    """Distância circular (em casas) entre dois números na roda europeia."""
    ia, ib = EUROPEAN_WHEEL.index(a), EUROPEAN_WHEEL.index(b)
    diff = abs(ia - ib)
    return min(diff, len(EUROPEAN_WHEEL) - diff)


def wheel_neighbors(reference: int, radius: int, include_zero: bool = True) -> List[int]:
    """Números a até `radius` casas de `reference`, na ordem da roda."""
    return [
        n for n in EUROPEAN_WHEEL
        if wheel_distance(n, reference) <= radius and (include_zero or n != 0)
    ]


def wheel_opposite(number: int) -> int:
    """Número diametralmente oposto na roda."""
    idx = EUROPEAN_WHEEL.index(number)
    return EUROPEAN_WHEEL[(idx + len(EUROPEAN_WHEEL) // 2) % len(EUROPEAN_WHEEL)]


# ============================================================================
# RESULTADOS DA ROLETA
# ============================================================================

@dataclass(frozen=True)
class OutcomeToken:
    """
    Um resultado registrado: cor e, quando conhecido, o número.
    O zero é sempre verde e sempre numérico.
    """
    color: Color
    number: Optional[int] = None

    @staticmethod
    def from_number(n: int) -> 'OutcomeToken':
        """Cria um token numérico classificando a cor."""
        if n == 0:
            return OutcomeToken(Color.GREEN, 0)
        color = Color.RED if n in RED_NUMBERS else Color.BLACK
        return OutcomeToken(color, n)

    def to_json(self) -> Union[int, str]:
        return self.number if self.number is not None else self.color.value

    def __str__(self) -> str:
        return str(self.to_json())


History = Tuple[OutcomeToken, ...]


# ============================================================================
# EIXOS DE CLASSIFICAÇÃO
# ============================================================================

# Sinônimos aceitos na configuração dos nós
VALUE_ALIASES: Dict[str, str] = {
    'vermelho': 'red', 'r': 'red', 'v': 'red',
    'preto': 'black', 'b': 'black', 'p': 'black',
    'verde': 'green', 'zero': 'green', 'g': 'green',
    'par': 'even', 'impar': 'odd',
    'baixo': 'low', 'alto': 'high',
}


@dataclass(frozen=True)
class Axis:
    """
    Dimensão de classificação dos resultados.

    A ordem de `values` é a ordem fixa de desempate usada pelos avaliadores.
    """
    name: str
    values: Tuple[str, ...]
    classify: Callable[[OutcomeToken], Optional[str]]
    expand: Callable[[str], List[int]]

    @property
    def candidates(self) -> Tuple[str, ...]:
        """Valores apostáveis (o verde nunca é candidato implícito)."""
        return tuple(v for v in self.values if v != Color.GREEN.value)

    def value_of(self, token: OutcomeToken) -> Optional[str]:
        return self.classify(token)

    def numbers_for(self, value: str) -> List[int]:
        return self.expand(value)

    def normalize_value(self, raw: Any) -> str:
        """Converte um valor configurado (com sinônimos) para o valor canônico."""
        folded = fold_text(raw)
        value = VALUE_ALIASES.get(folded, folded)
        if value not in self.values:
            raise ConditionConfigError(
                f"value '{raw}' is not valid for axis '{self.name}' (expected one of {list(self.values)})"
            )
        return value


def _numeric(fn: Callable[[int], Optional[str]]) -> Callable[[OutcomeToken], Optional[str]]:
    """Classificadores que só se aplicam a números de 1 a 36."""
    def classify(token: OutcomeToken) -> Optional[str]:
        if token.number is None or token.number == 0:
            return None
        return fn(token.number)
    return classify


def _expand_color(value: str) -> List[int]:
    if value == 'red':
        return sorted(RED_NUMBERS)
    if value == 'black':
        return sorted(BLACK_NUMBERS)
    return [0]


AXES: Dict[str, Axis] = {
    'color': Axis(
        name='color',
        values=('red', 'black', 'green'),
        classify=lambda token: token.color.value,
        expand=_expand_color,
    ),
    'parity': Axis(
        name='parity',
        values=('even', 'odd'),
        classify=_numeric(lambda n: 'even' if n % 2 == 0 else 'odd'),
        expand=lambda v: [n for n in range(1, 37) if (n % 2 == 0) == (v == 'even')],
    ),
    'height': Axis(
        name='height',
        values=('low', 'high'),
        classify=_numeric(lambda n: 'low' if n <= 18 else 'high'),
        expand=lambda v: list(range(1, 19)) if v == 'low' else list(range(19, 37)),
    ),
    'dozen': Axis(
        name='dozen',
        values=('d1', 'd2', 'd3'),
        classify=_numeric(lambda n: f"d{(n - 1) // 12 + 1}"),
        expand=lambda v: list(range((int(v[1]) - 1) * 12 + 1, int(v[1]) * 12 + 1)),
    ),
    'column': Axis(
        name='column',
        values=('c1', 'c2', 'c3'),
        classify=_numeric(lambda n: f"c{(n - 1) % 3 + 1}"),
        expand=lambda v: list(range(int(v[1]), 37, 3)),
    ),
}


def get_axis(name: Any) -> Axis:
    """Obtém um eixo pelo nome ou levanta ConditionConfigError."""
    key = fold_text(name)
    aliases = {'cor': 'color', 'paridade': 'parity', 'altura': 'height',
               'duzia': 'dozen', 'coluna': 'column'}
    key = aliases.get(key, key)
    if key not in AXES:
        raise ConditionConfigError(f"unknown axis '{name}' (expected one of {sorted(AXES)})")
    return AXES[key]


@dataclass(frozen=True)
class AxisValue:
    """Valor derivado de um eixo, ex.: ('color', 'red')."""
    axis: str
    value: str

    def numbers(self) -> List[int]:
        return AXES[self.axis].numbers_for(self.value)

    def __str__(self) -> str:
        return self.value


DerivedValue = Union[int, AxisValue, Tuple[int, ...], None]


def derived_value_to_json(value: DerivedValue) -> Any:
    if isinstance(value, AxisValue):
        return value.value
    if isinstance(value, tuple):
        return list(value)
    return value


# ============================================================================
# GRAFO DA ESTRATÉGIA
# ============================================================================

@dataclass(frozen=True)
class Node:
    """Vértice do grafo: sinal, condição ou lógica."""
    id: str
    kind: NodeKind
    subtype: Optional[str] = None
    config: Any = field(default_factory=dict, hash=False, compare=False)


@dataclass(frozen=True)
class Connection:
    """Aresta dirigida source -> target."""
    source: str
    target: str


@dataclass(frozen=True)
class SignalConfig:
    """Parâmetros globais de seleção e gating declarados no nó de sinal."""
    action: str = 'bet'
    selection_mode: SelectionMode = SelectionMode.AUTO
    manual_numbers: Tuple[int, ...] = ()
    rejected_manual: Tuple[Any, ...] = ()
    max_numbers_auto: int = 18
    max_numbers_hybrid: int = 24
    min_manual_numbers_hybrid: int = 1
    exclude_zero: bool = False

    @property
    def is_bet(self) -> bool:
        return fold_text(self.action) in ('bet', 'apostar')

    def cap_for(self, mode: SelectionMode) -> Optional[int]:
        """Limite máximo de números aplicável ao modo."""
        if mode == SelectionMode.AUTO:
            return self.max_numbers_auto
        if mode == SelectionMode.HYBRID:
            return self.max_numbers_hybrid
        return None

    def rules(self) -> dict:
        return {
            'maxNumbersAuto': self.max_numbers_auto,
            'maxNumbersHybrid': self.max_numbers_hybrid,
            'minManualHybrid': self.min_manual_numbers_hybrid,
            'excludeZero': self.exclude_zero,
        }


# ============================================================================
# RESULTADOS E TELEMETRIA
# ============================================================================

@dataclass(frozen=True)
class ConditionResult:
    """Veredito de um nó de condição."""
    node_id: str
    subtype: str
    passed: bool
    reason: str
    derived_value: DerivedValue = None

    def to_dict(self) -> dict:
        data = {
            'nodeId': self.node_id,
            'subtype': self.subtype,
            'pass': self.passed,
            'reason': self.reason,
        }
        if self.derived_value is not None:
            data['derivedValue'] = derived_value_to_json(self.derived_value)
        if isinstance(self.derived_value, AxisValue):
            data['axis'] = self.derived_value.axis
        return data


@dataclass(frozen=True)
class LogicResult:
    """Veredito de um nó de lógica."""
    node_id: str
    connective: str
    passed: bool
    reason: str

    def to_dict(self) -> dict:
        return {
            'nodeId': self.node_id,
            'connective': self.connective,
            'pass': self.passed,
            'reason': self.reason,
        }


@dataclass(frozen=True)
class DerivationEntry:
    """Registro de qual nó contribuiu com quais números e por quê."""
    node_id: str
    reason: str
    subtype: Optional[str] = None
    params: Optional[Dict[str, Any]] = field(default=None, hash=False, compare=False)

    def to_dict(self) -> dict:
        data: Dict[str, Any] = {'nodeId': self.node_id, 'reason': self.reason}
        if self.subtype:
            data['subtype'] = self.subtype
        if self.params is not None:
            data['params'] = self.params
        return data


@dataclass(frozen=True)
class GatingOutcome:
    """Resumo do que o gating alterou."""
    gated: bool
    mode: SelectionMode
    pre_count: int
    post_count: int
    reasons: Tuple[str, ...] = ()
    rules: Dict[str, Any] = field(default_factory=dict, hash=False, compare=False)
    steps: Tuple[Dict[str, Any], ...] = ()

    def to_dict(self) -> dict:
        return {
            'gated': self.gated,
            'mode': self.mode.value,
            'rules': dict(self.rules),
            'preCount': self.pre_count,
            'postCount': self.post_count,
            'reasons': list(self.reasons),
            'steps': [dict(s) for s in self.steps],
        }


@dataclass(frozen=True)
class ResolverResult:
    """Resposta completa e explicável do resolver."""
    success: bool
    mode: Optional[SelectionMode]
    derived_numbers: Tuple[int, ...] = ()
    condition_results: Tuple[ConditionResult, ...] = ()
    logic_results: Tuple[LogicResult, ...] = ()
    derived_by: Tuple[DerivationEntry, ...] = ()
    gating: Optional[GatingOutcome] = None
    inputs: Dict[str, Any] = field(default_factory=dict, hash=False, compare=False)
    error: Optional[str] = None

    @property
    def gated(self) -> bool:
        return bool(self.gating and self.gating.gated)

    @property
    def gate_reasons(self) -> List[str]:
        return list(self.gating.reasons) if self.gating else []

    @staticmethod
    def failure(error: str, mode: Optional[SelectionMode] = None) -> 'ResolverResult':
        return ResolverResult(success=False, mode=mode, error=error)

    def to_dict(self) -> dict:
        """Converte para dicionário para a API."""
        data = {
            'success': self.success,
            'mode': self.mode.value if self.mode else None,
            'derivedNumbers': list(self.derived_numbers),
            'gated': self.gated,
            'gateReasons': self.gate_reasons,
            'telemetry': {
                'derivedBy': [e.to_dict() for e in self.derived_by],
                'conditionResults': [r.to_dict() for r in self.condition_results],
                'logicResults': [r.to_dict() for r in self.logic_results],
                'gatingApplied': self.gating.to_dict() if self.gating else None,
                'inputs': dict(self.inputs),
            },
        }
        if self.error is not None:
            data['error'] = self.error
        return data


# ============================================================================
# CONFIGURAÇÃO
# ============================================================================

@dataclass
class ResolverConfig:
    """Padrões do resolver, sobrescritos pelo nó de sinal e pela requisição."""
    default_selection_mode: str = 'auto'
    max_numbers_auto: int = 18
    max_numbers_hybrid: int = 24
    min_manual_numbers_hybrid: int = 1
    exclude_zero: bool = False
    max_history_length: Optional[int] = None

    @classmethod
    def from_file(cls, file_path: Path) -> 'ResolverConfig':
        """Carrega a configuração de um arquivo JSON."""
        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except FileNotFoundError:
            logger.warning(f"Arquivo de configuração não encontrado: {file_path}. Usando padrões.")
            return cls()
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in config file: {e}")

        if not isinstance(data, dict):
            raise ConfigurationError("Config file must contain a JSON object")

        known = set(cls.__dataclass_fields__)
        unknown = sorted(set(data) - known)
        if unknown:
            logger.warning(f"Chaves de configuração ignoradas: {unknown}")
        config = cls(**{k: v for k, v in data.items() if k in known})
        config.validate()
        return config

    def validate(self) -> None:
        """Valida os valores numéricos e o modo padrão."""
        try:
            SelectionMode(self.default_selection_mode)
        except ValueError:
            raise ConfigurationError(f"Invalid default_selection_mode: {self.default_selection_mode}")
        for name in ('max_numbers_auto', 'max_numbers_hybrid',
                     'min_manual_numbers_hybrid', 'max_history_length'):
            value = getattr(self, name)
            if value is None and name == 'max_history_length':
                continue
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ConfigurationError(f"{name} must be a non-negative integer")

    def save_to_file(self, file_path: Path) -> None:
        """Salva a configuração em JSON."""
        with open(file_path, 'w', encoding='utf-8') as f:
            json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)

    def to_dict(self) -> dict:
        """Converte para dicionário."""
        return {
            'default_selection_mode': self.default_selection_mode,
            'max_numbers_auto': self.max_numbers_auto,
            'max_numbers_hybrid': self.max_numbers_hybrid,
            'min_manual_numbers_hybrid': self.min_manual_numbers_hybrid,
            'exclude_zero': self.exclude_zero,
            'max_history_length': self.max_history_length,
        }
