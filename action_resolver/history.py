"""
Normalizador de histórico.
Converte texto livre ou listas de tokens numa sequência canônica de resultados.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Tuple, Union

from .models import Color, History, OutcomeToken, as_roulette_number, fold_text


logger = logging.getLogger(__name__)


# Delimitadores aceitos no texto: vírgula, ponto e vírgula, barra vertical e espaços
DELIMITERS = re.compile(r'[,;|\s]+')

COLOR_WORDS = {
    'red': Color.RED, 'vermelho': Color.RED, 'r': Color.RED, 'v': Color.RED,
    'black': Color.BLACK, 'preto': Color.BLACK, 'b': Color.BLACK, 'p': Color.BLACK,
}

ZERO_WORDS = {'zero', 'verde', 'green', 'g'}


@dataclass(frozen=True)
class ParsedHistory:
    """Histórico normalizado (mais antigo primeiro) e tokens descartados."""
    tokens: History
    dropped: Tuple[str, ...] = ()
    truncated: int = 0

    def __len__(self) -> int:
        return len(self.tokens)

    @property
    def last(self) -> Optional[OutcomeToken]:
        return self.tokens[-1] if self.tokens else None


def normalize_token(raw: Any) -> Optional[OutcomeToken]:
    """
    Converte um token bruto num OutcomeToken.

    Args:
        raw: Número (0-36), string numérica ou nome de cor

    Returns:
        OutcomeToken ou None se o token não for reconhecido
    """
    number = as_roulette_number(raw)
    if number is not None:
        return OutcomeToken.from_number(number)
    if not isinstance(raw, str):
        return None

    word = fold_text(raw)
    if word in ZERO_WORDS:
        return OutcomeToken.from_number(0)
    if word in COLOR_WORDS:
        return OutcomeToken(COLOR_WORDS[word])
    return None


def parse_history(
    raw: Union[str, Iterable[Any], None],
    max_length: Optional[int] = None
) -> ParsedHistory:
    """
    Normaliza o histórico recebido.

    A convenção é "mais recente por último". Tokens não reconhecidos são
    descartados sem erro; uma entrada vazia resulta num histórico vazio.

    Args:
        raw: Texto delimitado ou lista de tokens
        max_length: Mantém apenas os N resultados mais recentes (None = sem limite)

    Returns:
        ParsedHistory
    """
    if raw is None:
        return ParsedHistory(())

    if isinstance(raw, str):
        items: List[Any] = [t for t in DELIMITERS.split(raw) if t]
    elif isinstance(raw, (list, tuple)):
        items = list(raw)
    else:
        logger.warning(f"Histórico em formato não suportado: {type(raw).__name__}")
        return ParsedHistory((), (str(raw),))

    tokens: List[OutcomeToken] = []
    dropped: List[str] = []
    for item in items:
        token = normalize_token(item)
        if token is None:
            dropped.append(str(item))
        else:
            tokens.append(token)

    if dropped:
        logger.warning(f"{len(dropped)} token(s) de histórico ignorado(s): {dropped[:10]}")

    truncated = 0
    if max_length is not None and len(tokens) > max_length:
        logger.info(f"Histórico truncado de {len(tokens)} para os {max_length} mais recentes")
        truncated = len(tokens) - max_length
        tokens = tokens[-max_length:] if max_length > 0 else []

    return ParsedHistory(tuple(tokens), tuple(dropped), truncated)
