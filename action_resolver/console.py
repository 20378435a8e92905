"""
Saída de console com rich: configuração de logging e renderização de resultados.
"""

import logging

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .models import ResolverResult


def setup_logging(level: int = logging.INFO) -> None:
    """Setup logging configuration."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)]
    )


def _verdict(passed: bool) -> Text:
    return Text("PASS", style="bold green") if passed else Text("FAIL", style="red")


def render_result(console: Console, result: ResolverResult) -> None:
    """Exibe o resultado e a telemetria em tabelas."""
    if not result.success:
        console.print(Panel(f"[bold red]{result.error}[/bold red]", title="Erro de configuração"))
        return

    numbers = ', '.join(str(n) for n in result.derived_numbers) or '(nenhum)'
    header = f"[bold cyan]Modo:[/bold cyan] {result.mode.value}\n[bold cyan]Números:[/bold cyan] {numbers}"
    console.print(Panel(header, title="Action Resolver"))

    conditions = Table(title="Condições", show_header=True)
    conditions.add_column("Nó", style="bold")
    conditions.add_column("Subtipo")
    conditions.add_column("Resultado", justify="center")
    conditions.add_column("Motivo")
    for r in result.condition_results:
        conditions.add_row(r.node_id, r.subtype, _verdict(r.passed), r.reason)
    console.print(conditions)

    if result.logic_results:
        logic = Table(title="Lógica", show_header=True)
        logic.add_column("Nó", style="bold")
        logic.add_column("Conectivo")
        logic.add_column("Resultado", justify="center")
        logic.add_column("Motivo")
        for r in result.logic_results:
            logic.add_row(r.node_id, r.connective, _verdict(r.passed), r.reason)
        console.print(logic)

    derivation = Table(title="Derivação", show_header=True)
    derivation.add_column("Nó", style="bold")
    derivation.add_column("Motivo")
    derivation.add_column("Números", overflow="fold")
    for entry in result.derived_by:
        params = entry.params or {}
        nums = params.get('numbers')
        derivation.add_row(entry.node_id, entry.reason, ', '.join(map(str, nums)) if nums else '')
    console.print(derivation)

    gating = result.gating
    if gating is not None:
        style = "yellow" if gating.gated else "green"
        reasons = '; '.join(gating.reasons) or 'nenhum'
        console.print(
            f"[{style}]Gating: {gating.pre_count} -> {gating.post_count} (motivos: {reasons})[/{style}]"
        )
