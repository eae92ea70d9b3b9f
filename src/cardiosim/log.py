import logging
from rich.logging import RichHandler
from rich.console import Console
from rich.table import Table
from rich.text import Text


def log_table(rich_table):
    """Generate an ascii formatted presentation of a Rich table
    Eliminates any column styling
    """
    console = Console(width=150)
    with console.capture() as capture:
        console.print(rich_table)
    return Text.from_ansi(capture.get())


def dict_table(title: str, values: dict[str, float], fmt: str = "{:.3f}") -> Table:
    """Single-row table with one column per entry of ``values``"""
    table = Table(title=title)
    row = []
    for k, v in values.items():
        table.add_column(k)
        row.append(fmt.format(v))
    table.add_row(*row)
    return table


def setup_logging(level=logging.DEBUG):
    handlers = [RichHandler(console=Console(width=200))]
    logging.basicConfig(
        level=level,
        handlers=handlers,
    )
