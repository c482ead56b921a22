"""Report tables for the CLI commands."""

from __future__ import annotations

from typing import Any

from rich.table import Table as RichTable


class Table(RichTable):
    """A rich table whose cells fold onto extra lines rather than being cut.

    Failure reasons and resource names in reconcile reports are often wider
    than the terminal; losing their tail hides the useful part.
    """

    def add_column(self, *args: Any, **kwargs: Any) -> None:
        kwargs.setdefault("overflow", "fold")
        super().add_column(*args, **kwargs)
