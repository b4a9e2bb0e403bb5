"""Sample table data for the REPL."""

from __future__ import annotations

import random
from datetime import date, timedelta

from claude_table.table import STATUSES, TableRow

CATEGORIES = ("Electronics", "Clothing", "Food", "Books", "Toys", "Home", "Sports")
NAMES = (
    "Widget A", "Widget B", "Widget C", "Product X", "Product Y", "Product Z",
    "Item Alpha", "Item Beta", "Item Gamma", "Thing One", "Thing Two", "Thing Three",
    "Gadget Pro", "Gadget Plus", "Gadget Lite", "Device Max", "Device Mini", "Device Standard",
    "Tool Master", "Tool Basic", "Tool Premium", "Component A", "Component B", "Component C",
)  # fmt: skip

START_DATE = date(2023, 1, 1)


def generate_sample_rows(count: int = 75, seed: int | None = None, today: date | None = None) -> list[TableRow]:
    """``count`` random rows with ids ``row-1`` .. ``row-<count>``; ``seed`` makes them repeatable."""
    rng = random.Random(seed)
    end = today or date.today()
    span = max(0, (end - START_DATE).days)
    return [
        TableRow(
            id=f"row-{i + 1}",
            name=rng.choice(NAMES),
            amount=float(rng.randint(10, 1009)),
            status=rng.choice(STATUSES),
            date=(START_DATE + timedelta(days=rng.randint(0, span))).isoformat(),
            category=rng.choice(CATEGORIES),
        )
        for i in range(count)
    ]
