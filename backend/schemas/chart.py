"""
schemas/chart.py
────────────────
The tuple handed to the external charting widget.

The widget's own lifecycle (staged loading, concurrency limits) is not
ours; the only contract is that ``visible`` is exactly what the consuming
UI region reported.
"""

from typing import Literal

from pydantic import BaseModel

ChartType = Literal["price", "market_cap"]


class ChartSpec(BaseModel):
    """Everything the chart widget needs for one item."""

    symbol: str
    interval: str
    scale: Literal["log", "linear"]
    theme: Literal["dark", "light"]
    visible: bool
