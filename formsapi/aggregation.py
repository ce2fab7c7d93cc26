"""Group stored response values for dashboard widgets."""
from typing import Dict, Iterable, List

from formsapi.models.dashboard import AggregatePoint

BLANK = "Blank"


def group_key(row) -> str:
    if row.boolean_value is not None:
        return "Yes" if row.boolean_value else "No"
    return row.value or BLANK


def aggregate(rows: Iterable, aggregation: str = "count") -> List[AggregatePoint]:
    """Group value rows by their display value and reduce each group.

    ``count`` counts rows; ``sum``/``avg``/``min``/``max`` reduce the numeric
    column and fall back to counting rows that have no number. Points are
    sorted by value, largest first, then by name.
    """
    groups: Dict[str, List[float]] = {}
    for row in rows:
        key = group_key(row)
        if aggregation != "count" and row.boolean_value is None and row.numeric_value is not None:
            groups.setdefault(key, []).append(float(row.numeric_value))
        else:
            groups.setdefault(key, []).append(1.0)

    points = []
    for name, values in groups.items():
        if aggregation == "count":
            value = float(len(values))
        elif aggregation == "sum":
            value = sum(values)
        elif aggregation == "avg":
            value = sum(values) / len(values)
        elif aggregation == "min":
            value = min(values)
        elif aggregation == "max":
            value = max(values)
        else:
            raise ValueError(f"Unknown aggregation '{aggregation}'")
        points.append(AggregatePoint(name=name, value=value))

    return sorted(points, key=lambda p: (-p.value, p.name))
