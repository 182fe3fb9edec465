"""
transforms/annual.py — Helpers over annual basket series.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from cgim_shared.models.trade import AnnualPoint, BalancePoint, Metrics


def year_range(year_start: int, year_end: int) -> list[int]:
    """Inclusive, ascending; swapped bounds are reordered."""
    lo, hi = sorted((int(year_start), int(year_end)))
    return list(range(lo, hi + 1))


def series_from_totals(
    year_start: int, year_end: int, totals: Mapping[int, Metrics] | None = None
) -> list[AnnualPoint]:
    """One point per year in range; years missing from totals are zero."""
    totals = totals or {}
    points = []
    for year in year_range(year_start, year_end):
        m = totals.get(year) or Metrics()
        points.append(AnnualPoint.from_totals(year, m.value, m.weight))
    return points


def trade_balance(
    import_points: Iterable[AnnualPoint], export_points: Iterable[AnnualPoint]
) -> list[BalancePoint]:
    """Export minus import per year over the union of years, ascending."""
    imports = {p.year: p for p in import_points or []}
    exports = {p.year: p for p in export_points or []}
    out: list[BalancePoint] = []
    for year in sorted(set(imports) | set(exports)):
        imp = imports.get(year)
        exp = exports.get(year)
        import_value = imp.value if imp else 0.0
        export_value = exp.value if exp else 0.0
        out.append(
            BalancePoint(
                year=year,
                export_value=export_value,
                import_value=import_value,
                balance=export_value - import_value,
                export_price=exp.unit_price if exp else 0.0,
                import_price=imp.unit_price if imp else 0.0,
            )
        )
    return out
