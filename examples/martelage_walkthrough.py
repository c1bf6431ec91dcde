"""
Marking Round Walkthrough

Builds a small mixed oak/beech marking on a 0.25 ha parcel, runs it under
two tariffs and prints the stand summary, per-species rows and the
alerts raised on the inputs.

Prerequisites:
    pip install -e ".[examples]"

Usage:
    python examples/martelage_walkthrough.py
"""

from rich.console import Console
from rich.table import Table
from rich.panel import Panel

from pymartelage import (
    PriceEntry,
    PriceTable,
    Scope,
    ScopedHeightOverrides,
    Stem,
    SynthesisParams,
    TarifMethod,
    TarifSelection,
    compute_martelage_stats,
)

console = Console()

PARCEL_SURFACE_M2 = 2500.0


def build_marking():
    """Stems recorded on parcel P7 of forest F1."""
    records = [
        ('HETRE_COMMUN', 27.0, 19.0, 1),
        ('HETRE_COMMUN', 38.0, None, 1),
        ('HETRE_COMMUN', 36.0, 24.5, 0),
        ('HETRE_COMMUN', 48.0, 28.0, 2),
        ('HETRE_COMMUN', 52.0, None, 1),
        ('CH_SESSILE', 41.0, 26.0, 0),
        ('CH_SESSILE', 44.0, None, 1),
        ('CH_SESSILE', 58.0, 29.5, 0),
        ('CHARME', 22.0, None, 3),
        ('CHARME', 24.0, 16.0, 2),
    ]
    stems = [
        Stem(id=f"T{i}", parcel_id='P7', species_code=code, diameter_cm=d, height_m=h, quality=q)
        for i, (code, d, h, q) in enumerate(records, start=1)
    ]
    stems.append(Stem(id='T99', parcel_id='P7', species_code='CH_SESSILE', diameter_cm=78.0,
                      category='ARBRE_BIO', note='cavités', gps_wkt='POINT(5.12 47.3)'))
    return stems


def height_overrides():
    """Forest-level heights refined for this parcel."""
    registry = (ScopedHeightOverrides()
                .with_scope(Scope.forest('F1'), {'HETRE_COMMUN': {50: 29.0}, 'CHARME': {20: 15.0}})
                .with_scope(Scope.local('P7'), {'HETRE_COMMUN': {50: 30.5}}))
    return registry.effective('F1', 'P7')


def price_table():
    return PriceTable([
        PriceEntry('CH_SESSILE', 'BO', 40, 120, 280.0),
        PriceEntry('HETRE_COMMUN', 'BO', 35, 120, 75.0),
        PriceEntry('*', 'BI', 20, 120, 32.0),
        PriceEntry('*', 'BCh', 5, 120, 45.0),
        PriceEntry('*', 'PATE', 5, 120, 18.0),
    ])


def fmt(value, digits=1):
    return "-" if value is None else f"{value:,.{digits}f}"


def print_summary(title, stats):
    console.print(Panel(f"[bold]{title}[/bold]"))
    table = Table(show_header=False)
    table.add_column("Figure", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Stems / ha", fmt(stats.n_per_ha, 0))
    table.add_row("G / ha (m2)", fmt(stats.g_per_ha, 2))
    table.add_row("Dg (cm)", fmt(stats.dg_cm))
    table.add_row("V / ha (m3)", fmt(stats.v_per_ha))
    table.add_row("Revenue / ha (EUR)", fmt(stats.revenue_per_ha, 0))
    table.add_row("Lorey height (m)", fmt(stats.lorey_height_m))
    status = "[green]yes[/green]" if stats.volume_available else "[red]no[/red]"
    table.add_row("Volume available", status)
    console.print(table)

    if stats.missing_height_species_names:
        console.print(
            f"[yellow]Missing heights:[/yellow] {', '.join(stats.missing_height_species_names)} "
            f"(classes {dict(stats.missing_heights)})"
        )

    species = Table(title="Species")
    for column in ("Species", "N", "G %", "V (m3)", "EUR/m3", "Quality"):
        species.add_column(column, justify="right" if column != "Species" else "left")
    for row in stats.species:
        species.add_row(
            row.species_name,
            str(row.n),
            fmt(row.g_pct),
            fmt(row.volume_m3, 2),
            fmt(row.mean_price_per_m3, 0),
            row.dominant_quality.value if row.dominant_quality else "-",
        )
    console.print(species)
    console.print()


def main():
    stems = build_marking()
    params = SynthesisParams(prices=price_table())

    # Strict two-entry tariff: the unmeasured charme at 22 cm is covered by
    # the override, the others by sampled heights of their class.
    strict = compute_martelage_stats(stems, PARCEL_SURFACE_M2, tariff_params=params,
                                     height_overrides=height_overrides())
    print_summary("ALGAN, heights required", strict)

    # Without overrides the 52 cm beech class has no height at all.
    no_overrides = compute_martelage_stats(stems, PARCEL_SURFACE_M2, tariff_params=params)
    print_summary("ALGAN, no overrides", no_overrides)

    one_entry = SynthesisParams(
        tarif_selection=TarifSelection(TarifMethod.SCHAEFFER_1E, numero=9),
        prices=price_table(),
    )
    # One-entry volumes need no height, but Lorey's height still does.
    print_summary("Schaeffer 1 entry n°9",
                  compute_martelage_stats(stems, PARCEL_SURFACE_M2, tariff_params=one_entry,
                                          height_overrides=height_overrides()))

    for entry in strict.special_trees:
        console.print(f"[bold]{entry.category.value}[/bold]: {entry.count} tree(s)")
    if strict.biodiversity is not None:
        console.print(f"IBP score: {strict.biodiversity.ibp_score}/{strict.biodiversity.ibp_max}")
    for warning in strict.sanity_warnings:
        console.print(f"[yellow]{warning.severity.value}[/yellow] {warning.code} {warning.stem_id or ''}")


if __name__ == "__main__":
    main()
