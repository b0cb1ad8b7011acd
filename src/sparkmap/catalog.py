"""Static lot catalog used when the backend catalog is not loaded."""

from __future__ import annotations

from collections.abc import Iterable

from sparkmap.models.lot import Lot

# Coordinates still to be surveyed on site; good to roughly 50 m.
DEFAULT_LOTS: tuple[Lot, ...] = (
    # Parking ramps
    Lot(id="ramp_1", name="Ramp 1 / Wharton Center", lat=42.7247, lng=-84.4883),
    Lot(id="ramp_3", name="Ramp 3 / Shaw Hall", lat=42.7262, lng=-84.4777),
    Lot(id="ramp_5", name="Ramp 5 / Comm Arts", lat=42.7214, lng=-84.4678),
    Lot(id="ramp_6", name="Ramp 6 / Grand River Ave", lat=42.7368, lng=-84.4828),
    # Stadium and arena
    Lot(id="lot_79", name="Lot 79 / Spartan Stadium", lat=42.7260, lng=-84.4870),
    Lot(id="lot_63", name="Lot 63 / Breslin Center", lat=42.7280, lng=-84.4920),
    Lot(id="lot_124", name="Lot 124 / Munn Arena", lat=42.7272, lng=-84.4905),
    # North campus
    Lot(id="lot_39", name="Lot 39 / MSU Union", lat=42.7347, lng=-84.4802),
    Lot(id="lot_62", name="Lot 62 / IM Sports West", lat=42.7311, lng=-84.4862),
    Lot(id="lot_15", name="Lot 15 / International Center", lat=42.7275, lng=-84.4788),
    # South campus
    Lot(id="lot_89", name="Lot 89 / Wilson & Case Halls", lat=42.7190, lng=-84.4830),
    Lot(id="lot_83", name="Lot 83 / Business College", lat=42.7230, lng=-84.4810),
    # Commuter and perimeter
    Lot(id="lot_91", name="Lot 91 / Commuter Lot (Service Rd)", lat=42.7160, lng=-84.4780),
    Lot(id="lot_80", name="Lot 80 / Vet Med", lat=42.7120, lng=-84.4690),
)


def lots_by_id(lots: Iterable[Lot]) -> dict[str, Lot]:
    """Index *lots* by id, keeping the first entry for duplicate ids."""
    index: dict[str, Lot] = {}
    for lot in lots:
        index.setdefault(lot.id, lot)
    return index


def search_lots(lots: Iterable[Lot], query: str, *, limit: int = 6) -> list[Lot]:
    """Case-insensitive substring match on lot name or id."""
    needle = query.strip().lower()
    if not needle:
        return []
    matches = [lot for lot in lots if needle in lot.name.lower() or needle in lot.id.lower()]
    return matches[:limit]
