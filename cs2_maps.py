"""
CS2 map catalogue used to normalize the map identifiers returned by FACEIT.

The stats endpoint reports maps as engine names (``de_mirage``) while match
details use the pick names from the veto (``de_mirage`` or ``Mirage``), so both
are folded into a single display name before aggregation.
"""

from typing import Optional

UNKNOWN_MAP = "Unknown"

CS2_MAPS = {
    'de_ancient': 'Ancient',
    'de_anubis': 'Anubis',
    'de_dust2': 'Dust2',
    'de_inferno': 'Inferno',
    'de_mirage': 'Mirage',
    'de_nuke': 'Nuke',
    'de_train': 'Train',
    'de_overpass': 'Overpass',
    'de_vertigo': 'Vertigo',
    'cs_italy': 'Italy',
    'cs_office': 'Office',
}

_MAP_PREFIXES = ('de_', 'cs_', 'ar_')


def get_map_name(map_name: str) -> Optional[str]:
    """Get the display name for an engine name or display name (case-insensitive)"""
    if not map_name:
        return None

    cleaned = map_name.strip().lower()
    if cleaned in CS2_MAPS:
        return CS2_MAPS[cleaned]

    for display_name in CS2_MAPS.values():
        if display_name.lower() == cleaned:
            return display_name

    return None


def normalize_map_name(map_name: Optional[str]) -> str:
    """Return the display name for a raw map identifier, "Unknown" if empty"""
    if not map_name or not str(map_name).strip():
        return UNKNOWN_MAP

    display_name = get_map_name(str(map_name))
    if display_name:
        return display_name

    # Maps missing from the catalogue keep their name without the engine prefix
    cleaned = str(map_name).strip()
    for prefix in _MAP_PREFIXES:
        if cleaned.lower().startswith(prefix):
            cleaned = cleaned[len(prefix):]
            break
    return cleaned[:1].upper() + cleaned[1:] if cleaned else UNKNOWN_MAP
