"""SOCOM II map catalogue used for war map plans and score entry."""

from __future__ import annotations

from typing import Final

MAP_POOL: Final[tuple[str, ...]] = (
    "Frostfire - Suppression",
    "Blizzard - Demolition",
    "Night Stalker - Demolition",
    "Desert Glory - Extraction",
    "Rat's Nest - Suppression",
    "Abandoned - Suppression",
    "The Ruins - Demolition",
    "Blood Lake - Extraction",
    "Bitter Jungle - Demolition",
    "Death Trap - Extraction",
    "Sandstorm - Breach",
    "Fish Hook - Extraction",
    "Crossroads - Demolition",
    "Crossroads Night - Demolition",
    "Fox Hunt - Escort",
    "The Mixer - Escort",
    "Vigilance - Suppression",
    "Requiem - Demolition",
    "Guidance - Escort",
    "Chain Reaction - Suppression",
    "Sujo - Breach",
    "Enowapi - Breach",
    "Shadow Falls - Suppression",
)

# The last map of every plan must come from this subset.
DECIDER_MAPS: Final[tuple[str, ...]] = (
    "Crossroads - Demolition",
    "Crossroads Night - Demolition",
)

OPENING_MAPS: Final[tuple[str, ...]] = tuple(
    name for name in MAP_POOL if name not in DECIDER_MAPS
)

SIDES: Final[tuple[str, ...]] = ("SEALs", "Terrorists")

MAX_ROUND_SCORE: Final[int] = 6


def canonical_map_name(raw: str) -> str | None:
    """Return the catalogue spelling of ``raw`` or ``None`` when unknown."""
    cleaned = " ".join(raw.split()).lower()
    if not cleaned:
        return None
    for name in MAP_POOL:
        if name.lower() == cleaned:
            return name
    # Allow the short form without the game mode ("Crossroads Night").
    matches = [name for name in MAP_POOL if name.split(" - ", 1)[0].lower() == cleaned]
    if len(matches) == 1:
        return matches[0]
    return None


__all__ = [
    "MAP_POOL",
    "DECIDER_MAPS",
    "OPENING_MAPS",
    "SIDES",
    "MAX_ROUND_SCORE",
    "canonical_map_name",
]
