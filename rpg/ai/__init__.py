"""AI package: public API for quest narrative generation."""

from rpg.ai.narrator import (
    Narrative,
    build_ticket_snapshot,
    check_model_health,
    fallback_narrative,
    generate_narrative,
)

__all__ = [
    "Narrative",
    "build_ticket_snapshot",
    "check_model_health",
    "fallback_narrative",
    "generate_narrative",
]
