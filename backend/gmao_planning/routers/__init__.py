"""
Routers package - API endpoint definitions.
"""

from gmao_planning.routers import (
    history,
    planning,
    follow_up,
    alerts,
    parameters,
    import_export
)

__all__ = [
    "history",
    "planning",
    "follow_up",
    "alerts",
    "parameters",
    "import_export"
]
