"""Specforge: typed, interlinked specification documents.

Subpackages:
    store: Entity store, validation engine, dependency analysis and
        sub-item supersession.
    config: Settings loaded from ``specforge.toml`` and the environment.
"""

from specforge.enums import EntityType, SubItemKind

__version__ = "0.1.0"

__all__ = ["EntityType", "SubItemKind", "__version__"]
