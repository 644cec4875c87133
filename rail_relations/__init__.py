"""
rail-relations: cascading has-many relations for Django models.

Models inherit ``rail_relations.models.CascadeModel`` and declare relations
with ``rail_relations.descriptors.HasMany``; see ``rail_relations.models``.
"""

from .defaults import LIBRARY_NAME, LIBRARY_VERSION

__version__ = LIBRARY_VERSION

__all__ = ["LIBRARY_NAME", "LIBRARY_VERSION", "__version__"]
