"""
Query translation package.

Turns typed criteria and free-text input into OData filter expressions for
document library item queries.
"""

from .filter_builder import FilterCriteria, build_filter
from .intent import Intent, IntentClassifier, IntentType

__all__ = [
    "FilterCriteria",
    "Intent",
    "IntentClassifier",
    "IntentType",
    "build_filter",
]
