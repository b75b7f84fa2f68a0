"""pagerescue

Tiered page-text rescue: baseline text -> quality gate -> vision fallback.
"""

__version__ = "0.1.0"
