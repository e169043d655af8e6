"""Exceptions raised at the art_hierarchy boundary."""


class ARTHierarchyError(Exception):
    """Base exception for hierarchy errors."""
    pass


class PatternError(ARTHierarchyError, ValueError):
    """Pattern is missing, empty, malformed or has the wrong dimension."""
    pass


class ConfigurationError(ARTHierarchyError, ValueError):
    """Level or controller parameters are out of range."""
    pass
