"""
depot-sync: mirror a package and its transitive dependencies from a depot.
"""

__version__ = "0.3.0"
