"""sourcetrace - nested source provenance resolution.

Determines exactly which source code has to be scanned for a package: a
verified source artifact or a pinned VCS revision, plus every repository
nested inside it.
"""

__version__ = "0.1.0"
