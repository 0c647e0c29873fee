"""
specforge: specification compilation pipeline.

Turns an evolving set of question/answer pairs into a deterministic, versioned,
traceable specification document and reasons about how that document changes
between compiled snapshots.

Import boundary: this module must stay free of side effects (no config loading,
no logging initialization, no provider SDK imports).
"""

from __future__ import annotations

__version__ = "0.1.0"

__all__ = ["__version__"]
