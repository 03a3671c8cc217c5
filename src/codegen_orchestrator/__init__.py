"""
codegen-orchestrator — package root

Purpose
- Plan, dispatch, verify and roll back multi-agent code generation runs.

Import boundary
- Importing the package has no side effects (no config loading, no logging init).
- Heavy planes are imported lazily by callers; only metadata lives here.
"""

from __future__ import annotations

__version__ = "0.1.0"

__all__ = ["__version__"]
