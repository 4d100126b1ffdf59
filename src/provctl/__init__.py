"""provctl: provision and check an Ubuntu application server.

Only the package version lives here; import the CLI from :mod:`provctl.cli`.
"""
from __future__ import annotations

__all__ = ["__version__"]

# Read by Hatch (see ``[tool.hatch.version]`` in pyproject.toml).
__version__ = "0.3.0"
