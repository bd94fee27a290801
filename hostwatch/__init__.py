"""hostwatch — modular host health monitoring with gated autofix."""

__version__ = "0.1.0"
