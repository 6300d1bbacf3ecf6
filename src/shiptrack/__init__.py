"""shiptrack: vessel position aggregation and broadcast server."""

from __future__ import annotations

__version__ = "0.1.0"
