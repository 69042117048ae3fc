"""trendpilot: regime-switching backtests.

Risk-on when the trend says so, risk-off when it does not.
Everything else is bookkeeping.
"""

from __future__ import annotations

__all__ = [
    "__version__",
]

__version__ = "1.0.0"
