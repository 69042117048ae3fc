"""trendpilot.backtest

Regime-switching backtest engine.

aligner -> signals -> rules -> scheduler -> ledger, driven day by day by the
simulator. Metrics and file IO sit beside the engine, not inside it.
"""
