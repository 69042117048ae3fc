"""trendpilot.core

Shared primitives: errors, config, data types, date helpers.
"""
