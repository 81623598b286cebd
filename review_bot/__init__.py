"""Adaptive code review bot.

Scans changed files against coding-standard rules and learns from
developer feedback which findings are worth surfacing.
"""

__version__ = "0.1.0"
