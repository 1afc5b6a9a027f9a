"""
Claude HUD
==========

Live status dashboard companion for a Claude Code session.
"""

__version__ = "0.1.0"
