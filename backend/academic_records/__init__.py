"""
Academic records core: batch grade/attendance consistency engine.
"""

__version__ = "1.0.0"
