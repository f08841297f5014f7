"""
rehearsalplanner - book the rehearsal room and find common rehearsal times.
"""

__version__ = "0.1.0"
