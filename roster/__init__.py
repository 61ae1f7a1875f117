"""
Roster Watch - team-page roster acquisition and change detection

team page -> person records -> reconciliation with the stored roster ->
added / removed / updated change events.
"""

__version__ = "0.1.0"
