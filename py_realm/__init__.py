"""
py-realm: seeded tile worlds with territory zoning and structure placement.
"""

__version__ = "0.1.0"
