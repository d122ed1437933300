"""
GMAO preventive maintenance planning engine.
"""

__version__ = "1.0.0"
