"""
wg-negotiator

HTTP authority that provisions WireGuard peers into a single interface.
"""

__version__ = "1.0.0"
