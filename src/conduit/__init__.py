"""
Conduit: descriptor-driven connectors for third-party REST APIs.
"""

__version__ = "1.0.0"
