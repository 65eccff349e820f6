"""identity-bridge

Unified sign-in across password and social identity providers against a
remote identity backend.
"""

__version__ = "1.0.0"
