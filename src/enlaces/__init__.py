"""
Enlaces EPN call-center access control.
"""

__version__ = "1.0.0"
