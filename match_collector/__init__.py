"""
Match collector: session clustering and HUD score recognition for recorded
match highlights.
"""

__version__ = "0.1.0"
