"""
Wardrobe resilience core - retry, circuit breaking, structured logging and error translation
"""

__version__ = "0.1.0"
