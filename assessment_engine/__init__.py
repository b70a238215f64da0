"""
Assessment engine: test assembly, scoring and psychometric reliability.
"""

__version__ = "0.1.0"
