"""
Core engine logic: allocation, assembly, scoring, reliability and sessions.
"""
