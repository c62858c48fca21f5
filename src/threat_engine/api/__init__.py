"""
REST API for the threat engine.
"""
