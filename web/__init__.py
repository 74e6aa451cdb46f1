"""
Web layer for the marketplace verification service.
"""
