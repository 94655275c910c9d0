"""
Upstream event sources.
"""
