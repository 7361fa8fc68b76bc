"""
Shared API Layer
================

Middleware and exception handlers shared by the HTTP surface.
"""
