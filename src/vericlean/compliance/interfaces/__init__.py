"""
Compliance Interfaces Layer
===========================

Interface adapters (controllers) for the compliance watchdog.

This is the outermost layer - handles HTTP requests/responses and
delegates to application services.
"""

from vericlean.compliance.interfaces.controllers import compliance_router

__all__ = ["compliance_router"]
