"""
Company Module

Patron and gestionnaire surface: companies, buses, routes, trip scheduling,
trip status changes with passenger notifications, and dashboard figures.
Public trip search and seat maps live here too.
"""

from .router import router
from .service import CompanyService

__all__ = ["router", "CompanyService"]
