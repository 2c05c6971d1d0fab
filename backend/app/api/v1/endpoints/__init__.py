# API endpoints
from . import tests, reports

__all__ = ["tests", "reports"]
