"""Multi-tenant product analytics engine.

Exports for testing and module access.
"""

from analytics_server import models

__all__ = ['models']
