"""
REST API adapter - one aiohttp application per service role.
"""

from adapters.api.registry_routes import create_registry_app
from adapters.api.registration_routes import create_registration_app
from adapters.api.settlement_routes import create_settlement_app

__all__ = [
    "create_registry_app",
    "create_registration_app",
    "create_settlement_app",
]
