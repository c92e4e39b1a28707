"""HTTP surface."""

from subfy_api.api.app import SERVICES, Services, create_app

__all__ = ["SERVICES", "Services", "create_app"]
