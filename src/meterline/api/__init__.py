"""HTTP surface for the metering layer."""

from meterline.api.app import build_services, create_app
from meterline.api.dependencies import MeteringServices

__all__ = ["MeteringServices", "build_services", "create_app"]
