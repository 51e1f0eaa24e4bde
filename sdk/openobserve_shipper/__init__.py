"""OpenObserve Shipper — batched log delivery to OpenObserve streams."""

from openobserve_shipper.config import BasicAuth, ShipperConfig
from openobserve_shipper.errors import ConfigurationError, DeliveryFailure, ShipperError
from openobserve_shipper.handler import JSONLineFormatter, OpenObserveHandler, attach
from openobserve_shipper.shipper import OpenObserveShipper

__version__ = "0.1.0"
__all__ = [
    "attach",
    "BasicAuth",
    "ConfigurationError",
    "DeliveryFailure",
    "JSONLineFormatter",
    "OpenObserveHandler",
    "OpenObserveShipper",
    "ShipperConfig",
    "ShipperError",
]
