"""Network transport and device identity."""

from app.network.client import HttpNetworkClient, NetworkClient
from app.network.device_info import DeviceInfoProvider, LocalDeviceInfo, current_locale_identifier

__all__ = [
    "HttpNetworkClient",
    "NetworkClient",
    "DeviceInfoProvider",
    "LocalDeviceInfo",
    "current_locale_identifier",
]
