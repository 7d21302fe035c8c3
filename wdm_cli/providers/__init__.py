"""
Artifact providers.

The set of providers is closed; ``create_provider`` maps a ``ProviderKind`` to
its implementation once, at construction time.
"""

from enum import Enum

from wdm_cli.models.config import ProviderConfig
from wdm_cli.utils.structured_logger import TransferLogger

from .appium import Appium
from .base import Provider
from .chromedriver import ChromeDriver
from .geckodriver import GeckoDriver
from .iedriver import IEDriver
from .selenium_server import SeleniumServer


class ProviderKind(str, Enum):
    CHROMEDRIVER = "chromedriver"
    GECKODRIVER = "geckodriver"
    IEDRIVER = "iedriver"
    SELENIUM = "selenium"
    APPIUM = "appium"


_PROVIDERS: dict[ProviderKind, type[Provider]] = {
    ProviderKind.CHROMEDRIVER: ChromeDriver,
    ProviderKind.GECKODRIVER: GeckoDriver,
    ProviderKind.IEDRIVER: IEDriver,
    ProviderKind.SELENIUM: SeleniumServer,
    ProviderKind.APPIUM: Appium,
}


def create_provider(
    kind: ProviderKind | str,
    config: ProviderConfig | None = None,
    events: TransferLogger | None = None,
    catalog_url: str | None = None,
) -> Provider:
    """
    Instantiates the provider for ``kind``.

    Raises:
        ValueError: If ``kind`` is not a known provider.
    """
    return _PROVIDERS[ProviderKind(kind)](config, events, catalog_url)


__all__ = [
    "Appium",
    "ChromeDriver",
    "GeckoDriver",
    "IEDriver",
    "Provider",
    "ProviderKind",
    "SeleniumServer",
    "create_provider",
]
