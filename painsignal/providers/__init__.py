"""Source-specific adapters that turn provider payloads into raw observations."""

from .common import ProviderClient, is_recruitment_agency
from .contracts_finder import ContractsFinderProvider
from .reed import ReedProvider

__all__ = ["ProviderClient", "ReedProvider", "ContractsFinderProvider", "is_recruitment_agency"]
