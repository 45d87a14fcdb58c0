"""Assets Resource"""

from decimal import Decimal

from fincache.analytics.aggregation import total_assets
from fincache.models.records import Asset
from fincache.resources.collections import CollectionResource
from fincache.resources.loader import normalize_assets
from fincache.services.storage.interface import Collection


class AssetsResource(CollectionResource[Asset]):
    name = "assets"
    collection = Collection.ASSETS
    record_type = Asset
    normalize = staticmethod(normalize_assets)

    @property
    def total_value(self) -> Decimal:
        """Sum of the values of non-deleted assets."""
        return total_assets(self._data or [])
