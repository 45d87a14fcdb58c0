"""
Resources Package

A resource is one data domain's in-memory state kept in sync with the
tab-scoped cache and the record store: hydration on activation,
stale-while-revalidate, and create/update/delete with a declared
mutation strategy.
"""

from fincache.resources.loader import (
    AuthenticationRequiredError,
    BackendCallError,
    LoaderTimeoutError,
    ResourceError,
    ResourceLoader,
    run_in_parallel,
    with_timeout,
)
from fincache.resources.hydration import (
    HydrationState,
    Resource,
    ResourceResult,
    ResourceSnapshot,
)
from fincache.resources.mutations import MutableResource, MutationStrategy
from fincache.resources.collections import (
    BanksResource,
    CardsResource,
    CategoriesResource,
    CollectionResource,
)
from fincache.resources.transactions import TransactionsResource
from fincache.resources.assets import AssetsResource
from fincache.resources.budgets import BudgetsResource
from fincache.resources.settings import SettingsResource
from fincache.resources.reference import ReferenceDataResource
from fincache.resources.dashboard import DashboardResource

__all__ = [
    # Loading
    "AuthenticationRequiredError",
    "BackendCallError",
    "LoaderTimeoutError",
    "ResourceError",
    "ResourceLoader",
    "run_in_parallel",
    "with_timeout",
    # Protocols
    "HydrationState",
    "MutableResource",
    "MutationStrategy",
    "Resource",
    "ResourceResult",
    "ResourceSnapshot",
    # Domains
    "AssetsResource",
    "BanksResource",
    "BudgetsResource",
    "CardsResource",
    "CategoriesResource",
    "CollectionResource",
    "DashboardResource",
    "ReferenceDataResource",
    "SettingsResource",
    "TransactionsResource",
]
