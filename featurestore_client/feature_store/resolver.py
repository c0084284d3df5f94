"""
ID Resolver - maps (store, name, version) to backend identifiers.
"""
from .metadata_cache import MetadataCache


class IdResolver:
    """
    Resolve names to numeric IDs through the metadata cache.

    A miss raises the matching NotFoundError; the resolver never refreshes
    the cache on its own.
    """

    def __init__(self, cache: MetadataCache):
        self.cache = cache

    def resolve_featurestore_id(self, featurestore: str) -> int:
        return self.cache.get(featurestore).featurestore.id

    def resolve_featuregroup_id(self, featurestore: str, name: str, version: int) -> int:
        return self.cache.find_featuregroup(featurestore, name, version).id

    def resolve_training_dataset_id(self, featurestore: str, name: str, version: int) -> int:
        return self.cache.find_training_dataset(featurestore, name, version).id
