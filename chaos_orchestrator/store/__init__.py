"""
Experiment Stores - Persistence for experiment and result records
"""
from .memory import InMemoryExperimentStore
from .valkey_store import ValkeyExperimentStore


def create_store(store_config):
    """Build the store described by a StoreConfig"""
    if store_config.backend == "memory":
        return InMemoryExperimentStore()
    if store_config.backend == "valkey":
        return ValkeyExperimentStore(
            host=store_config.host,
            port=store_config.port,
            db=store_config.db,
            key_prefix=store_config.key_prefix,
            ttl=store_config.ttl
        )
    raise ValueError(f"Unknown store backend: {store_config.backend}")


__all__ = [
    'InMemoryExperimentStore',
    'ValkeyExperimentStore',
    'create_store',
]
