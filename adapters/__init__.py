"""Asset registry adapters for the custodian."""

from .asset_registry import AssetRegistry, AssetRegistryBook, InMemoryAssetRegistry

__all__ = ["AssetRegistry", "AssetRegistryBook", "InMemoryAssetRegistry"]
