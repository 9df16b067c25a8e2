"""
Repository package for data access layer.
"""
from catalog_sync.repositories.base import BaseRepository
from catalog_sync.repositories.channel_mapping import ChannelMappingRepository
from catalog_sync.repositories.platform_connection import PlatformConnectionRepository
from catalog_sync.repositories.product import ProductRepository
from catalog_sync.repositories.sync_log import SyncLogRepository

__all__ = [
    "BaseRepository",
    "ChannelMappingRepository",
    "PlatformConnectionRepository",
    "ProductRepository",
    "SyncLogRepository",
]
