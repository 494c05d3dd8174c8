"""Dependency Injection Container for EVE Asset Tree.

Provides a lightweight dependency injection system for managing application
services and their dependencies.

Usage:
    from utils.di_container import ServiceKeys, configure_container, get_container

    container = configure_container(get_container(), token_provider=tokens)

    # Services are created lazily on first resolve
    assets = container.resolve(ServiceKeys.ASSET_SERVICE)
    snapshot = await assets.load_asset_tree(character_id)

    # Register a pre-built instance (e.g. a fake in tests)
    container.register(ServiceKeys.STATIC_LOOKUP, fake_lookup)

    # Auto-wire a class from container keys
    grouper = container.create(DisplayGrouper)
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import timedelta
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DIContainerError(Exception):
    """Exception raised for DI container errors."""

    pass


class DIContainer:
    """Simple dependency injection container.

    Manages service instances and factories for dependency resolution.
    Thread-safe for concurrent access.
    """

    def __init__(self) -> None:
        """Initialize empty container."""
        self._services: dict[str, Any] = {}
        self._factories: dict[str, Callable[[DIContainer], Any]] = {}
        self._lock = threading.RLock()

    def register(self, key: str, instance: Any) -> None:
        """Register a service instance.

        Args:
            key: Service identifier
            instance: Service instance to register
        """
        with self._lock:
            if key in self._services:
                logger.debug("Overwriting existing service: %s", key)
            self._services[key] = instance
            logger.debug("Registered service: %s", key)

    def register_factory(self, key: str, factory: Callable[[DIContainer], Any]) -> None:
        """Register a factory function for lazy instantiation.

        The factory receives the container as argument for resolving
        nested dependencies.

        Args:
            key: Service identifier
            factory: Factory function (container) -> service instance
        """
        with self._lock:
            if key in self._factories:
                logger.debug("Overwriting existing factory: %s", key)
            self._factories[key] = factory
            logger.debug("Registered factory: %s", key)

    def resolve(self, key: str) -> Any:
        """Resolve a service by key.

        If a factory is registered for the key and no instance exists yet,
        the factory is called once and the result is cached.

        Args:
            key: Service identifier

        Returns:
            Service instance

        Raises:
            DIContainerError: If service is not registered
        """
        with self._lock:
            # Check for existing instance first
            if key in self._services:
                return self._services[key]

            # Try factory
            if key in self._factories:
                logger.debug("Creating service from factory: %s", key)
                instance = self._factories[key](self)
                self._services[key] = instance
                return instance

            raise DIContainerError(
                f"Service '{key}' not registered. "
                f"Available: {list(self._services.keys()) + list(self._factories.keys())}"
            )

    def resolve_optional(self, key: str) -> Any | None:
        """Resolve a service by key, returning None if not found.

        Args:
            key: Service identifier

        Returns:
            Service instance or None
        """
        try:
            return self.resolve(key)
        except DIContainerError:
            return None

    def is_registered(self, key: str) -> bool:
        """Check if a service is registered.

        Args:
            key: Service identifier

        Returns:
            True if service or factory is registered
        """
        with self._lock:
            return key in self._services or key in self._factories

    def create(self, cls: type[T], **key_mappings: str) -> T:
        """Create an instance of a class with dependencies resolved from container.

        Args:
            cls: Class to instantiate
            **key_mappings: Mapping of constructor parameter names to container keys

        Returns:
            Instance of cls with dependencies injected

        Example:
            resolver = container.create(
                LocationResolver,
                fetcher=ServiceKeys.NETWORK_FETCHER,
                static_lookup=ServiceKeys.STATIC_LOOKUP,
                structure_cache=ServiceKeys.STRUCTURE_CACHE,
            )
        """
        resolved_args = {}
        for param_name, container_key in key_mappings.items():
            resolved_args[param_name] = self.resolve(container_key)
        return cls(**resolved_args)

    def clear(self) -> None:
        """Clear all registered services and factories.

        Primarily for testing.
        """
        with self._lock:
            self._services.clear()
            self._factories.clear()
            logger.debug("Container cleared")

    def get_registered_keys(self) -> list[str]:
        """Get list of all registered service keys.

        Returns:
            List of service/factory keys
        """
        with self._lock:
            return list(set(self._services.keys()) | set(self._factories.keys()))


# Standard service keys for the application
class ServiceKeys:
    """Standard service key constants for the DI container."""

    # Configuration
    CONFIG = "config"

    # External collaborators
    TOKEN_PROVIDER = "token_provider"
    STATIC_LOOKUP = "static_lookup"

    # Network infrastructure
    RATE_LIMITER = "rate_limiter"
    RETRIER = "retrier"
    NETWORK_FETCHER = "network_fetcher"

    # Caches
    STRUCTURE_CACHE = "structure_cache"
    ASSET_SNAPSHOT_CACHE = "asset_snapshot_cache"

    # Business services
    LOCATION_RESOLVER = "location_resolver"
    ASSET_TREE_BUILDER = "asset_tree_builder"
    DISPLAY_GROUPER = "display_grouper"
    ASSET_SERVICE = "asset_service"


# Global singleton container
_container_instance: DIContainer | None = None
_container_lock = threading.Lock()


def get_container() -> DIContainer:
    """Get the global DI container instance.

    Returns:
        Global DIContainer singleton
    """
    global _container_instance  # noqa: PLW0603
    if _container_instance is None:
        with _container_lock:
            if _container_instance is None:
                _container_instance = DIContainer()
    assert _container_instance is not None
    return _container_instance


def reset_container() -> None:
    """Reset the global container.

    Primarily for testing.
    """
    global _container_instance  # noqa: PLW0603
    with _container_lock:
        if _container_instance is not None:
            _container_instance.clear()
        _container_instance = None


def configure_container(
    container: DIContainer | None = None,
    token_provider: Any = None,
    static_lookup: Any = None,
) -> DIContainer:
    """Configure the DI container with default service factories.

    This sets up lazy factories for core services. Services are only
    instantiated when first resolved. The rate limiter is a single instance,
    so every fetcher created through the container shares one bucket.

    Args:
        container: Container to configure (uses global if None)
        token_provider: Source of access tokens (TokenProvider)
        static_lookup: Static reference data (StaticLookup); when omitted a
            SQLiteStaticLookup on ``<user_data_dir>/static.sqlite`` is used

    Returns:
        Configured container
    """
    if container is None:
        container = get_container()

    # Register config (eager - needed by many other services)
    from utils.config import get_config

    container.register(ServiceKeys.CONFIG, get_config())

    if token_provider is not None:
        container.register(ServiceKeys.TOKEN_PROVIDER, token_provider)
    else:

        def token_provider_factory(c: DIContainer) -> Any:
            from data.clients import StaticTokenProvider

            return StaticTokenProvider()

        container.register_factory(ServiceKeys.TOKEN_PROVIDER, token_provider_factory)

    if static_lookup is not None:
        container.register(ServiceKeys.STATIC_LOOKUP, static_lookup)
    else:

        def static_lookup_factory(c: DIContainer) -> Any:
            from data import SQLiteStaticLookup

            config = c.resolve(ServiceKeys.CONFIG)
            return SQLiteStaticLookup(config.app.user_data_dir / "static.sqlite")

        container.register_factory(ServiceKeys.STATIC_LOOKUP, static_lookup_factory)

    # Register the process-wide rate limiter
    def rate_limiter_factory(c: DIContainer) -> Any:
        from data.clients import RateLimiter

        config = c.resolve(ServiceKeys.CONFIG)
        return RateLimiter(
            max_tokens=config.esi.rate_limit_max_tokens,
            refill_rate=config.esi.rate_limit_refill_rate,
            poll_interval=config.esi.rate_limit_poll_interval,
        )

    container.register_factory(ServiceKeys.RATE_LIMITER, rate_limiter_factory)

    def retrier_factory(c: DIContainer) -> Any:
        from data.clients import RequestRetrier

        config = c.resolve(ServiceKeys.CONFIG)
        return RequestRetrier(
            timeouts=config.esi.retry_timeouts,
            base_delay=config.esi.retry_base_delay,
        )

    container.register_factory(ServiceKeys.RETRIER, retrier_factory)

    def network_fetcher_factory(c: DIContainer) -> Any:
        from data.clients import NetworkFetcher

        config = c.resolve(ServiceKeys.CONFIG)
        return NetworkFetcher(
            token_provider=c.resolve(ServiceKeys.TOKEN_PROVIDER),
            rate_limiter=c.resolve(ServiceKeys.RATE_LIMITER),
            retrier=c.resolve(ServiceKeys.RETRIER),
            base_url=config.esi.esi_base_url,
            datasource=config.esi.datasource,
            compatibility_date=config.esi.compatibility_date,
            user_agent=config.app.computed_user_agent,
            page_concurrency=config.esi.page_concurrency,
            page_round_delay=config.esi.page_round_delay,
        )

    container.register_factory(ServiceKeys.NETWORK_FETCHER, network_fetcher_factory)

    def structure_cache_factory(c: DIContainer) -> Any:
        from data.clients import FileTier, MemoryTier, TieredCache
        from models.eve import EveStructure

        config = c.resolve(ServiceKeys.CONFIG)
        return TieredCache(
            FileTier(config.cache.structure_cache_path, EveStructure),
            ttl=timedelta(days=config.cache.structure_ttl_days),
            memory=MemoryTier(capacity=config.cache.memory_capacity),
        )

    container.register_factory(ServiceKeys.STRUCTURE_CACHE, structure_cache_factory)

    def asset_snapshot_cache_factory(c: DIContainer) -> Any:
        from data import AssetSnapshotCache

        config = c.resolve(ServiceKeys.CONFIG)
        return AssetSnapshotCache(
            config.cache.asset_snapshot_path,
            ttl=timedelta(hours=config.cache.asset_snapshot_ttl_hours),
        )

    container.register_factory(
        ServiceKeys.ASSET_SNAPSHOT_CACHE, asset_snapshot_cache_factory
    )

    # Register location resolver
    def location_resolver_factory(c: DIContainer) -> Any:
        from services.location_service import LocationResolver

        config = c.resolve(ServiceKeys.CONFIG)
        return LocationResolver(
            fetcher=c.resolve(ServiceKeys.NETWORK_FETCHER),
            static_lookup=c.resolve(ServiceKeys.STATIC_LOOKUP),
            structure_cache=c.resolve(ServiceKeys.STRUCTURE_CACHE),
            batch_size=config.esi.location_batch_size,
        )

    container.register_factory(ServiceKeys.LOCATION_RESOLVER, location_resolver_factory)

    def tree_builder_factory(c: DIContainer) -> Any:
        from services.asset_tree_builder import AssetTreeBuilder

        return AssetTreeBuilder()

    container.register_factory(ServiceKeys.ASSET_TREE_BUILDER, tree_builder_factory)

    def display_grouper_factory(c: DIContainer) -> Any:
        from services.display_grouper import DisplayGrouper

        return DisplayGrouper()

    container.register_factory(ServiceKeys.DISPLAY_GROUPER, display_grouper_factory)

    # Register asset service
    def asset_service_factory(c: DIContainer) -> Any:
        from services.asset_service import AssetService

        config = c.resolve(ServiceKeys.CONFIG)
        return AssetService(
            fetcher=c.resolve(ServiceKeys.NETWORK_FETCHER),
            location_resolver=c.resolve(ServiceKeys.LOCATION_RESOLVER),
            tree_builder=c.resolve(ServiceKeys.ASSET_TREE_BUILDER),
            static_lookup=c.resolve(ServiceKeys.STATIC_LOOKUP),
            snapshot_cache=c.resolve(ServiceKeys.ASSET_SNAPSHOT_CACHE),
            owner_batch_size=config.esi.owner_batch_size,
        )

    container.register_factory(ServiceKeys.ASSET_SERVICE, asset_service_factory)

    logger.info("DI container configured with default factories")
    return container
