from typing import Any, Callable, Dict, Type, TypeVar

T = TypeVar('T')


class DependencyContainer:
    """Simple dependency injection container"""

    def __init__(self):
        self._services: Dict[str, Any] = {}
        self._factories: Dict[str, Callable] = {}

    def register_singleton(self, service_class: Type[T], instance: T) -> None:
        """Register a singleton instance"""
        key = self._get_service_key(service_class)
        self._services[key] = instance

    def register_factory(self, service_class: Type[T], factory: Callable[[], T]) -> None:
        """Register a factory function; the first instance it builds is cached"""
        key = self._get_service_key(service_class)
        self._factories[key] = factory
        self._services.pop(key, None)

    def get(self, service_class: Type[T]) -> T:
        key = self._get_service_key(service_class)

        if key in self._services:
            return self._services[key]

        if key in self._factories:
            instance = self._factories[key]()
            self._services[key] = instance
            return instance

        raise ValueError(f"Service {service_class.__name__} not registered")

    def is_registered(self, service_class: Type[T]) -> bool:
        key = self._get_service_key(service_class)
        return key in self._services or key in self._factories

    def _get_service_key(self, service_class: Type[T]) -> str:
        """Get unique key for service class"""
        return f"{service_class.__module__}.{service_class.__qualname__}"
