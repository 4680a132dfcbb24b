"""
Extractor Registry - discovery of extractor factories by id, module and category
"""

from typing import Callable, Dict, List, Optional, TYPE_CHECKING
import structlog

from rfcbridge.core.exceptions import ConfigError

if TYPE_CHECKING:
    from rfcbridge.extraction.base_extractor import BaseExtractor
    from rfcbridge.extraction.context import ExtractionContext

logger = structlog.get_logger(__name__)

ExtractorFactory = Callable[["ExtractionContext"], "BaseExtractor"]


class ExtractorRegistry:
    """
    Map of extractor id to factory.

    Factories are usually BaseExtractor subclasses; their class attributes
    provide the id, module and category used for the indices. Instances are
    only ever created through a factory with a context.
    """

    def __init__(self):
        self._factories: Dict[str, ExtractorFactory] = {}
        self._by_module: Dict[str, List[str]] = {}
        self._by_category: Dict[str, List[str]] = {}
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def register(self, factory: ExtractorFactory) -> ExtractorFactory:
        """
        Register an extractor factory

        Registering an id a second time is a no-op. Returns the factory so the
        method doubles as a class decorator.
        """
        extractor_id = getattr(factory, "extractor_id", None)
        if not extractor_id:
            raise ConfigError(
                "Extractor factory has no extractor_id",
                details={"factory": getattr(factory, "__name__", repr(factory))}
            )
        if extractor_id in self._factories:
            return factory
        if self._frozen:
            raise ConfigError(
                f"Registry is frozen; cannot register {extractor_id}",
                details={"extractor_id": extractor_id}
            )

        self._factories[extractor_id] = factory
        module = getattr(factory, "module", "") or ""
        category = getattr(factory, "category", "") or ""
        category = getattr(category, "value", category)
        self._by_module.setdefault(module, []).append(extractor_id)
        self._by_category.setdefault(category, []).append(extractor_id)

        logger.debug("Extractor registered", extractor_id=extractor_id, module=module, category=category)
        return factory

    def get(self, extractor_id: str) -> Optional[ExtractorFactory]:
        return self._factories.get(extractor_id)

    def get_all(self) -> Dict[str, ExtractorFactory]:
        return dict(self._factories)

    def ids(self) -> List[str]:
        return list(self._factories)

    def by_module(self, module: str) -> List[ExtractorFactory]:
        return [self._factories[i] for i in self._by_module.get(module, [])]

    def by_category(self, category: str) -> List[ExtractorFactory]:
        category = getattr(category, "value", category)
        return [self._factories[i] for i in self._by_category.get(category, [])]

    def freeze(self):
        """Close the registration phase; later new registrations fail"""
        self._frozen = True

    def clear(self):
        self._factories.clear()
        self._by_module.clear()
        self._by_category.clear()
        self._frozen = False

    def __contains__(self, extractor_id: str) -> bool:
        return extractor_id in self._factories

    def __len__(self) -> int:
        return len(self._factories)


# Process-wide default registry
registry = ExtractorRegistry()
