"""
Service container wiring the generation pipeline from settings.
"""

from typing import Optional

from ticketforge.core.config import Settings, settings
from ticketforge.core.exceptions import ConfigurationError
from ticketforge.core.logging import get_logger
from ticketforge.prompts.compiler import ReasoningPromptCompiler
from ticketforge.reasoning.client import HTTPReasoningClient, ReasoningEngine
from ticketforge.repositories.base import BaseCacheStore
from ticketforge.repositories.cache_repo import InMemoryCacheRepository, RedisCacheRepository
from ticketforge.services.context_builder import ContextBuilder
from ticketforge.services.generation_service import TicketGenerationService
from ticketforge.templates.renderer import TemplateRenderer
from ticketforge.templates.resolver import TemplateResolver

logger = get_logger(__name__)


class ServiceContainer:
    """
    Container for all application services.
    Provides singleton instances of services.
    """

    _instance: Optional["ServiceContainer"] = None

    def __init__(self, config: Optional[Settings] = None) -> None:
        self.config = config or settings
        self._initialized = False

    @classmethod
    def get_instance(cls) -> "ServiceContainer":
        """Get the singleton instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def _build_cache_store(self) -> Optional[BaseCacheStore]:
        backend = self.config.cache.backend
        if backend == "none":
            return None
        if backend == "memory":
            return InMemoryCacheRepository(default_ttl_seconds=self.config.cache.ttl_seconds)
        if backend == "redis":
            return RedisCacheRepository.from_url(
                self.config.redis.url,
                default_ttl_seconds=self.config.cache.ttl_seconds,
                key_prefix=self.config.cache.key_prefix,
            )
        raise ConfigurationError(f"Unknown cache backend '{backend}'")

    def _build_reasoning_engine(self) -> Optional[ReasoningEngine]:
        if not self.config.reasoning.enabled:
            return None
        if not self.config.reasoning_configured:
            logger.warning("Reasoning enabled without an API key; AI path disabled")
            return None
        return HTTPReasoningClient(
            base_url=self.config.reasoning.base_url,
            api_key=self.config.reasoning.api_key,
            model=self.config.reasoning.model,
            timeout=self.config.reasoning.timeout,
            max_retries=self.config.reasoning.max_retries,
        )

    def initialize(self) -> None:
        """Initialize all services."""
        if self._initialized:
            return

        self._resolver = TemplateResolver(
            templates_dir=self.config.templates.directory,
            base_document=self.config.templates.base_document,
        )
        self._renderer = TemplateRenderer()
        self._compiler = ReasoningPromptCompiler(prompts_dir=self.config.prompts.directory)
        self._cache_store = self._build_cache_store()
        self._reasoning_engine = self._build_reasoning_engine()

        self._generation_service = TicketGenerationService(
            resolver=self._resolver,
            renderer=self._renderer,
            compiler=self._compiler,
            context_builder=ContextBuilder(),
            reasoning_engine=self._reasoning_engine,
            cache_store=self._cache_store,
            cache_ttl_seconds=self.config.cache.ttl_seconds,
            prompt_id=self.config.prompts.default_prompt_id,
            reasoning_timeout=self.config.generation.reasoning_timeout,
            coalesce_requests=self.config.generation.coalesce_requests,
        )

        self._initialized = True
        logger.debug(
            "Services initialized",
            cache_backend=self.config.cache.backend,
            reasoning=self._reasoning_engine is not None,
        )

    @property
    def resolver(self) -> TemplateResolver:
        self.initialize()
        return self._resolver

    @property
    def renderer(self) -> TemplateRenderer:
        self.initialize()
        return self._renderer

    @property
    def compiler(self) -> ReasoningPromptCompiler:
        self.initialize()
        return self._compiler

    @property
    def generation_service(self) -> TicketGenerationService:
        """Get the generation service."""
        self.initialize()
        return self._generation_service

    async def shutdown(self) -> None:
        """Close network clients."""
        if not self._initialized:
            return
        if self._reasoning_engine is not None:
            await self._reasoning_engine.close()
        if self._cache_store is not None:
            await self._cache_store.close()
        self._initialized = False
