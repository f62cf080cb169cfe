"""Use case for turning a configuration root into a canonical graph."""
import logging

from schemaforge.domain.entities.schema import SchemaGraph
from schemaforge.domain.services.resolver import ConfigurationResolver
from schemaforge.infrastructure.config.loader import ConfigurationLoader

logger = logging.getLogger(__name__)


class ResolveConfigurationUseCase:
    """
    Use case: Load every configuration file and resolve the schema graph.
    Single Responsibility: Orchestrate loading and resolution.
    """

    def __init__(self, loader: ConfigurationLoader, resolver: ConfigurationResolver):
        self._loader = loader
        self._resolver = resolver

    def execute(self, config_path: str) -> SchemaGraph:
        """Raises ConfigLoadFailed or ResolutionFailed with every issue found."""
        bundle = self._loader.load(config_path)
        logger.info(f"[ResolveConfiguration] Loaded roles: {', '.join(bundle.roles)}")
        return self._resolver.resolve(bundle)
