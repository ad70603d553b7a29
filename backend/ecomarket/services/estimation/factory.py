"""
Estimation client factory.

Creates the appropriate estimation client based on configuration.
"""
import structlog

from ecomarket.core.config import Settings
from ecomarket.services.estimation.base import EstimationClient
from ecomarket.services.estimation.mock_client import MockEstimationClient
from ecomarket.services.estimation.openai_client import OpenAIEstimationClient

logger = structlog.get_logger()


def get_estimation_client(settings: Settings) -> EstimationClient:
    """
    Get an estimation client based on provider configuration.

    Args:
        settings: Application settings (estimation_provider: openai, mock)

    Returns:
        Configured estimation client instance.
    """
    provider = settings.estimation_provider.lower()

    logger.info("Creating estimation client", provider=provider)

    if provider == "openai":
        if not settings.openai_api_key:
            logger.warning("OpenAI API key not set, falling back to mock client")
            return MockEstimationClient()
        return OpenAIEstimationClient(
            api_key=settings.openai_api_key,
            model=settings.openai_model,
        )

    elif provider == "mock":
        return MockEstimationClient()

    else:
        logger.warning("Unknown estimation provider, using mock client", provider=provider)
        return MockEstimationClient()
