"""
Environmental-savings estimation clients.

Estimates how many kg of CO2 are saved when an item is bought second-hand
instead of new.
"""
from ecomarket.services.estimation.base import EstimationClient
from ecomarket.services.estimation.factory import get_estimation_client
from ecomarket.services.estimation.mock_client import MockEstimationClient
from ecomarket.services.estimation.openai_client import OpenAIEstimationClient
from ecomarket.services.estimation.parse import CO2ParseError, parse_co2

__all__ = [
    "EstimationClient",
    "MockEstimationClient",
    "OpenAIEstimationClient",
    "get_estimation_client",
    "parse_co2",
    "CO2ParseError",
]
