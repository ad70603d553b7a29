"""
Mock estimation client for testing and development.

Produces a deterministic estimate without calling external APIs.
"""
from ecomarket.services.estimation.base import EstimationClient


class MockEstimationClient(EstimationClient):
    """
    Returns a fixed value, or a value derived from the text length.

    Useful for testing, development, and when no API keys are configured.
    """

    def __init__(self, value: float | None = None):
        self.value = value
        self.calls: list[tuple[str, str, str]] = []

    @property
    def provider_name(self) -> str:
        return "mock"

    async def estimate(self, title: str, description: str, image_url: str) -> float:
        self.calls.append((title, description, image_url))
        if self.value is not None:
            return self.value
        # Rough size proxy so different items get different figures
        return round(1.0 + (len(title) + len(description)) / 20.0, 1)
