"""
Base estimation client interface.

Defines the abstract interface that all estimation providers must implement.
"""
from abc import ABC, abstractmethod


class EstimationClient(ABC):
    """
    Abstract base class for CO2 savings estimators.

    All provider implementations must inherit from this class
    and implement estimate().
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the name of the estimation provider."""
        pass

    @abstractmethod
    async def estimate(self, title: str, description: str, image_url: str) -> float:
        """
        Estimate the CO2 saved by buying the item second-hand.

        Args:
            title: Item title.
            description: Item description.
            image_url: Reference to the item photo.

        Returns:
            Estimated savings in kg CO2e (never negative).
        """
        pass
