"""
OpenAI estimation client implementation.

Sends the item text and photo to a vision-capable chat model and parses the
numeric answer.
"""
import structlog
from openai import AsyncOpenAI

from ecomarket.services.estimation.base import EstimationClient
from ecomarket.services.estimation.parse import parse_co2

logger = structlog.get_logger()

SYSTEM_PROMPT = (
    "You estimate the CO2 emissions avoided when a used item is bought instead of a new one. "
    "From the title, description and photo, estimate the avoided emissions in kgCO2e. "
    "Answer with a single number wrapped in dollar signs, for example $12.5$, "
    "between 0 and 5000 with at most one decimal place. Answer $0$ if unsure. "
    "Do not output anything else."
)


class OpenAIEstimationClient(EstimationClient):
    """OpenAI API client implementation."""

    def __init__(self, api_key: str, model: str = "gpt-4o-mini"):
        """
        Initialize the OpenAI client.

        Args:
            api_key: OpenAI API key.
            model: Vision-capable chat model.
        """
        self.model = model
        self.client = AsyncOpenAI(api_key=api_key)

    @property
    def provider_name(self) -> str:
        return "openai"

    async def estimate(self, title: str, description: str, image_url: str) -> float:
        """Estimate savings using OpenAI's chat completions API."""
        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": f"Title: {title}\nDescription: {description}"},
                    {"type": "image_url", "image_url": {"url": image_url}},
                ],
            },
        ]

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=0,
                max_tokens=20,
            )
        except Exception as e:
            logger.error("co2_estimate_request_failed", model=self.model, error=str(e))
            raise

        text = response.choices[0].message.content or ""
        value = parse_co2(text)
        logger.info("co2_estimate_parsed", model=self.model, value=value)
        return max(0.0, value)
