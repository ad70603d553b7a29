"""
Tests for CO2 estimation clients and answer parsing.
"""
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from ecomarket.core.config import Settings
from ecomarket.services.estimation import (
    CO2ParseError,
    MockEstimationClient,
    OpenAIEstimationClient,
    get_estimation_client,
    parse_co2,
)
from ecomarket.services.estimation.parse import parse_co2_with_unit


class TestParseCO2:

    def test_strict_envelope(self):
        assert parse_co2("$12.5$") == pytest.approx(12.5)

    def test_envelope_wins_over_other_numbers(self):
        assert parse_co2("Roughly 2023 data says $8$") == pytest.approx(8.0)

    def test_longest_number_fallback(self):
        assert parse_co2("About 120.75 kg, give or take 5") == pytest.approx(120.75)

    def test_gram_answer_converted(self):
        parsed = parse_co2_with_unit("300 gCO2e")
        assert parsed.value == pytest.approx(300)
        assert parsed.kg == pytest.approx(0.3)

    def test_kilogram_unit_kept(self):
        assert parse_co2("45 kgCO2e") == pytest.approx(45)

    def test_no_number(self):
        with pytest.raises(CO2ParseError):
            parse_co2("I cannot tell from this photo.")

    def test_parse_error_is_value_error(self):
        with pytest.raises(ValueError):
            parse_co2("")


@pytest.mark.asyncio
async def test_mock_client_fixed_value():
    """Mock client returns its configured value and records calls."""
    client = MockEstimationClient(value=7.5)

    value = await client.estimate("Coat", "Wool", "https://img/coat.jpg")

    assert value == 7.5
    assert client.calls == [("Coat", "Wool", "https://img/coat.jpg")]
    assert client.provider_name == "mock"


@pytest.mark.asyncio
async def test_mock_client_derived_value():
    """Without a fixed value the estimate depends on the text."""
    client = MockEstimationClient()

    short = await client.estimate("Cup", "", "x")
    longer = await client.estimate("Solid oak dining table", "Seats six, minor scratches", "x")

    assert 0 < short < longer


@pytest.mark.asyncio
async def test_openai_client_parses_answer():
    """OpenAI client sends the photo and parses the model answer."""
    client = OpenAIEstimationClient(api_key="sk-test", model="gpt-4o-mini")
    response = SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content="$21.4$"))]
    )
    client.client = SimpleNamespace(
        chat=SimpleNamespace(completions=SimpleNamespace(create=AsyncMock(return_value=response)))
    )

    value = await client.estimate("Coat", "Wool", "https://img/coat.jpg")

    assert value == pytest.approx(21.4)
    kwargs = client.client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "gpt-4o-mini"
    user_content = kwargs["messages"][1]["content"]
    assert {"type": "image_url", "image_url": {"url": "https://img/coat.jpg"}} in user_content


@pytest.mark.asyncio
async def test_openai_client_propagates_request_errors():
    client = OpenAIEstimationClient(api_key="sk-test")
    client.client = SimpleNamespace(
        chat=SimpleNamespace(
            completions=SimpleNamespace(create=AsyncMock(side_effect=RuntimeError("rate limited")))
        )
    )

    with pytest.raises(RuntimeError):
        await client.estimate("Coat", "Wool", "https://img/coat.jpg")


class TestFactory:

    def test_mock_provider(self):
        settings = Settings(_env_file=None, estimation_provider="mock")
        assert isinstance(get_estimation_client(settings), MockEstimationClient)

    def test_openai_without_key_falls_back(self):
        settings = Settings(_env_file=None, estimation_provider="openai", openai_api_key="")
        assert isinstance(get_estimation_client(settings), MockEstimationClient)

    def test_openai_with_key(self):
        settings = Settings(_env_file=None, estimation_provider="OpenAI", openai_api_key="sk-test")
        client = get_estimation_client(settings)
        assert isinstance(client, OpenAIEstimationClient)
        assert client.provider_name == "openai"

    def test_unknown_provider(self):
        settings = Settings(_env_file=None, estimation_provider="crystal-ball")
        assert isinstance(get_estimation_client(settings), MockEstimationClient)
