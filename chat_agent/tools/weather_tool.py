"""Weather tool gated on human confirmation."""

from __future__ import annotations

import logging

from pydantic import BaseModel

from chat_agent.tools.base import ConfirmTool

LOGGER = logging.getLogger(__name__)


class WeatherInput(BaseModel):
    city: str


class GetWeatherInformationTool(ConfirmTool):
    """Shows the weather for a city once the user approves the lookup."""

    name = "getWeatherInformation"
    description = "show the weather in a given city to the user"
    input_model = WeatherInput


async def get_weather_information(params: WeatherInput) -> str:
    LOGGER.info("Getting weather information for %s", params.city)
    return f"The weather in {params.city} is sunny"
