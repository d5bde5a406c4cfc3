"""Tool registry for run tool calls.

Maps a tool name to a handler that takes validated arguments and returns the
output string submitted back to the run. New tools are added with
:meth:`ToolRegistry.register`; the orchestrator never changes for them.
"""

import hashlib
import inspect
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type, Union

import structlog
from pydantic import BaseModel, ValidationError

from ..domain.models import ToolCall, ToolOutput
from .metrics import TOOL_CALLS

logger = structlog.get_logger()

ToolHandler = Callable[[Any], Union[str, Awaitable[str]]]


@dataclass
class RegisteredTool:
    """A handler together with the model its arguments are parsed into."""

    name: str
    handler: ToolHandler
    input_model: Type[BaseModel]


class ToolRegistry:
    """Name to handler mapping consulted when a run requires action."""

    def __init__(self) -> None:
        self._tools: Dict[str, RegisteredTool] = {}

    def register(self, name: str, handler: ToolHandler, input_model: Type[BaseModel]) -> None:
        if name in self._tools:
            logger.warning("tool_replaced", tool=name)
        self._tools[name] = RegisteredTool(name=name, handler=handler, input_model=input_model)

    def names(self) -> List[str]:
        return sorted(self._tools)

    async def invoke(self, tool_call: ToolCall) -> Optional[ToolOutput]:
        """Run one tool call.

        Unknown tools produce no output at all. Bad arguments or a failing
        handler produce an empty output so the run can still proceed.
        """
        tool = self._tools.get(tool_call.name)
        if tool is None:
            logger.warning("tool_not_registered", tool=tool_call.name, tool_call_id=tool_call.id)
            TOOL_CALLS.labels(outcome="unknown").inc()
            return None

        try:
            arguments = tool.input_model.model_validate_json(tool_call.arguments)
        except ValidationError as e:
            logger.warning(
                "tool_arguments_invalid",
                tool=tool_call.name,
                tool_call_id=tool_call.id,
                error=str(e)
            )
            TOOL_CALLS.labels(outcome="invalid_arguments").inc()
            return ToolOutput(tool_call_id=tool_call.id, output="")

        try:
            result = tool.handler(arguments)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            logger.error("tool_failed", tool=tool_call.name, tool_call_id=tool_call.id, error=str(e))
            TOOL_CALLS.labels(outcome="error").inc()
            return ToolOutput(tool_call_id=tool_call.id, output="")

        TOOL_CALLS.labels(outcome="ok").inc()
        logger.info("tool_invoked", tool=tool_call.name, tool_call_id=tool_call.id)
        return ToolOutput(tool_call_id=tool_call.id, output=str(result))


class WeatherForecastInput(BaseModel):
    location: str = ""


FORECAST_CONDITIONS = ["sunny", "partly cloudy", "overcast", "light rain", "windy", "snowy"]


def get_weather_forecast(arguments: WeatherForecastInput) -> str:
    """Offline forecast lookup; the same location always yields the same forecast."""
    location = arguments.location.strip()
    if not location:
        return "No location given."
    digest = hashlib.sha256(location.lower().encode("utf-8")).digest()
    condition = FORECAST_CONDITIONS[digest[0] % len(FORECAST_CONDITIONS)]
    temperature = digest[1] % 40 - 5
    return f"The forecast for {location} is {condition} with a high of {temperature}°C."


def default_registry() -> ToolRegistry:
    registry = ToolRegistry()
    registry.register("get_weather_forecast", get_weather_forecast, WeatherForecastInput)
    return registry
