# pagespeed_mcp/tools.py
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Type

import pydantic

from pagespeed_mcp.core.logging import get_request_logger, new_correlation_id
from pagespeed_mcp.errors import PageSpeedMCPError, UnsupportedOperationError, ValidationError
from pagespeed_mcp.models import (
    AnalysisRequest,
    BatchRequest,
    ClearCacheRequest,
    CompareRequest,
    FieldDataRequest,
    FullAuditRequest,
    FullReportRequest,
    PerformanceSummaryRequest,
    ToolInput,
    ToolResponse,
)
from pagespeed_mcp.services.orchestrator import PageSpeedTools

Handler = Callable[[Any, str], Awaitable[ToolResponse]]


@dataclass(frozen=True)
class Tool:
    name: str
    description: str
    input_model: Type[ToolInput]
    handler: Handler

    def input_schema(self) -> Dict[str, Any]:
        schema = self.input_model.model_json_schema(by_alias=True)
        schema.pop("title", None)
        schema.setdefault("properties", {})
        return schema


def _format_errors(error: pydantic.ValidationError) -> List[str]:
    messages = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "arguments"
        messages.append(f"{location}: {item['msg']}")
    return messages


class ToolRegistry:
    """
    Maps tool names to their input schema and handler.

    `call` is the error boundary: whatever happens inside a tool, the caller
    gets back exactly one well-formed ToolResponse.
    """

    def __init__(self):
        self._tools: Dict[str, Tool] = {}

    def register(self, name: str, description: str, input_model: Type[ToolInput], handler: Handler) -> None:
        self._tools[name] = Tool(name, description, input_model, handler)

    def list_tools(self) -> List[Tool]:
        return list(self._tools.values())

    def get(self, name: str) -> Tool:
        tool = self._tools.get(name)
        if tool is None:
            raise UnsupportedOperationError(name)
        return tool

    def validate(self, name: str, arguments: Optional[Dict[str, Any]]) -> Tuple[Tool, ToolInput]:
        """
        Parses the raw argument bag into the tool's typed request.

        Raises:
            UnsupportedOperationError: If no tool has this name.
            ValidationError: Listing every violated constraint.
        """
        tool = self.get(name)
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            raise ValidationError(name, ["arguments: Input should be an object"])
        try:
            return tool, tool.input_model.model_validate(arguments)
        except pydantic.ValidationError as e:
            raise ValidationError(name, _format_errors(e)) from e

    async def call(self, name: str, arguments: Optional[Dict[str, Any]]) -> ToolResponse:
        correlation_id = new_correlation_id()
        logger = get_request_logger(correlation_id, name)
        logger.info("tool_called")

        try:
            tool, request = self.validate(name, arguments)
        except UnsupportedOperationError as e:
            logger.warning("unsupported_tool")
            return ToolResponse.error(str(e))
        except ValidationError as e:
            logger.warning("invalid_arguments", errors=e.errors)
            return ToolResponse.error(str(e))

        try:
            response = await tool.handler(request, correlation_id)
        except PageSpeedMCPError as e:
            logger.warning("tool_failed", error=str(e))
            return ToolResponse.error(f"Error running {name}: {e}")
        except Exception as e:
            logger.exception("tool_crashed")
            return ToolResponse.error(f"Unexpected error running {name}: {e}")

        logger.info("tool_completed", is_error=response.is_error)
        return response


def build_registry(tools: PageSpeedTools) -> ToolRegistry:
    registry = ToolRegistry()
    registry.register(
        "analyze_page_speed",
        "Analyze web page performance using Google PageSpeed Insights (Lighthouse lab data). "
        "Returns a summary and the complete Lighthouse JSON.",
        AnalysisRequest,
        tools.analyze_page_speed,
    )
    registry.register(
        "get_performance_summary",
        "Get a simplified performance summary (score, Core Web Vitals, top opportunities) for a web page",
        PerformanceSummaryRequest,
        tools.get_performance_summary,
    )
    registry.register(
        "get_crux_summary",
        "Get real-user field data from the Chrome UX Report for a URL",
        FieldDataRequest,
        tools.get_crux_summary,
    )
    registry.register(
        "compare_pages",
        "Compare the performance of two web pages side by side",
        CompareRequest,
        tools.compare_pages,
    )
    registry.register(
        "batch_analyze",
        "Analyze up to 10 URLs and summarize their performance scores",
        BatchRequest,
        tools.batch_analyze,
    )
    registry.register(
        "get_full_report",
        "Combined report of Lighthouse lab data and Chrome UX Report field data",
        FullReportRequest,
        tools.get_full_report,
    )
    registry.register(
        "get_recommendations",
        "Get prioritized, actionable performance recommendations with quick wins",
        PerformanceSummaryRequest,
        tools.get_recommendations,
    )
    registry.register(
        "get_visual_analysis",
        "Get screenshots and the loading filmstrip for a web page",
        PerformanceSummaryRequest,
        tools.get_visual_analysis,
    )
    registry.register(
        "get_element_analysis",
        "Identify the elements behind LCP and layout shifts",
        PerformanceSummaryRequest,
        tools.get_element_analysis,
    )
    registry.register(
        "get_network_analysis",
        "Get the network request waterfall and resource breakdown",
        PerformanceSummaryRequest,
        tools.get_network_analysis,
    )
    registry.register(
        "get_javascript_analysis",
        "Get JavaScript execution time, main-thread work and unused, duplicated or legacy code",
        PerformanceSummaryRequest,
        tools.get_javascript_analysis,
    )
    registry.register(
        "get_image_optimization_details",
        "List images that are oversized, offscreen, poorly encoded or in legacy formats",
        PerformanceSummaryRequest,
        tools.get_image_optimization_details,
    )
    registry.register(
        "get_render_blocking_details",
        "List render-blocking resources and the critical request chain",
        PerformanceSummaryRequest,
        tools.get_render_blocking_details,
    )
    registry.register(
        "get_third_party_impact",
        "Measure the transfer size and blocking time of third-party code",
        PerformanceSummaryRequest,
        tools.get_third_party_impact,
    )
    registry.register(
        "get_full_audit",
        "Run a full Lighthouse audit across performance, accessibility, best practices and SEO",
        FullAuditRequest,
        tools.get_full_audit,
    )
    registry.register(
        "clear_cache",
        "Clear all cached PageSpeed and CrUX responses",
        ClearCacheRequest,
        tools.clear_cache,
    )
    return registry
