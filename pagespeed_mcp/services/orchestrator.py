# pagespeed_mcp/services/orchestrator.py
import asyncio
import json
from typing import Any, Callable, Dict, List
from urllib.parse import quote

from pagespeed_mcp.core.logging import get_request_logger
from pagespeed_mcp.errors import PageSpeedMCPError
from pagespeed_mcp.models import (
    AnalysisRequest,
    BatchItemResult,
    BatchRequest,
    BatchSummary,
    ClearCacheRequest,
    CompareRequest,
    FieldDataRequest,
    FullAuditRequest,
    FullReportRequest,
    PerformanceSummaryRequest,
    ResourceContent,
    TextContent,
    ToolResponse,
)
from pagespeed_mcp.services import processing_service, report_service
from pagespeed_mcp.services.cache import ResponseCache
from pagespeed_mcp.services.pagespeed_service import PageSpeedClient
from pagespeed_mcp.services.recommendation_service import generate_recommendations


def json_resource(tool: str, url: str, payload: Any) -> ResourceContent:
    return ResourceContent(
        uri=f"pagespeed://reports/{tool}/{quote(url, safe='')}",
        name=f"{tool} ({url})",
        text=json.dumps(payload, indent=2),
    )


def _respond(text: str, tool: str, url: str, payload: Any) -> ToolResponse:
    return ToolResponse(content=[TextContent(text=text), json_resource(tool, url, payload)])


class PageSpeedTools:
    """
    Composes validated tool requests into client calls, normalized views and
    rendered reports. Upstream errors propagate to the registry, except in
    the partial-failure tools (full report, batch) that record them.
    """

    def __init__(self, client: PageSpeedClient, cache: ResponseCache):
        self.client = client
        self.cache = cache

    # --- Lab analysis ---
    async def analyze_page_speed(self, request: AnalysisRequest, correlation_id: str) -> ToolResponse:
        data = await self.client.analyze_page_speed(request, correlation_id)
        summary = processing_service.extract_performance_summary(data, request.url, request.strategy)
        categories = processing_service.extract_other_categories(data)
        text = report_service.format_analysis(summary, categories, request.category)
        return _respond(text, "analyze_page_speed", request.url, data)

    async def get_performance_summary(
        self, request: PerformanceSummaryRequest, correlation_id: str
    ) -> ToolResponse:
        data = await self.client.analyze_page_speed(request.to_analysis(), correlation_id)
        summary = processing_service.extract_performance_summary(data, request.url, request.strategy)
        payload = summary.as_dict()
        payload["detailedMetrics"] = processing_service.extract_detailed_metrics(data).as_dict()
        return _respond(
            report_service.format_performance_summary(summary),
            "get_performance_summary", request.url, payload,
        )

    async def _lab_view(
        self,
        request: PerformanceSummaryRequest,
        correlation_id: str,
        tool: str,
        extract: Callable[[Dict[str, Any]], Any],
        render: Callable[[str, Any], str],
    ) -> ToolResponse:
        data = await self.client.analyze_page_speed(request.to_analysis(), correlation_id)
        view = extract(data)
        return _respond(render(request.url, view), tool, request.url, view.as_dict())

    async def get_visual_analysis(self, request: PerformanceSummaryRequest, correlation_id: str) -> ToolResponse:
        return await self._lab_view(
            request, correlation_id, "get_visual_analysis",
            processing_service.extract_visual_data, report_service.format_visual_analysis,
        )

    async def get_element_analysis(self, request: PerformanceSummaryRequest, correlation_id: str) -> ToolResponse:
        return await self._lab_view(
            request, correlation_id, "get_element_analysis",
            processing_service.extract_element_data, report_service.format_element_analysis,
        )

    async def get_network_analysis(self, request: PerformanceSummaryRequest, correlation_id: str) -> ToolResponse:
        return await self._lab_view(
            request, correlation_id, "get_network_analysis",
            processing_service.extract_network_data, report_service.format_network_analysis,
        )

    async def get_javascript_analysis(
        self, request: PerformanceSummaryRequest, correlation_id: str
    ) -> ToolResponse:
        return await self._lab_view(
            request, correlation_id, "get_javascript_analysis",
            processing_service.extract_javascript_data, report_service.format_javascript_analysis,
        )

    async def get_image_optimization_details(
        self, request: PerformanceSummaryRequest, correlation_id: str
    ) -> ToolResponse:
        return await self._lab_view(
            request, correlation_id, "get_image_optimization_details",
            processing_service.extract_image_data, report_service.format_image_analysis,
        )

    async def get_render_blocking_details(
        self, request: PerformanceSummaryRequest, correlation_id: str
    ) -> ToolResponse:
        return await self._lab_view(
            request, correlation_id, "get_render_blocking_details",
            processing_service.extract_render_blocking_data, report_service.format_render_blocking,
        )

    async def get_third_party_impact(self, request: PerformanceSummaryRequest, correlation_id: str) -> ToolResponse:
        return await self._lab_view(
            request, correlation_id, "get_third_party_impact",
            processing_service.extract_third_party_data, report_service.format_third_party,
        )

    async def get_recommendations(self, request: PerformanceSummaryRequest, correlation_id: str) -> ToolResponse:
        data = await self.client.analyze_page_speed(request.to_analysis(), correlation_id)
        report = generate_recommendations(data, request.url, request.strategy)
        return _respond(
            report_service.format_recommendations(report),
            "get_recommendations", request.url, report.as_dict(),
        )

    async def get_full_audit(self, request: FullAuditRequest, correlation_id: str) -> ToolResponse:
        data = await self.client.analyze_page_speed(request.to_analysis(), correlation_id)
        summary = processing_service.extract_performance_summary(data, request.url, request.strategy)
        categories = processing_service.extract_other_categories(data)
        payload = {"performance": summary.as_dict(), "categories": categories.as_dict()}
        return _respond(report_service.format_full_audit(summary, categories), "get_full_audit", request.url, payload)

    # --- Field data ---
    async def get_crux_summary(self, request: FieldDataRequest, correlation_id: str) -> ToolResponse:
        data = await self.client.get_crux_data(request, correlation_id)
        summary = processing_service.extract_field_data(data, request.url, request.form_factor)
        return _respond(report_service.format_field_data(summary), "get_crux_summary", request.url, data)

    # --- Multi-call tools ---
    async def compare_pages(self, request: CompareRequest, correlation_id: str) -> ToolResponse:
        first, second = request.requests()
        # both legs must succeed, the first failure fails the comparison
        data_a, data_b = await asyncio.gather(
            self.client.analyze_page_speed(first, correlation_id),
            self.client.analyze_page_speed(second, correlation_id),
        )
        summary_a = processing_service.extract_performance_summary(data_a, first.url, first.strategy)
        summary_b = processing_service.extract_performance_summary(data_b, second.url, second.strategy)
        payload = {"urlA": summary_a.as_dict(), "urlB": summary_b.as_dict()}
        return _respond(
            report_service.format_comparison(summary_a, summary_b),
            "compare_pages", f"{first.url} vs {second.url}", payload,
        )

    async def get_full_report(self, request: FullReportRequest, correlation_id: str) -> ToolResponse:
        logger = get_request_logger(correlation_id, "get_full_report")
        lab_result, field_result = await asyncio.gather(
            self.client.analyze_page_speed(request.lab(), correlation_id),
            self.client.get_crux_data(request.field(), correlation_id),
            return_exceptions=True,
        )
        for result in (lab_result, field_result):
            if isinstance(result, BaseException) and not isinstance(result, Exception):
                raise result

        lab = field = None
        lab_error = field_error = None
        if isinstance(lab_result, Exception):
            lab_error = str(lab_result)
            logger.warning("lab_data_unavailable", error=lab_error)
        else:
            lab = processing_service.extract_performance_summary(lab_result, request.url, request.strategy)
        if isinstance(field_result, Exception):
            field_error = str(field_result)
            logger.warning("field_data_unavailable", error=field_error)
        else:
            field = processing_service.extract_field_data(field_result, request.url, request.form_factor)

        text = report_service.format_full_report(request.url, lab, lab_error, field, field_error)
        if lab is None and field is None:
            return ToolResponse.error(text)

        payload = {
            "lab": lab.as_dict() if lab else None,
            "labError": lab_error,
            "field": field.as_dict() if field else None,
            "fieldError": field_error,
        }
        return _respond(text, "get_full_report", request.url, payload)

    async def batch_analyze(self, request: BatchRequest, correlation_id: str) -> ToolResponse:
        """
        Analyzes each URL in input order, one at a time. A failing URL is
        recorded in its result and the batch carries on.
        """
        logger = get_request_logger(correlation_id, "batch_analyze")
        results: List[BatchItemResult] = []
        for analysis in request.requests():
            try:
                data = await self.client.analyze_page_speed(analysis, correlation_id)
            except PageSpeedMCPError as e:
                logger.warning("batch_item_failed", url=analysis.url, error=str(e))
                results.append(BatchItemResult(url=analysis.url, success=False, error=str(e)))
                continue
            except Exception as e:
                logger.exception("batch_item_crashed", url=analysis.url)
                results.append(BatchItemResult(url=analysis.url, success=False, error=str(e)))
                continue
            summary = processing_service.extract_performance_summary(data, analysis.url, analysis.strategy)
            results.append(BatchItemResult(
                url=analysis.url,
                success=True,
                score=summary.score,
                largest_contentful_paint=summary.metrics.largest_contentful_paint,
            ))

        succeeded = sum(1 for r in results if r.success)
        batch = BatchSummary(
            total=len(results), succeeded=succeeded, failed=len(results) - succeeded, results=results
        )
        logger.info("batch_completed", succeeded=batch.succeeded, failed=batch.failed)
        return _respond(report_service.format_batch(batch), "batch_analyze", "batch", batch.as_dict())

    # --- Maintenance ---
    async def clear_cache(self, request: ClearCacheRequest, correlation_id: str) -> ToolResponse:
        removed = self.cache.clear()
        return ToolResponse.text(f"Cache cleared ({removed} entries removed).")

