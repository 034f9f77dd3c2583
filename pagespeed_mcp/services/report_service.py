# pagespeed_mcp/services/report_service.py
"""Renders extracted views as markdown text for the agent host."""
from typing import List, Optional

from pagespeed_mcp.models import (
    BatchSummary,
    ElementData,
    ElementNode,
    FieldDataSummary,
    ImageData,
    ImageItem,
    JavaScriptData,
    NetworkData,
    OtherCategories,
    PerformanceSummary,
    RecommendationReport,
    RenderBlockingData,
    ThirdPartyData,
    VisualData,
)

TOP_ITEMS = 10

CATEGORY_TITLES = {
    "accessibility": "Accessibility",
    "seo": "SEO",
    "best_practices": "Best Practices",
    "pwa": "PWA",
}

FIELD_METRIC_TITLES = {
    "largest_contentful_paint": "Largest Contentful Paint",
    "interaction_to_next_paint": "Interaction to Next Paint",
    "cumulative_layout_shift": "Cumulative Layout Shift",
    "first_contentful_paint": "First Contentful Paint",
    "experimental_time_to_first_byte": "Time to First Byte",
    "first_input_delay": "First Input Delay",
}

INSUFFICIENT_TRAFFIC = (
    "No field data available: the Chrome UX Report has insufficient real-user traffic for this URL."
)


def _kb(size: float) -> str:
    return f"{size / 1024:.1f} KB"


def _ms(value: float) -> str:
    return f"{value:.0f} ms"


def _score(score: Optional[int]) -> str:
    return "N/A" if score is None else f"{score}/100"


def _percent(score: Optional[float]) -> str:
    return "N/A" if score is None else f"{round(score * 100)}/100"


def _node_label(node: ElementNode) -> str:
    return node.node_label or node.selector or node.snippet or "unknown element"


# --- Lab reports ---
def _summary_lines(summary: PerformanceSummary) -> List[str]:
    lines = [f"**Performance Score:** {_score(summary.score)}", "", "### Core Metrics"]
    metrics = summary.metrics
    lines += [
        f"- First Contentful Paint: {metrics.first_contentful_paint or 'N/A'}",
        f"- Largest Contentful Paint: {metrics.largest_contentful_paint or 'N/A'}",
        f"- Cumulative Layout Shift: {metrics.cumulative_layout_shift or 'N/A'}",
        f"- Speed Index: {metrics.speed_index or 'N/A'}",
        f"- Total Blocking Time: {metrics.total_blocking_time or 'N/A'}",
    ]
    lines += ["", "### Top Opportunities"]
    if not summary.opportunities:
        lines.append("No significant opportunities were identified.")
    for opp in summary.opportunities:
        savings = f" ({opp.display_value})" if opp.display_value else ""
        lines.append(f"- {opp.title}{savings}")
    return lines


def format_performance_summary(summary: PerformanceSummary) -> str:
    lines = [
        f"# Performance Summary: {summary.url}",
        f"**Device:** {summary.strategy}",
    ]
    if summary.timestamp:
        lines.append(f"**Analyzed:** {summary.timestamp}")
    lines.append("")
    lines += _summary_lines(summary)
    return "\n".join(lines)


def format_analysis(summary: PerformanceSummary, categories: OtherCategories, requested: List[str]) -> str:
    """Headline report for a full PageSpeed analysis; the raw JSON travels as a resource."""
    lines = [format_performance_summary(summary)]
    other = [
        (field, title) for field, title in CATEGORY_TITLES.items()
        if field.replace("_", "-") in requested
    ]
    if other:
        lines += ["", "### Other Categories"]
        for field, title in other:
            lines.append(f"- {title}: {_percent(getattr(categories, field).score)}")
    lines += ["", "_The complete Lighthouse JSON is attached as a resource._"]
    return "\n".join(lines)


def format_full_audit(summary: PerformanceSummary, categories: OtherCategories) -> str:
    lines = [f"# Full Audit: {summary.url}", f"**Device:** {summary.strategy}", ""]
    lines += _summary_lines(summary)
    for field, title in CATEGORY_TITLES.items():
        category = getattr(categories, field)
        if category.score is None and not category.key_audits:
            continue
        lines += ["", f"## {title}: {_percent(category.score)}"]
        if not category.key_audits:
            lines.append("All audits passed.")
        for audit in category.key_audits:
            lines.append(f"- {audit.title} (score: {_percent(audit.score)})")
    return "\n".join(lines)


def format_comparison(a: PerformanceSummary, b: PerformanceSummary) -> str:
    lines = [
        "# Performance Comparison",
        f"**Device:** {a.strategy}",
        "",
        f"| Metric | {a.url} | {b.url} |",
        "|---|---|---|",
        f"| Performance Score | {_score(a.score)} | {_score(b.score)} |",
    ]
    rows = [
        ("First Contentful Paint", "first_contentful_paint"),
        ("Largest Contentful Paint", "largest_contentful_paint"),
        ("Cumulative Layout Shift", "cumulative_layout_shift"),
        ("Speed Index", "speed_index"),
        ("Total Blocking Time", "total_blocking_time"),
    ]
    for title, field in rows:
        lines.append(f"| {title} | {getattr(a.metrics, field) or 'N/A'} | {getattr(b.metrics, field) or 'N/A'} |")

    lines.append("")
    if a.score is None or b.score is None:
        lines.append("Winner could not be determined: a performance score is missing.")
    elif a.score == b.score:
        lines.append("Both pages have the same performance score.")
    else:
        winner, loser = (a, b) if a.score > b.score else (b, a)
        lines.append(f"**{winner.url}** scores {winner.score - loser.score} points higher.")
    return "\n".join(lines)


def format_batch(batch: BatchSummary) -> str:
    lines = [
        "# Batch Analysis",
        f"**Total:** {batch.total} | **Succeeded:** {batch.succeeded} | **Failed:** {batch.failed}",
        "",
    ]
    for i, item in enumerate(batch.results, 1):
        if item.success:
            lcp = f", LCP {item.largest_contentful_paint}" if item.largest_contentful_paint else ""
            lines.append(f"{i}. {item.url}: {_score(item.score)}{lcp}")
        else:
            lines.append(f"{i}. {item.url}: FAILED ({item.error})")
    return "\n".join(lines)


# --- Field data ---
def format_field_data(summary: FieldDataSummary) -> str:
    lines = [f"# Chrome UX Report: {summary.url}"]
    if summary.form_factor:
        lines.append(f"**Form Factor:** {summary.form_factor}")
    lines.append("")
    if not summary.has_data:
        lines.append(INSUFFICIENT_TRAFFIC)
        return "\n".join(lines)

    if summary.collection_period:
        lines += [f"**Collection Period:** {summary.collection_period}", ""]
    lines.append("| Metric | p75 | Good | Needs Improvement | Poor | Rating |")
    lines.append("|---|---|---|---|---|---|")
    for metric in summary.metrics:
        title = FIELD_METRIC_TITLES.get(metric.name, metric.name)
        p75 = "N/A" if metric.p75 is None else f"{metric.p75:g}"
        lines.append(
            f"| {title} | {p75} | {metric.good:.0%} | {metric.needs_improvement:.0%} "
            f"| {metric.poor:.0%} | {metric.rating or 'N/A'} |"
        )
    return "\n".join(lines)


def format_full_report(
    url: str,
    lab: Optional[PerformanceSummary],
    lab_error: Optional[str],
    field: Optional[FieldDataSummary],
    field_error: Optional[str],
) -> str:
    lines = [f"# Full Performance Report: {url}", "", "## Lab Data (Lighthouse)"]
    if lab is not None:
        lines += _summary_lines(lab)
    else:
        lines.append(f"Lab data unavailable: {lab_error}")

    lines += ["", "## Field Data (Chrome UX Report)"]
    if field is not None:
        lines += format_field_data(field).splitlines()[1:]
    else:
        lines.append(f"Field data unavailable: {field_error}")
    return "\n".join(lines)


# --- Detail views ---
def format_visual_analysis(url: str, visual: VisualData) -> str:
    lines = [f"# Visual Analysis: {url}", ""]
    if visual.final_screenshot:
        shot = visual.final_screenshot
        lines.append(f"- Final screenshot: {shot.width}x{shot.height}")
    else:
        lines.append("- Final screenshot: not available")
    lines.append(f"- Filmstrip frames: {len(visual.filmstrip)}")
    for frame in visual.filmstrip:
        lines.append(f"  - {_ms(frame.timing)}")
    if visual.full_page_screenshot:
        shot = visual.full_page_screenshot.screenshot
        lines.append(
            f"- Full-page screenshot: {shot.width}x{shot.height}, "
            f"{len(visual.full_page_screenshot.nodes)} mapped elements"
        )
    lines += ["", "_Screenshot data is attached as a resource._"]
    return "\n".join(lines)


def format_element_analysis(url: str, elements: ElementData) -> str:
    lines = [f"# Element Analysis: {url}", "", "## Largest Contentful Paint Element"]
    if elements.lcp_element:
        lines.append(f"- {_node_label(elements.lcp_element)}")
        if elements.lcp_element.snippet:
            lines.append(f"  `{elements.lcp_element.snippet}`")
    else:
        lines.append("Not reported.")
    if elements.lazy_loaded_lcp:
        lines.append(f"- Warning: the LCP image is lazily loaded ({_node_label(elements.lazy_loaded_lcp)})")

    lines += ["", "## Layout Shift Elements"]
    if not elements.cls_elements:
        lines.append("No layout shifts reported.")
    for item in elements.cls_elements[:TOP_ITEMS]:
        lines.append(f"- {_node_label(item.node)} (score: {item.score:.3f})")
    return "\n".join(lines)


def format_network_analysis(url: str, network: NetworkData) -> str:
    lines = [
        f"# Network Analysis: {url}",
        "",
        f"- Requests: {network.request_count}",
        f"- Total byte weight: {_kb(network.total_byte_weight)}",
        f"- Round trip time: {'N/A' if network.rtt is None else _ms(network.rtt)}",
        f"- Server latency: {'N/A' if network.server_latency is None else _ms(network.server_latency)}",
        "",
        "## Resource Summary",
    ]
    for item in network.resource_summary:
        lines.append(f"- {item.label or item.resource_type}: {item.count} requests, {_kb(item.size)}")
    lines += ["", "## Largest Requests"]
    largest = sorted(network.requests, key=lambda r: r.transfer_size, reverse=True)[:TOP_ITEMS]
    for request in largest:
        lines.append(f"- {request.url} ({request.resource_type or 'other'}, {_kb(request.transfer_size)})")
    return "\n".join(lines)


def format_javascript_analysis(url: str, js: JavaScriptData) -> str:
    lines = [f"# JavaScript Analysis: {url}", "", "## Execution Time"]
    for item in js.bootup_time[:TOP_ITEMS]:
        lines.append(f"- {item.url}: {_ms(item.total)} total, {_ms(item.scripting)} scripting")
    lines += ["", "## Main Thread Work"]
    for item in js.main_thread_work:
        lines.append(f"- {item.group_label or item.group}: {_ms(item.duration)}")
    lines += ["", "## Unused JavaScript"]
    for item in js.unused_javascript[:TOP_ITEMS]:
        lines.append(f"- {item.url}: {_kb(item.wasted_bytes)} unused of {_kb(item.total_bytes)}")
    if js.duplicated_javascript:
        lines += ["", "## Duplicated Modules"]
        for item in js.duplicated_javascript[:TOP_ITEMS]:
            lines.append(f"- {item.source}: {_kb(item.wasted_bytes)} wasted")
    if js.legacy_javascript:
        lines += ["", "## Legacy JavaScript"]
        for item in js.legacy_javascript[:TOP_ITEMS]:
            signals = ", ".join(s for s in item.signals if s)
            lines.append(f"- {item.url}: {_kb(item.wasted_bytes)}" + (f" ({signals})" if signals else ""))
    return "\n".join(lines)


def _image_section(title: str, images: List[ImageItem]) -> List[str]:
    lines = ["", f"## {title}"]
    if not images:
        lines.append("Nothing to fix.")
    for image in images[:TOP_ITEMS]:
        lines.append(f"- {image.url}: save {_kb(image.wasted_bytes)} of {_kb(image.total_bytes)}")
    return lines


def format_image_analysis(url: str, images: ImageData) -> str:
    lines = [f"# Image Optimization: {url}"]
    lines += _image_section("Properly Size Images", images.responsive_images)
    lines += _image_section("Defer Offscreen Images", images.offscreen_images)
    lines += _image_section("Efficiently Encode Images", images.unoptimized_images)
    lines += _image_section("Serve Images in Modern Formats", images.modern_formats)
    return "\n".join(lines)


def format_render_blocking(url: str, data: RenderBlockingData) -> str:
    lines = [
        f"# Render-Blocking Resources: {url}",
        "",
        f"**Potential savings:** {_ms(data.total_wasted_ms)}",
        "",
    ]
    if not data.resources:
        lines.append("No render-blocking resources found.")
    for resource in data.resources:
        lines.append(f"- {resource.url} ({_kb(resource.total_bytes)}, {_ms(resource.wasted_ms)})")
    longest = (data.critical_chains or {}).get("longestChain")
    if isinstance(longest, dict):
        lines += [
            "",
            f"**Longest critical chain:** {longest.get('length', 0)} requests, "
            f"{_ms(longest.get('duration') or 0)}",
        ]
    return "\n".join(lines)


def format_third_party(url: str, data: ThirdPartyData) -> str:
    lines = [
        f"# Third-Party Impact: {url}",
        "",
        f"- Total transfer size: {_kb(data.total_transfer_size)}",
        f"- Total blocking time: {_ms(data.total_blocking_time)}",
        "",
        "## By Entity",
    ]
    entities = sorted(data.summary, key=lambda i: i.blocking_time, reverse=True)[:TOP_ITEMS]
    if not entities:
        lines.append("No third-party code detected.")
    for item in entities:
        lines.append(f"- {item.entity}: {_kb(item.transfer_size)}, {_ms(item.blocking_time)} blocking")
    if data.facades:
        lines += ["", "## Lazy-Load Candidates (Facades)"]
        for facade in data.facades:
            lines.append(f"- {facade.product}: {_kb(facade.transfer_size)}")
    return "\n".join(lines)


def format_recommendations(report: RecommendationReport) -> str:
    summary = report.summary
    lines = [
        "# Performance Recommendations",
        f"**URL:** {report.url}",
        f"**Current Score:** {report.overall_score}/100",
        f"**Device:** {report.strategy}",
        "",
        "## Summary",
        f"- Total Recommendations: {summary.total_recommendations}",
        f"- High Priority: {summary.high_priority}",
        f"- Medium Priority: {summary.medium_priority}",
        f"- Low Priority: {summary.low_priority}",
        f"- Estimated Impact: {summary.estimated_impact}",
    ]
    if report.quick_wins:
        lines += ["", "## Quick Wins (Low Effort, High Impact)"]
        for i, rec in enumerate(report.quick_wins[:5], 1):
            lines.append(f"{i}. {rec.title} (priority {rec.priority}/100)")

    lines += ["", "## All Recommendations (Priority Order)"]
    if not report.recommendations:
        lines.append("No recommendations: every audit we have guidance for passed.")
    for i, rec in enumerate(report.recommendations[:TOP_ITEMS], 1):
        lines += [
            "",
            f"### {i}. {rec.title}",
            f"**Priority:** {rec.priority}/100 | **Category:** {rec.category} "
            f"| **Impact:** {rec.impact} | **Effort:** {rec.effort}",
        ]
        if rec.potential_savings:
            lines.append(f"**Potential Savings:** {rec.potential_savings}")
        lines += ["", rec.description, "", "**Action Steps:**"]
        lines += [f"- {fix}" for fix in rec.how_to_fix[:3]]
    return "\n".join(lines)
