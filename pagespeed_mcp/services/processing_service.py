# pagespeed_mcp/services/processing_service.py
"""
Projections of a raw PageSpeed Insights / CrUX response into typed views.

Every function here is pure and total: a missing or malformed parent at any
depth yields the view's default shape instead of an exception. Each view
reads a fixed set of audit ids and ignores everything else.
"""
from typing import Any, Dict, List, Optional

from pagespeed_mcp.models import (
    AuditSummary,
    BootupItem,
    CategorySummary,
    DetailedMetrics,
    DuplicatedScript,
    ElementData,
    ElementNode,
    FieldDataSummary,
    FieldMetric,
    FilmstripFrame,
    FullPageScreenshot,
    ImageData,
    ImageItem,
    JavaScriptData,
    LayoutShiftElement,
    LegacyScript,
    MainThreadWorkItem,
    NetworkData,
    NetworkRequest,
    Opportunity,
    OtherCategories,
    PerformanceMetrics,
    PerformanceSummary,
    RenderBlockingData,
    RenderBlockingResource,
    ResourceSummaryItem,
    ScreenshotData,
    ThirdPartyData,
    ThirdPartyFacade,
    ThirdPartyItem,
    UnusedResource,
    VisualData,
)

MAX_OPPORTUNITIES = 5
MAX_KEY_AUDITS = 5

KEY_METRIC_AUDITS = {
    "first_contentful_paint": "first-contentful-paint",
    "largest_contentful_paint": "largest-contentful-paint",
    "cumulative_layout_shift": "cumulative-layout-shift",
    "speed_index": "speed-index",
    "total_blocking_time": "total-blocking-time",
    "first_meaningful_paint": "first-meaningful-paint",
}

# view field -> upstream category id
OTHER_CATEGORIES = {
    "accessibility": "accessibility",
    "seo": "seo",
    "best_practices": "best-practices",
    "pwa": "pwa",
}


# --- Safe accessors ---
def _dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def _num(value: Any, default: float = 0) -> float:
    if isinstance(value, bool):
        return default
    return value if isinstance(value, (int, float)) else default


def _opt_num(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


def _str(value: Any, default: str = "") -> str:
    return value if isinstance(value, str) else default


def _opt_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def lighthouse_of(data: Any) -> Dict[str, Any]:
    return _dict(_dict(data).get("lighthouseResult"))


def audits_of(data: Any) -> Dict[str, Any]:
    return _dict(lighthouse_of(data).get("audits"))


def categories_of(data: Any) -> Dict[str, Any]:
    return _dict(lighthouse_of(data).get("categories"))


def _audit(audits: Dict[str, Any], audit_id: str) -> Dict[str, Any]:
    return _dict(audits.get(audit_id))


def _details(audits: Dict[str, Any], audit_id: str) -> Dict[str, Any]:
    return _dict(_audit(audits, audit_id).get("details"))


def _items(audits: Dict[str, Any], audit_id: str) -> List[Dict[str, Any]]:
    return [item for item in _list(_details(audits, audit_id).get("items")) if isinstance(item, dict)]


def category_score(data: Any, category_id: str) -> Optional[float]:
    return _opt_num(_dict(categories_of(data).get(category_id)).get("score"))


def score_percent(score: Optional[float]) -> Optional[int]:
    return None if score is None else round(score * 100)


def _node(value: Any) -> ElementNode:
    node = _dict(value)
    rect = node.get("boundingRect")
    return ElementNode(
        lh_id=_opt_str(node.get("lhId")),
        path=_opt_str(node.get("path")),
        selector=_str(node.get("selector")),
        bounding_rect=rect if isinstance(rect, dict) else None,
        snippet=_str(node.get("snippet")),
        node_label=_opt_str(node.get("nodeLabel")),
        explanation=_opt_str(node.get("explanation")),
    )


def _first_item_node(audits: Dict[str, Any], audit_id: str) -> Optional[ElementNode]:
    items = _items(audits, audit_id)
    if items and isinstance(items[0].get("node"), dict):
        return _node(items[0]["node"])
    return None


# --- Views ---
def extract_performance_summary(data: Any, url: str, strategy: str) -> PerformanceSummary:
    """
    Extracts the performance score, the key lab metrics and the top
    opportunities.

    Args:
        data: The parsed JSON response from the PageSpeed API.
        url: The analyzed URL.
        strategy: The strategy used for the analysis.

    Returns:
        A PerformanceSummary whose score is on a 0-100 scale (None when the
        category was not run).
    """
    audits = audits_of(data)
    performance = _dict(categories_of(data).get("performance"))

    metrics = PerformanceMetrics(**{
        field: _opt_str(_audit(audits, audit_id).get("displayValue"))
        for field, audit_id in KEY_METRIC_AUDITS.items()
    })

    opportunities = []
    for ref in _list(performance.get("auditRefs")):
        audit_id = _str(_dict(ref).get("id"))
        audit = _audit(audits, audit_id)
        if _dict(audit.get("details")).get("type") != "opportunity":
            continue
        opportunities.append(Opportunity(
            id=audit_id,
            title=_str(audit.get("title"), audit_id),
            description=_opt_str(audit.get("description")),
            score=_opt_num(audit.get("score")),
            display_value=_opt_str(audit.get("displayValue")),
        ))
        if len(opportunities) == MAX_OPPORTUNITIES:
            break

    return PerformanceSummary(
        url=url,
        strategy=strategy,
        timestamp=_opt_str(_dict(data).get("analysisUTCTimestamp")),
        score=score_percent(_opt_num(performance.get("score"))),
        metrics=metrics,
        opportunities=opportunities,
    )


def extract_visual_data(data: Any) -> VisualData:
    """Extracts the final screenshot, the loading filmstrip and the full-page screenshot."""
    audits = audits_of(data)

    final_screenshot = None
    final = _details(audits, "final-screenshot")
    if isinstance(final.get("data"), str):
        final_screenshot = ScreenshotData(
            data=final["data"],
            width=int(_num(final.get("width"), 360)) or 360,
            height=int(_num(final.get("height"), 640)) or 640,
        )

    filmstrip = [
        FilmstripFrame(
            timing=_num(item.get("timing")),
            timestamp=_num(item.get("timestamp")),
            data=_str(item.get("data")),
        )
        for item in _items(audits, "screenshot-thumbnails")
    ]

    full_page = None
    full_page_details = _details(audits, "full-page-screenshot")
    screenshot = _dict(full_page_details.get("screenshot"))
    if screenshot:
        full_page = FullPageScreenshot(
            screenshot=ScreenshotData(
                data=_str(screenshot.get("data")),
                width=int(_num(screenshot.get("width"))),
                height=int(_num(screenshot.get("height"))),
            ),
            nodes=_dict(full_page_details.get("nodes")),
        )

    return VisualData(final_screenshot=final_screenshot, filmstrip=filmstrip, full_page_screenshot=full_page)


def extract_element_data(data: Any) -> ElementData:
    """Extracts the LCP element, layout-shifting elements and a lazily loaded LCP image."""
    audits = audits_of(data)
    cls_elements = [
        LayoutShiftElement(node=_node(item["node"]), score=_num(item.get("score")))
        for item in _items(audits, "layout-shift-elements")
        if isinstance(item.get("node"), dict)
    ]
    return ElementData(
        lcp_element=_first_item_node(audits, "largest-contentful-paint-element"),
        cls_elements=cls_elements,
        lazy_loaded_lcp=_first_item_node(audits, "lcp-lazy-loaded"),
    )


def extract_network_data(data: Any) -> NetworkData:
    audits = audits_of(data)

    requests = [
        NetworkRequest(
            url=_str(item.get("url")),
            protocol=_opt_str(item.get("protocol")),
            start_time=_num(item.get("startTime")),
            end_time=_num(item.get("endTime")),
            finished=item.get("finished") is not False,
            transfer_size=_num(item.get("transferSize")),
            resource_size=_num(item.get("resourceSize")),
            status_code=int(_num(item.get("statusCode"))),
            mime_type=_str(item.get("mimeType")),
            resource_type=_str(item.get("resourceType")),
            priority=_opt_str(item.get("priority")),
        )
        for item in _items(audits, "network-requests")
    ]

    resource_summary = [
        ResourceSummaryItem(
            resource_type=_str(item.get("resourceType")),
            label=_str(item.get("label")),
            count=int(_num(item.get("requestCount"))),
            size=_num(item.get("transferSize")),
        )
        for item in _items(audits, "resource-summary")
    ]

    return NetworkData(
        requests=requests,
        resource_summary=resource_summary,
        total_byte_weight=_num(_audit(audits, "total-byte-weight").get("numericValue")),
        request_count=len(requests),
        rtt=_opt_num(_audit(audits, "network-rtt").get("numericValue")),
        server_latency=_opt_num(_audit(audits, "network-server-latency").get("numericValue")),
    )


def extract_javascript_data(data: Any) -> JavaScriptData:
    audits = audits_of(data)
    return JavaScriptData(
        bootup_time=[
            BootupItem(
                url=_str(item.get("url")),
                total=_num(item.get("total")),
                scripting=_num(item.get("scripting")),
                script_parse_compile=_num(item.get("scriptParseCompile")),
            )
            for item in _items(audits, "bootup-time")
        ],
        main_thread_work=[
            MainThreadWorkItem(
                group=_str(item.get("group")),
                group_label=_str(item.get("groupLabel")),
                duration=_num(item.get("duration")),
            )
            for item in _items(audits, "mainthread-work-breakdown")
        ],
        unused_javascript=[
            UnusedResource(
                url=_str(item.get("url")),
                total_bytes=_num(item.get("totalBytes")),
                wasted_bytes=_num(item.get("wastedBytes")),
                wasted_percent=_num(item.get("wastedPercent")),
            )
            for item in _items(audits, "unused-javascript")
        ],
        duplicated_javascript=[
            DuplicatedScript(
                source=_str(item.get("source")) or _str(item.get("url")),
                total_bytes=_num(item.get("totalBytes")),
                wasted_bytes=_num(item.get("wastedBytes")),
            )
            for item in _items(audits, "duplicated-javascript")
        ],
        legacy_javascript=[
            LegacyScript(
                url=_str(item.get("url")),
                wasted_bytes=_num(item.get("wastedBytes")),
                signals=[_str(_dict(sub).get("signal")) for sub in _list(_dict(item.get("subItems")).get("items"))],
            )
            for item in _items(audits, "legacy-javascript")
        ],
    )


def _image_items(audits: Dict[str, Any], audit_id: str) -> List[ImageItem]:
    images = []
    for item in _items(audits, audit_id):
        cross_origin = item.get("isCrossOrigin")
        images.append(ImageItem(
            url=_str(item.get("url")),
            total_bytes=_num(item.get("totalBytes")),
            wasted_bytes=_num(item.get("wastedBytes")),
            wasted_percent=_num(item.get("wastedPercent")),
            node=_node(item["node"]) if isinstance(item.get("node"), dict) else None,
            is_cross_origin=cross_origin if isinstance(cross_origin, bool) else None,
            wasted_webp_bytes=_opt_num(item.get("wastedWebpBytes")),
        ))
    return images


def extract_image_data(data: Any) -> ImageData:
    audits = audits_of(data)
    return ImageData(
        responsive_images=_image_items(audits, "uses-responsive-images"),
        offscreen_images=_image_items(audits, "offscreen-images"),
        unoptimized_images=_image_items(audits, "uses-optimized-images"),
        modern_formats=_image_items(audits, "modern-image-formats"),
    )


def extract_render_blocking_data(data: Any) -> RenderBlockingData:
    audits = audits_of(data)
    resources = [
        RenderBlockingResource(
            url=_str(item.get("url")),
            total_bytes=_num(item.get("totalBytes")),
            wasted_ms=_num(item.get("wastedMs")),
        )
        for item in _items(audits, "render-blocking-resources")
    ]
    chains = _details(audits, "critical-request-chains")
    return RenderBlockingData(
        resources=resources,
        total_wasted_ms=_num(_details(audits, "render-blocking-resources").get("overallSavingsMs")),
        critical_chains=chains or None,
    )


def extract_third_party_data(data: Any) -> ThirdPartyData:
    audits = audits_of(data)
    summary = [
        ThirdPartyItem(
            entity=_str(item.get("entity")) or _str(_dict(item.get("entity")).get("text")),
            transfer_size=_num(item.get("transferSize")),
            blocking_time=_num(item.get("blockingTime")),
            main_thread_time=_num(item.get("mainThreadTime")),
        )
        for item in _items(audits, "third-party-summary")
    ]
    facades = [
        ThirdPartyFacade(
            product=_str(item.get("product")) or _str(_dict(item.get("product")).get("text")),
            transfer_size=_num(item.get("transferSize")),
            blocking_time=_num(item.get("blockingTime")),
        )
        for item in _items(audits, "third-party-facades")
    ]
    return ThirdPartyData(
        summary=summary,
        total_blocking_time=sum(item.blocking_time for item in summary),
        total_transfer_size=sum(item.transfer_size for item in summary),
        facades=facades,
    )


def extract_other_categories(data: Any) -> OtherCategories:
    """
    Scores and failing audits for the four non-performance categories.

    A failing audit has a non-null score below 1. At most five are kept per
    category, in the order the category lists them.
    """
    categories = categories_of(data)
    audits = audits_of(data)

    summaries = {}
    for field, category_id in OTHER_CATEGORIES.items():
        category = _dict(categories.get(category_id))
        key_audits = []
        for ref in _list(category.get("auditRefs")):
            audit_id = _str(_dict(ref).get("id"))
            audit = _audit(audits, audit_id)
            score = _opt_num(audit.get("score"))
            if not audit or score is None or score >= 1:
                continue
            key_audits.append(AuditSummary(
                id=audit_id,
                title=_str(audit.get("title"), audit_id),
                score=score,
                description=_opt_str(audit.get("description")),
            ))
            if len(key_audits) == MAX_KEY_AUDITS:
                break
        summaries[field] = CategorySummary(score=_opt_num(category.get("score")), key_audits=key_audits)

    return OtherCategories(**summaries)


def extract_detailed_metrics(data: Any) -> DetailedMetrics:
    """Numeric lab metrics, preferring the 'metrics' audit and falling back to the per-metric audits."""
    audits = audits_of(data)
    metrics = _items(audits, "metrics")
    summary = metrics[0] if metrics else {}

    def pick(key: str, audit_id: Optional[str] = None) -> Optional[float]:
        value = _opt_num(summary.get(key))
        if value is None and audit_id:
            value = _opt_num(_audit(audits, audit_id).get("numericValue"))
        return value

    return DetailedMetrics(
        first_contentful_paint=pick("firstContentfulPaint", "first-contentful-paint"),
        largest_contentful_paint=pick("largestContentfulPaint", "largest-contentful-paint"),
        cumulative_layout_shift=pick("cumulativeLayoutShift", "cumulative-layout-shift"),
        total_blocking_time=pick("totalBlockingTime", "total-blocking-time"),
        max_potential_fid=pick("maxPotentialFID", "max-potential-fid"),
        speed_index=pick("speedIndex", "speed-index"),
        time_to_interactive=pick("interactive", "interactive"),
        first_meaningful_paint=pick("firstMeaningfulPaint"),
        observed_first_contentful_paint=pick("observedFirstContentfulPaint"),
        observed_largest_contentful_paint=pick("observedLargestContentfulPaint"),
        observed_speed_index=pick("observedSpeedIndex"),
        observed_dom_content_loaded=pick("observedDomContentLoaded"),
        observed_load=pick("observedLoad"),
    )


# --- Field data ---
FIELD_METRIC_ORDER = [
    "largest_contentful_paint",
    "interaction_to_next_paint",
    "cumulative_layout_shift",
    "first_contentful_paint",
    "experimental_time_to_first_byte",
    "first_input_delay",
]

# p75 thresholds for (good, poor) per https://web.dev/articles/vitals
FIELD_THRESHOLDS = {
    "largest_contentful_paint": (2500, 4000),
    "interaction_to_next_paint": (200, 500),
    "cumulative_layout_shift": (0.1, 0.25),
    "first_contentful_paint": (1800, 3000),
    "experimental_time_to_first_byte": (800, 1800),
    "first_input_delay": (100, 300),
}


def _p75(value: Any) -> Optional[float]:
    # CrUX sends CLS percentiles as strings
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return _opt_num(value)


def _rating(name: str, p75: Optional[float]) -> Optional[str]:
    if p75 is None or name not in FIELD_THRESHOLDS:
        return None
    good, poor = FIELD_THRESHOLDS[name]
    if p75 <= good:
        return "good"
    if p75 <= poor:
        return "needs-improvement"
    return "poor"


def _date(value: Any) -> Optional[str]:
    parts = [_dict(value).get(k) for k in ("year", "month", "day")]
    if not all(isinstance(p, int) for p in parts):
        return None
    return "{:04}-{:02}-{:02}".format(*parts)


def extract_field_data(data: Any, url: str, form_factor: Optional[str] = None) -> FieldDataSummary:
    """
    Summarizes a CrUX record as p75 values and good / needs-improvement /
    poor densities. A missing record is reported with has_data=False.
    """
    record = _dict(_dict(data).get("record"))
    if not record:
        return FieldDataSummary(url=url, form_factor=form_factor, has_data=False)

    key = _dict(record.get("key"))
    raw_metrics = _dict(record.get("metrics"))
    ordered = [name for name in FIELD_METRIC_ORDER if name in raw_metrics]
    ordered += sorted(name for name in raw_metrics if name not in FIELD_METRIC_ORDER)

    metrics = []
    for name in ordered:
        metric = _dict(raw_metrics[name])
        histogram = [_num(_dict(bucket).get("density")) for bucket in _list(metric.get("histogram"))]
        histogram += [0] * (3 - len(histogram))
        p75 = _p75(_dict(metric.get("percentiles")).get("p75"))
        metrics.append(FieldMetric(
            name=name,
            p75=p75,
            good=histogram[0],
            needs_improvement=histogram[1],
            poor=histogram[2],
            rating=_rating(name, p75),
        ))

    period = _dict(record.get("collectionPeriod"))
    first, last = _date(period.get("firstDate")), _date(period.get("lastDate"))
    collection_period = f"{first} to {last}" if first and last else None

    return FieldDataSummary(
        url=_str(key.get("url")) or _str(key.get("origin")) or url,
        form_factor=_opt_str(key.get("formFactor")) or form_factor,
        has_data=True,
        metrics=metrics,
        collection_period=collection_period,
    )
