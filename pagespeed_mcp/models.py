# pagespeed_mcp/models.py
import re
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import AfterValidator, AnyHttpUrl, BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

LOCALE_PATTERN = re.compile(r"^[a-z]{2}(-[A-Z]{2})?$")
HOST_LABEL = re.compile(r"^(?!-)[A-Za-z0-9-]{1,63}(?<!-)$")
MAX_BATCH_URLS = 10

_HTTP_URL = TypeAdapter(AnyHttpUrl)


def validate_absolute_url(url: str) -> str:
    """Accepts an absolute http(s) URL with a well-formed host and returns it unchanged."""
    url = url.strip()
    try:
        parsed = _HTTP_URL.validate_python(url)
    except PydanticValidationError as e:
        raise ValueError("Must be a valid URL (http or https)") from e
    host = parsed.host or ""
    # IPv6 literals keep their brackets; IDNs arrive punycoded
    if not host.startswith("["):
        labels = host[:-1].split(".") if host.endswith(".") else host.split(".")
        if not all(HOST_LABEL.match(label) for label in labels):
            raise ValueError("Must be a valid URL (invalid host)")
    return url


def validate_locale(locale: str) -> str:
    if not LOCALE_PATTERN.match(locale):
        raise ValueError("Invalid locale format (expected e.g. 'en' or 'pt-BR')")
    return locale


def _dedupe(values: List[str]) -> List[str]:
    return list(dict.fromkeys(values))


PageUrl = Annotated[str, AfterValidator(validate_absolute_url)]
Locale = Annotated[str, AfterValidator(validate_locale)]
Strategy = Literal["mobile", "desktop"]
Category = Literal["performance", "accessibility", "best-practices", "seo", "pwa"]
Categories = Annotated[List[Category], Field(min_length=1), AfterValidator(_dedupe)]
FormFactor = Literal["PHONE", "DESKTOP", "TABLET"]


# --- Tool inputs ---
class ToolInput(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")


class AnalysisRequest(ToolInput):
    url: PageUrl = Field(description="The URL of the web page to analyze")
    strategy: Strategy = Field(default="mobile", description="The analysis strategy (mobile or desktop)")
    category: Categories = Field(
        default_factory=lambda: ["performance"],
        description="Categories to run Lighthouse audits for",
    )
    locale: Locale = Field(default="en", description="The locale used to localize formatted results")


class PerformanceSummaryRequest(ToolInput):
    url: PageUrl = Field(description="The URL of the web page to analyze")
    strategy: Strategy = Field(default="mobile", description="The analysis strategy (mobile or desktop)")

    def to_analysis(self) -> AnalysisRequest:
        return AnalysisRequest(url=self.url, strategy=self.strategy)


class FieldDataRequest(ToolInput):
    url: PageUrl = Field(description="The URL (or origin) to look up in the Chrome UX Report")
    form_factor: Optional[FormFactor] = Field(
        default=None, alias="formFactor", description="Device class the field data should cover"
    )


class CompareRequest(ToolInput):
    url_a: PageUrl = Field(alias="urlA", description="First URL to compare")
    url_b: PageUrl = Field(alias="urlB", description="Second URL to compare")
    strategy: Strategy = Field(default="mobile", description="The analysis strategy (mobile or desktop)")
    categories: Categories = Field(default_factory=lambda: ["performance"], description="Categories to audit")

    def requests(self) -> List[AnalysisRequest]:
        return [
            AnalysisRequest(url=url, strategy=self.strategy, category=self.categories)
            for url in (self.url_a, self.url_b)
        ]


class BatchRequest(ToolInput):
    urls: List[PageUrl] = Field(
        min_length=1, max_length=MAX_BATCH_URLS, description="Between 1 and 10 URLs to analyze"
    )
    strategy: Strategy = Field(default="mobile", description="The analysis strategy (mobile or desktop)")
    category: Categories = Field(default_factory=lambda: ["performance"], description="Categories to audit")
    locale: Locale = Field(default="en", description="The locale used to localize formatted results")

    def requests(self) -> List[AnalysisRequest]:
        return [
            AnalysisRequest(url=url, strategy=self.strategy, category=self.category, locale=self.locale)
            for url in self.urls
        ]


class FullReportRequest(ToolInput):
    url: PageUrl = Field(description="The URL of the web page to analyze")
    strategy: Strategy = Field(default="mobile", description="The analysis strategy (mobile or desktop)")
    form_factor: Optional[FormFactor] = Field(
        default=None, alias="formFactor", description="Device class for the field data lookup"
    )

    def lab(self) -> AnalysisRequest:
        return AnalysisRequest(url=self.url, strategy=self.strategy)

    def field(self) -> FieldDataRequest:
        return FieldDataRequest(url=self.url, form_factor=self.form_factor)


class FullAuditRequest(ToolInput):
    url: PageUrl = Field(description="The URL of the web page to analyze")
    strategy: Strategy = Field(default="mobile", description="The analysis strategy (mobile or desktop)")
    categories: Categories = Field(
        default_factory=lambda: ["performance", "accessibility", "best-practices", "seo"],
        description="Categories to audit",
    )

    def to_analysis(self) -> AnalysisRequest:
        return AnalysisRequest(url=self.url, strategy=self.strategy, category=self.categories)


class ClearCacheRequest(ToolInput):
    pass


# --- Extracted views ---
class View(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    def as_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class PerformanceMetrics(View):
    first_contentful_paint: Optional[str] = None
    largest_contentful_paint: Optional[str] = None
    cumulative_layout_shift: Optional[str] = None
    speed_index: Optional[str] = None
    total_blocking_time: Optional[str] = None
    first_meaningful_paint: Optional[str] = None


class Opportunity(View):
    id: str
    title: str
    description: Optional[str] = None
    score: Optional[float] = None
    display_value: Optional[str] = None


class PerformanceSummary(View):
    url: str
    strategy: str
    timestamp: Optional[str] = None
    score: Optional[int] = None
    metrics: PerformanceMetrics = PerformanceMetrics()
    opportunities: List[Opportunity] = []


class ScreenshotData(View):
    data: str
    width: int
    height: int


class FilmstripFrame(View):
    timing: float = 0
    timestamp: float = 0
    data: str = ""


class FullPageScreenshot(View):
    screenshot: ScreenshotData
    nodes: Dict[str, Any] = {}


class VisualData(View):
    final_screenshot: Optional[ScreenshotData] = None
    filmstrip: List[FilmstripFrame] = []
    full_page_screenshot: Optional[FullPageScreenshot] = None


class ElementNode(View):
    type: str = "node"
    lh_id: Optional[str] = None
    path: Optional[str] = None
    selector: str = ""
    bounding_rect: Optional[Dict[str, Any]] = None
    snippet: str = ""
    node_label: Optional[str] = None
    explanation: Optional[str] = None


class LayoutShiftElement(View):
    node: ElementNode
    score: float = 0


class ElementData(View):
    lcp_element: Optional[ElementNode] = None
    cls_elements: List[LayoutShiftElement] = []
    lazy_loaded_lcp: Optional[ElementNode] = None


class NetworkRequest(View):
    url: str = ""
    protocol: Optional[str] = None
    start_time: float = 0
    end_time: float = 0
    finished: bool = True
    transfer_size: float = 0
    resource_size: float = 0
    status_code: int = 0
    mime_type: str = ""
    resource_type: str = ""
    priority: Optional[str] = None


class ResourceSummaryItem(View):
    resource_type: str = ""
    label: str = ""
    count: int = 0
    size: float = 0


class NetworkData(View):
    requests: List[NetworkRequest] = []
    resource_summary: List[ResourceSummaryItem] = []
    total_byte_weight: float = 0
    request_count: int = 0
    rtt: Optional[float] = None
    server_latency: Optional[float] = None


class BootupItem(View):
    url: str = ""
    total: float = 0
    scripting: float = 0
    script_parse_compile: float = 0


class MainThreadWorkItem(View):
    group: str = ""
    group_label: str = ""
    duration: float = 0


class UnusedResource(View):
    url: str = ""
    total_bytes: float = 0
    wasted_bytes: float = 0
    wasted_percent: float = 0


class DuplicatedScript(View):
    source: str = ""
    total_bytes: float = 0
    wasted_bytes: float = 0


class LegacyScript(View):
    url: str = ""
    wasted_bytes: float = 0
    signals: List[str] = []


class JavaScriptData(View):
    bootup_time: List[BootupItem] = []
    main_thread_work: List[MainThreadWorkItem] = []
    unused_javascript: List[UnusedResource] = []
    duplicated_javascript: List[DuplicatedScript] = []
    legacy_javascript: List[LegacyScript] = []


class ImageItem(View):
    url: str = ""
    total_bytes: float = 0
    wasted_bytes: float = 0
    wasted_percent: float = 0
    node: Optional[ElementNode] = None
    is_cross_origin: Optional[bool] = None
    wasted_webp_bytes: Optional[float] = None


class ImageData(View):
    responsive_images: List[ImageItem] = []
    offscreen_images: List[ImageItem] = []
    unoptimized_images: List[ImageItem] = []
    modern_formats: List[ImageItem] = []


class RenderBlockingResource(View):
    url: str = ""
    total_bytes: float = 0
    wasted_ms: float = 0


class RenderBlockingData(View):
    resources: List[RenderBlockingResource] = []
    total_wasted_ms: float = 0
    critical_chains: Optional[Dict[str, Any]] = None


class ThirdPartyItem(View):
    entity: str = ""
    transfer_size: float = 0
    blocking_time: float = 0
    main_thread_time: float = 0


class ThirdPartyFacade(View):
    product: str = ""
    transfer_size: float = 0
    blocking_time: float = 0


class ThirdPartyData(View):
    summary: List[ThirdPartyItem] = []
    total_blocking_time: float = 0
    total_transfer_size: float = 0
    facades: List[ThirdPartyFacade] = []


class AuditSummary(View):
    id: str
    title: str
    score: Optional[float] = None
    description: Optional[str] = None


class CategorySummary(View):
    score: Optional[float] = None
    key_audits: List[AuditSummary] = []


class OtherCategories(View):
    accessibility: CategorySummary = CategorySummary()
    seo: CategorySummary = CategorySummary()
    best_practices: CategorySummary = CategorySummary()
    pwa: CategorySummary = CategorySummary()


class DetailedMetrics(View):
    first_contentful_paint: Optional[float] = None
    largest_contentful_paint: Optional[float] = None
    cumulative_layout_shift: Optional[float] = None
    total_blocking_time: Optional[float] = None
    max_potential_fid: Optional[float] = None
    speed_index: Optional[float] = None
    time_to_interactive: Optional[float] = None
    first_meaningful_paint: Optional[float] = None
    observed_first_contentful_paint: Optional[float] = None
    observed_largest_contentful_paint: Optional[float] = None
    observed_speed_index: Optional[float] = None
    observed_dom_content_loaded: Optional[float] = None
    observed_load: Optional[float] = None


class FieldMetric(View):
    name: str
    p75: Optional[float] = None
    good: float = 0
    needs_improvement: float = 0
    poor: float = 0
    rating: Optional[str] = None


class FieldDataSummary(View):
    url: str
    form_factor: Optional[str] = None
    has_data: bool = False
    metrics: List[FieldMetric] = []
    collection_period: Optional[str] = None


class Recommendation(View):
    id: str
    title: str
    description: str
    impact: Literal["high", "medium", "low"]
    effort: Literal["low", "medium", "high"]
    priority: int
    category: str
    potential_savings: Optional[str] = None
    how_to_fix: List[str] = []
    more_info: Optional[str] = None


class RecommendationSummary(View):
    total_recommendations: int = 0
    high_priority: int = 0
    medium_priority: int = 0
    low_priority: int = 0
    estimated_impact: str = "Low"


class RecommendationReport(View):
    url: str
    strategy: str
    overall_score: int
    recommendations: List[Recommendation] = []
    quick_wins: List[Recommendation] = []
    summary: RecommendationSummary = RecommendationSummary()


class BatchItemResult(View):
    url: str
    success: bool
    score: Optional[int] = None
    largest_contentful_paint: Optional[str] = None
    error: Optional[str] = None


class BatchSummary(View):
    total: int
    succeeded: int
    failed: int
    results: List[BatchItemResult] = []


# --- Tool responses ---
class TextContent(BaseModel):
    type: Literal["text"] = "text"
    text: str


class ResourceContent(BaseModel):
    type: Literal["resource"] = "resource"
    uri: str
    name: str
    mime_type: str = "application/json"
    text: str


ContentBlock = Union[TextContent, ResourceContent]


class ToolResponse(BaseModel):
    content: List[ContentBlock]
    is_error: bool = False

    @classmethod
    def text(cls, text: str) -> "ToolResponse":
        return cls(content=[TextContent(text=text)])

    @classmethod
    def error(cls, message: str) -> "ToolResponse":
        return cls(content=[TextContent(text=message)], is_error=True)

    @property
    def first_text(self) -> str:
        for block in self.content:
            if isinstance(block, TextContent):
                return block.text
        return ""
