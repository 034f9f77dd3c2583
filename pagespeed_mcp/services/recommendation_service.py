# pagespeed_mcp/services/recommendation_service.py
from typing import Any, Dict, List, Optional

from pagespeed_mcp.models import Recommendation, RecommendationReport, RecommendationSummary
from pagespeed_mcp.services.processing_service import audits_of, category_score, lighthouse_of

IMPACT_POINTS = {"high": 30, "medium": 20, "low": 10}
EFFORT_POINTS = {"low": 20, "medium": 10, "high": 5}
BASE_PRIORITY = 50
SCORE_WEIGHT = 20
OPPORTUNITY_BONUS = 15

HIGH_PRIORITY = 80
MEDIUM_PRIORITY = 50

# Canned guidance for the audits we know how to advise on
AUDIT_GUIDANCE: Dict[str, Dict[str, Any]] = {
    "unused-css-rules": {
        "title": "Remove unused CSS",
        "impact": "medium",
        "effort": "medium",
        "category": "performance",
        "how_to_fix": [
            "Use tools like PurgeCSS or UnCSS to remove unused styles",
            "Split CSS by page/component to reduce bundle size",
            "Use critical CSS for above-the-fold content",
        ],
        "more_info": "Removing unused CSS reduces file sizes and improves loading times",
    },
    "unused-javascript": {
        "title": "Remove unused JavaScript",
        "impact": "high",
        "effort": "medium",
        "category": "performance",
        "how_to_fix": [
            "Use tree-shaking with a modern bundler (Webpack, Rollup, Vite)",
            "Split code by route using dynamic imports",
            "Remove dead code and unused libraries",
            "Use a bundle analyzer to find large unused dependencies",
        ],
        "more_info": "JavaScript is the most expensive resource per byte",
    },
    "render-blocking-resources": {
        "title": "Eliminate render-blocking resources",
        "impact": "high",
        "effort": "low",
        "category": "performance",
        "how_to_fix": [
            "Inline critical CSS in <head>",
            'Load non-critical CSS asynchronously with rel="preload"',
            "Defer non-critical JavaScript",
            "Use resource hints like dns-prefetch and preconnect",
        ],
        "more_info": "Render-blocking resources delay First Contentful Paint",
    },
    "unminified-css": {
        "title": "Minify CSS",
        "impact": "low",
        "effort": "low",
        "category": "performance",
        "how_to_fix": [
            "Use a CSS minifier (cssnano, clean-css)",
            "Enable minification in the production build",
        ],
        "more_info": "CSS minification is a quick win with automated tools",
    },
    "unminified-javascript": {
        "title": "Minify JavaScript",
        "impact": "medium",
        "effort": "low",
        "category": "performance",
        "how_to_fix": [
            "Use a JavaScript minifier (Terser, esbuild)",
            "Enable minification in the production build",
        ],
        "more_info": "Minification reduces file sizes and parsing time",
    },
    "uses-optimized-images": {
        "title": "Efficiently encode images",
        "impact": "high",
        "effort": "medium",
        "category": "performance",
        "how_to_fix": [
            "Compress images as part of the build",
            "Optimize image dimensions for the actual display size",
        ],
        "more_info": "Optimized images load faster and use less data",
    },
    "modern-image-formats": {
        "title": "Serve images in modern formats",
        "impact": "high",
        "effort": "medium",
        "category": "performance",
        "how_to_fix": [
            "Convert images to WebP or AVIF",
            "Use <picture> with fallbacks for older browsers",
        ],
        "more_info": "Modern image formats can reduce file sizes by 25-50%",
    },
    "uses-text-compression": {
        "title": "Enable text compression",
        "impact": "high",
        "effort": "low",
        "category": "performance",
        "how_to_fix": [
            "Enable Gzip or Brotli compression on the server",
            "Configure compression on the CDN",
            "Make sure HTML, CSS, JS and JSON responses are compressed",
        ],
        "more_info": "Text compression can reduce transfer sizes by 60-80%",
    },
    "uses-responsive-images": {
        "title": "Properly size images",
        "impact": "medium",
        "effort": "medium",
        "category": "performance",
        "how_to_fix": [
            "Use the srcset attribute for different screen sizes",
            "Generate multiple image sizes in the build",
            "Consider an image CDN",
        ],
        "more_info": "Responsive images avoid shipping oversized images to small screens",
    },
    "offscreen-images": {
        "title": "Defer offscreen images",
        "impact": "medium",
        "effort": "low",
        "category": "performance",
        "how_to_fix": [
            'Use native lazy loading with loading="lazy"',
            "Prioritize above-the-fold images",
        ],
        "more_info": "Lazy loading images improves initial page load time",
    },
    "color-contrast": {
        "title": "Ensure sufficient color contrast",
        "impact": "high",
        "effort": "low",
        "category": "accessibility",
        "how_to_fix": [
            "Use a contrast checker (WebAIM, Stark)",
            "Aim for 4.5:1 for normal text and 3:1 for large text",
        ],
        "more_info": "Good contrast helps users with visual impairments",
    },
    "image-alt": {
        "title": "Add alt text to images",
        "impact": "high",
        "effort": "low",
        "category": "accessibility",
        "how_to_fix": [
            "Add descriptive alt attributes to all images",
            'Use an empty alt="" for decorative images',
        ],
        "more_info": "Alt text is essential for screen readers and SEO",
    },
    "meta-description": {
        "title": "Add a meta description",
        "impact": "medium",
        "effort": "low",
        "category": "seo",
        "how_to_fix": [
            "Write a unique, descriptive meta description (150-160 characters)",
            "Include target keywords naturally",
        ],
        "more_info": "Meta descriptions improve click-through rates from search results",
    },
    "document-title": {
        "title": "Optimize the page title",
        "impact": "high",
        "effort": "low",
        "category": "seo",
        "how_to_fix": [
            "Write a descriptive, unique title for each page",
            "Keep titles under 60 characters",
        ],
        "more_info": "Page titles matter for search rankings and user experience",
    },
}


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def calculate_priority(impact: str, effort: str, score: Optional[float], is_opportunity: bool) -> int:
    """
    Priority on a 1-100 scale.

    50, plus 30/20/10 for high/medium/low impact, plus 20/10/5 for
    low/medium/high effort, plus up to 20 as the audit score drops from 1 to
    0, plus 15 for opportunities. The result is rounded and clamped.
    """
    priority = BASE_PRIORITY
    priority += IMPACT_POINTS.get(impact, 0)
    priority += EFFORT_POINTS.get(effort, 0)
    priority += (1 - (score or 0)) * SCORE_WEIGHT
    if is_opportunity:
        priority += OPPORTUNITY_BONUS
    return min(max(round(priority), 1), 100)


def _summarize(recommendations: List[Recommendation], performance_score: float) -> RecommendationSummary:
    high = sum(1 for r in recommendations if r.priority >= HIGH_PRIORITY)
    medium = sum(1 for r in recommendations if MEDIUM_PRIORITY <= r.priority < HIGH_PRIORITY)
    low = sum(1 for r in recommendations if r.priority < MEDIUM_PRIORITY)

    if performance_score < 0.5 and high > 3:
        estimated_impact = "Very High"
    elif performance_score < 0.7 and high > 1:
        estimated_impact = "High"
    elif high > 0 or medium > 2:
        estimated_impact = "Medium"
    else:
        estimated_impact = "Low"

    return RecommendationSummary(
        total_recommendations=len(recommendations),
        high_priority=high,
        medium_priority=medium,
        low_priority=low,
        estimated_impact=estimated_impact,
    )


def generate_recommendations(data: Dict[str, Any], url: str, strategy: str) -> RecommendationReport:
    """
    Builds prioritized recommendations from the failing audits we have guidance for.

    Returns:
        A RecommendationReport sorted by descending priority. Quick wins are
        the low-effort recommendations with medium or high impact.
    """
    audits = audits_of(data)
    performance_score = category_score(data, "performance") or 0

    recommendations = []
    for audit_id, audit in audits.items():
        guidance = AUDIT_GUIDANCE.get(audit_id)
        if guidance is None or not isinstance(audit, dict):
            continue
        score = audit.get("score")
        if score is None or score == 1 or not isinstance(score, (int, float)):
            continue
        details = audit.get("details") if isinstance(audit.get("details"), dict) else {}
        display_value = audit.get("displayValue")
        recommendations.append(Recommendation(
            id=audit_id,
            title=guidance["title"],
            description=_text(audit.get("description")) or "No description available",
            impact=guidance["impact"],
            effort=guidance["effort"],
            priority=calculate_priority(
                guidance["impact"], guidance["effort"], score, details.get("type") == "opportunity"
            ),
            category=guidance["category"],
            potential_savings=display_value if isinstance(display_value, str) and display_value else None,
            how_to_fix=guidance["how_to_fix"],
            more_info=guidance.get("more_info"),
        ))

    recommendations.sort(key=lambda r: r.priority, reverse=True)
    quick_wins = [r for r in recommendations if r.effort == "low" and r.impact in ("high", "medium")]

    return RecommendationReport(
        url=_text(lighthouse_of(data).get("requestedUrl")) or url,
        strategy=strategy,
        overall_score=round(performance_score * 100),
        recommendations=recommendations,
        quick_wins=quick_wins,
        summary=_summarize(recommendations, performance_score),
    )
