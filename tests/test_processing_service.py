"""
Tests for extracting typed views from raw PageSpeed / CrUX responses
"""
import pytest

from pagespeed_mcp.services import processing_service as ps

EXTRACTORS = [
    ps.extract_visual_data,
    ps.extract_element_data,
    ps.extract_network_data,
    ps.extract_javascript_data,
    ps.extract_image_data,
    ps.extract_render_blocking_data,
    ps.extract_third_party_data,
    ps.extract_other_categories,
    ps.extract_detailed_metrics,
]

MALFORMED = [
    {},
    None,
    "not a dict",
    {"lighthouseResult": None},
    {"lighthouseResult": {"audits": "garbage", "categories": []}},
    {"lighthouseResult": {"audits": {"network-requests": {"details": {"items": "nope"}}}}},
    {"lighthouseResult": {"audits": {"bootup-time": {"details": {"items": [1, None, "x"]}}}}},
]


class TestTotality:
    """Every extractor returns a default view instead of raising"""

    @pytest.mark.parametrize("data", MALFORMED)
    @pytest.mark.parametrize("extract", EXTRACTORS)
    def test_extractors_never_raise(self, extract, data):
        view = extract(data)
        assert isinstance(view.as_dict(), dict)

    @pytest.mark.parametrize("data", MALFORMED)
    def test_summary_never_raises(self, data):
        summary = ps.extract_performance_summary(data, "https://example.com", "mobile")

        assert summary.score is None
        assert summary.opportunities == []
        assert summary.metrics.largest_contentful_paint is None

    @pytest.mark.parametrize("data", MALFORMED + [{"record": "garbage"}])
    def test_field_data_never_raises(self, data):
        summary = ps.extract_field_data(data, "https://example.com")
        assert summary.has_data is False


class TestPerformanceSummary:
    """Tests for extract_performance_summary"""

    def test_score_and_metrics(self, psi_response):
        summary = ps.extract_performance_summary(psi_response, "https://example.com", "mobile")
        data = summary.as_dict()

        assert data["score"] == 85
        assert data["metrics"]["largestContentfulPaint"] == "2.5 s"
        assert data["metrics"]["firstContentfulPaint"] == "1.2 s"
        assert data["metrics"]["cumulativeLayoutShift"] is None
        assert data["timestamp"] == "2023-01-01T00:00:00.000Z"
        assert data["strategy"] == "mobile"

    def test_opportunities_follow_audit_refs(self, psi_response):
        summary = ps.extract_performance_summary(psi_response, "https://example.com", "mobile")

        assert [o.id for o in summary.opportunities] == ["render-blocking-resources", "unused-javascript"]
        assert summary.opportunities[0].display_value == "Potential savings of 450 ms"

    def test_at_most_five_opportunities(self):
        audits = {
            f"opp-{i}": {"title": f"Opp {i}", "score": 0.5, "details": {"type": "opportunity"}}
            for i in range(8)
        }
        data = {"lighthouseResult": {
            "audits": audits,
            "categories": {"performance": {"score": 0.5, "auditRefs": [{"id": k} for k in audits]}},
        }}

        summary = ps.extract_performance_summary(data, "https://example.com", "mobile")

        assert [o.id for o in summary.opportunities] == [f"opp-{i}" for i in range(5)]

    def test_zero_score_is_kept(self):
        data = {"lighthouseResult": {"categories": {"performance": {"score": 0}}}}
        summary = ps.extract_performance_summary(data, "https://example.com", "mobile")
        assert summary.score == 0


class TestOtherCategories:
    """Tests for extract_other_categories"""

    def test_failing_audits_in_ref_order(self, psi_response):
        categories = ps.extract_other_categories(psi_response)

        assert categories.accessibility.score == 0.9
        assert [a.id for a in categories.accessibility.key_audits] == ["color-contrast"]
        assert categories.seo.score is None
        assert categories.seo.key_audits == []

    def test_null_scores_are_skipped_and_limit_is_five(self):
        audits = {f"a{i}": {"title": f"A{i}", "score": 0.2} for i in range(7)}
        audits["manual"] = {"title": "Manual check", "score": None}
        refs = [{"id": "manual"}] + [{"id": f"a{i}"} for i in range(7)]
        data = {"lighthouseResult": {
            "audits": audits,
            "categories": {"best-practices": {"score": 0.7, "auditRefs": refs}},
        }}

        categories = ps.extract_other_categories(data)

        assert [a.id for a in categories.best_practices.key_audits] == ["a0", "a1", "a2", "a3", "a4"]
        assert "bestPractices" in categories.as_dict()


class TestDetailViews:
    """Tests for the per-topic extractors"""

    def test_render_blocking(self, psi_response):
        view = ps.extract_render_blocking_data(psi_response)

        assert view.total_wasted_ms == 450
        assert view.resources[0].url == "https://example.com/app.css"
        assert view.critical_chains is None

    def test_javascript(self, psi_response):
        view = ps.extract_javascript_data(psi_response)

        assert view.unused_javascript[0].wasted_bytes == 120000
        assert view.bootup_time == []

    def test_network(self):
        data = {"lighthouseResult": {"audits": {
            "network-requests": {"details": {"items": [
                {"url": "https://example.com/", "transferSize": 1000, "statusCode": 200, "resourceType": "Document"},
                {"url": "https://example.com/a.js", "transferSize": 5000, "finished": False},
            ]}},
            "total-byte-weight": {"numericValue": 6000},
            "network-rtt": {"numericValue": 12.5},
        }}}

        view = ps.extract_network_data(data)

        assert view.request_count == 2
        assert view.total_byte_weight == 6000
        assert view.rtt == 12.5
        assert view.server_latency is None
        assert view.requests[1].finished is False

    def test_elements(self):
        data = {"lighthouseResult": {"audits": {
            "largest-contentful-paint-element": {"details": {"items": [
                {"node": {"selector": "main > img", "nodeLabel": "Hero", "snippet": "<img>"}},
            ]}},
            "layout-shift-elements": {"details": {"items": [
                {"node": {"selector": "div.ad"}, "score": 0.12},
                {"score": 0.5},
            ]}},
        }}}

        view = ps.extract_element_data(data)

        assert view.lcp_element.node_label == "Hero"
        assert [e.node.selector for e in view.cls_elements] == ["div.ad"]
        assert view.lazy_loaded_lcp is None

    def test_third_party_totals(self):
        data = {"lighthouseResult": {"audits": {"third-party-summary": {"details": {"items": [
            {"entity": "Google Tag Manager", "transferSize": 1000, "blockingTime": 50},
            {"entity": {"text": "YouTube"}, "transferSize": 3000, "blockingTime": 150},
        ]}}}}}

        view = ps.extract_third_party_data(data)

        assert [i.entity for i in view.summary] == ["Google Tag Manager", "YouTube"]
        assert view.total_blocking_time == 200
        assert view.total_transfer_size == 4000

    def test_visual_defaults_screenshot_size(self):
        data = {"lighthouseResult": {"audits": {"final-screenshot": {"details": {"data": "data:image/jpeg;base64,AAA"}}}}}

        view = ps.extract_visual_data(data)

        assert (view.final_screenshot.width, view.final_screenshot.height) == (360, 640)

    def test_detailed_metrics_fallback(self):
        data = {"lighthouseResult": {"audits": {
            "metrics": {"details": {"items": [{"firstContentfulPaint": 900}]}},
            "largest-contentful-paint": {"numericValue": 2400.5},
        }}}

        view = ps.extract_detailed_metrics(data)

        assert view.first_contentful_paint == 900
        assert view.largest_contentful_paint == 2400.5
        assert view.speed_index is None


class TestFieldData:
    """Tests for extract_field_data"""

    RECORD = {"record": {
        "key": {"url": "https://example.com/", "formFactor": "PHONE"},
        "metrics": {
            "cumulative_layout_shift": {
                "histogram": [{"density": 0.8}, {"density": 0.15}, {"density": 0.05}],
                "percentiles": {"p75": "0.05"},
            },
            "largest_contentful_paint": {
                "histogram": [{"density": 0.6}, {"density": 0.3}, {"density": 0.1}],
                "percentiles": {"p75": 3100},
            },
        },
        "collectionPeriod": {
            "firstDate": {"year": 2024, "month": 1, "day": 2},
            "lastDate": {"year": 2024, "month": 1, "day": 29},
        },
    }}

    def test_summarizes_record(self):
        summary = ps.extract_field_data(self.RECORD, "https://example.com")

        assert summary.has_data is True
        assert summary.url == "https://example.com/"
        assert summary.form_factor == "PHONE"
        assert summary.collection_period == "2024-01-02 to 2024-01-29"
        assert [m.name for m in summary.metrics] == ["largest_contentful_paint", "cumulative_layout_shift"]

    def test_ratings_and_string_percentiles(self):
        summary = ps.extract_field_data(self.RECORD, "https://example.com")
        lcp, cls = summary.metrics

        assert lcp.p75 == 3100
        assert lcp.rating == "needs-improvement"
        assert lcp.good == 0.6
        assert cls.p75 == 0.05
        assert cls.rating == "good"

    def test_empty_response_has_no_data(self):
        summary = ps.extract_field_data({}, "https://example.com", "DESKTOP")

        assert summary.has_data is False
        assert summary.form_factor == "DESKTOP"
        assert summary.metrics == []
