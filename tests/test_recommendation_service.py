"""
Tests for recommendation prioritization
"""
import pytest

from pagespeed_mcp.services.recommendation_service import calculate_priority, generate_recommendations


class TestCalculatePriority:
    """Tests for the priority formula"""

    def test_failed_high_impact_low_effort_opportunity_is_clamped(self):
        # 50 + 30 + 20 + 20 + 15 = 135
        assert calculate_priority("high", "low", 0, True) == 100

    def test_passing_low_impact_high_effort(self):
        # 50 + 10 + 5 + 0
        assert calculate_priority("low", "high", 1, False) == 65

    def test_partial_score(self):
        # 50 + 20 + 10 + 0.5 * 20
        assert calculate_priority("medium", "medium", 0.5, False) == 90

    def test_missing_score_counts_as_failed(self):
        assert calculate_priority("low", "high", None, False) == 85

    @pytest.mark.parametrize("impact", ["high", "medium", "low"])
    @pytest.mark.parametrize("effort", ["high", "medium", "low"])
    @pytest.mark.parametrize("score", [0, 0.33, 1])
    @pytest.mark.parametrize("opportunity", [True, False])
    def test_always_within_bounds(self, impact, effort, score, opportunity):
        assert 1 <= calculate_priority(impact, effort, score, opportunity) <= 100


class TestGenerateRecommendations:
    """Tests for generate_recommendations"""

    def test_known_failing_audits_only(self, psi_response):
        report = generate_recommendations(psi_response, "https://example.com", "mobile")

        ids = [r.id for r in report.recommendations]
        assert set(ids) == {"render-blocking-resources", "unused-javascript", "color-contrast"}
        assert "image-alt" not in ids
        assert report.overall_score == 85
        assert report.url == "https://example.com/"

    def test_sorted_by_priority_descending(self, psi_response):
        report = generate_recommendations(psi_response, "https://example.com", "mobile")
        priorities = [r.priority for r in report.recommendations]
        assert priorities == sorted(priorities, reverse=True)

    def test_quick_wins_are_low_effort(self, psi_response):
        report = generate_recommendations(psi_response, "https://example.com", "mobile")

        assert [r.id for r in report.quick_wins] == [
            r.id for r in report.recommendations if r.effort == "low" and r.impact in ("high", "medium")
        ]
        assert "unused-javascript" not in [r.id for r in report.quick_wins]

    def test_potential_savings_from_display_value(self, psi_response):
        report = generate_recommendations(psi_response, "https://example.com", "mobile")
        by_id = {r.id: r for r in report.recommendations}

        assert by_id["render-blocking-resources"].potential_savings == "Potential savings of 450 ms"
        assert by_id["color-contrast"].potential_savings is None
        assert by_id["color-contrast"].description == "Low contrast."

    def test_summary_counts(self, psi_response):
        report = generate_recommendations(psi_response, "https://example.com", "mobile")
        summary = report.summary

        assert summary.total_recommendations == 3
        assert summary.high_priority + summary.medium_priority + summary.low_priority == 3

    def test_empty_response(self):
        report = generate_recommendations({}, "https://example.com", "desktop")

        assert report.recommendations == []
        assert report.overall_score == 0
        assert report.summary.estimated_impact == "Low"
