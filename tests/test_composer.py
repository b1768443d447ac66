# tests/test_composer.py
"""
Tests for per-target report composition and mailto URL building.
"""
from dataclasses import replace
from urllib.parse import parse_qs, urlsplit

from civic_dispatch.core.composer import (
    DEFAULT_TEMPLATE,
    build_subject,
    compose,
    compose_all,
    encode_uri_component,
    render_template,
)
from civic_dispatch.core.domain import IssueCategory

from conftest import make_target


# ============================================================================
# render_template
# ============================================================================

class TestRenderTemplate:

    def test_substitutes_known_placeholders(self):
        assert render_template("{title} at {location}", {"title": "Leak", "location": "1, 2"}) == "Leak at 1, 2"

    def test_repeated_placeholder(self):
        assert render_template("{reporter} / {reporter}", {"reporter": "Asha"}) == "Asha / Asha"

    def test_unknown_tokens_left_alone(self):
        assert render_template("{ward} {title}", {"title": "Leak"}) == "{ward} Leak"

    def test_inserted_values_are_not_rescanned(self):
        out = render_template("{title} | {location}", {"title": "{location}", "location": "1, 2"})
        assert out == "{location} | 1, 2"


# ============================================================================
# compose
# ============================================================================

class TestCompose:

    def test_default_template_body(self, sample_request):
        target = make_target("mumbai", name="Brihanmumbai Municipal Corporation")
        msg = compose(sample_request, target)

        assert msg.recipient == "mumbai@example.gov"
        assert msg.subject == "Civic Issue Report - Roads"
        assert "- Category: Roads" in msg.body
        assert "- Title: Pothole near bus stop" in msg.body
        assert "- Location: 19.076000, 72.877700" in msg.body
        assert "- Reported by: Asha Rao" in msg.body
        assert msg.body.rstrip().endswith("Asha Rao")

    def test_template_without_location_token(self, sample_request):
        template = "{category}|{title}|{description}|{reporter}"
        msg = compose(sample_request, make_target("t1", template=template))
        assert msg.body == (
            "Roads|Pothole near bus stop|"
            "Deep pothole in the left lane, two scooters already fell.|Asha Rao"
        )
        assert "19.076000" not in msg.body

    def test_location_token_without_value_stays_literal(self):
        values = {"category": "Roads", "title": "Leak", "description": "d", "reporter": "Asha"}
        out = render_template("{category}|{title}|{description}|{reporter}|{location}", values)
        assert out == "Roads|Leak|d|Asha|{location}"

    def test_literal_location_text_in_template_stays(self, sample_request):
        template = "{category}: {title} ({description}) by {reporter}. Location: {loc}"
        msg = compose(sample_request, make_target("t1", template=template))
        assert msg.body.startswith("Roads: Pothole near bus stop (")
        assert msg.body.endswith("by Asha Rao. Location: {loc}")

    def test_anonymous_reporter(self, sample_request):
        request = replace(sample_request, is_anonymous=True)
        msg = compose(request, make_target("t1"))
        assert "- Reported by: Anonymous Citizen" in msg.body
        assert "Asha Rao" not in msg.body

    def test_category_label_used(self, sample_request):
        request = replace(sample_request, category=IssueCategory.WATER_SUPPLY)
        assert build_subject(request) == "Civic Issue Report - Water Supply"
        assert "- Category: Water Supply" in compose(request, make_target("t1")).body

    def test_title_with_placeholder_text_not_expanded(self, sample_request):
        request = replace(sample_request, title="Sign says {location}")
        msg = compose(request, make_target("t1"))
        assert "- Title: Sign says {location}" in msg.body

    def test_compose_is_pure(self, sample_request):
        target = make_target("t1")
        assert compose(sample_request, target) == compose(sample_request, target)


# ============================================================================
# mailto URL
# ============================================================================

class TestMailto:

    def test_encode_uri_component_matches_js(self):
        assert encode_uri_component("a b&c=d/e?") == "a%20b%26c%3Dd%2Fe%3F"
        assert encode_uri_component("it's(fine)!*~-_.") == "it's(fine)!*~-_."
        assert encode_uri_component("line1\nline2") == "line1%0Aline2"
        assert encode_uri_component("₹") == "%E2%82%B9"

    def test_mailto_round_trips_subject_and_body(self, sample_request):
        msg = compose(sample_request, make_target("t1"))
        parts = urlsplit(msg.mailto_url)
        assert parts.scheme == "mailto"
        assert parts.path == "t1@example.gov"

        query = parse_qs(parts.query)
        assert query["subject"] == [msg.subject]
        assert query["body"] == [msg.body]

    def test_no_raw_spaces_or_newlines(self, sample_request):
        msg = compose(sample_request, make_target("t1"))
        assert " " not in msg.mailto_url
        assert "\n" not in msg.mailto_url
        assert "+" not in msg.mailto_url

    def test_plain_text_rendering(self, sample_request):
        msg = compose(sample_request, make_target("t1"))
        text = msg.as_plain_text()
        assert text.startswith("To: t1@example.gov\nSubject: Civic Issue Report - Roads\n\n")
        assert text.endswith(msg.body)


class TestComposeAll:

    def test_preserves_target_order(self, sample_request):
        targets = [make_target("b"), make_target("a")]
        drafts = compose_all(sample_request, targets)
        assert [t.id for t, _ in drafts] == ["b", "a"]
        assert [m.recipient for _, m in drafts] == ["b@example.gov", "a@example.gov"]

    def test_default_template_has_every_placeholder(self):
        for token in ("{category}", "{title}", "{description}", "{location}", "{reporter}"):
            assert token in DEFAULT_TEMPLATE
