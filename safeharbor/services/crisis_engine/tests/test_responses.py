"""Tests for crisis templates, lexicons and location lookup."""
import asyncio
import pytest

from safeharbor.shared.models import CrisisType, SeverityLevel
from safeharbor.services.crisis_engine.location import (
    FALLBACK_LOCATION,
    LocationInfo,
    LocationProvider,
    LocationResolver,
    StaticLocationProvider,
    extract_location,
    local_resources,
)
from safeharbor.services.crisis_engine.responses import (
    crisis_response,
    is_resource_refusal,
    match_deception,
)


class TestCrisisTemplates:
    """Every template carries the lifeline; critical ones add 911."""

    @pytest.mark.parametrize("crisis_type", list(CrisisType))
    @pytest.mark.parametrize("severity", [SeverityLevel.MEDIUM, SeverityLevel.HIGH, SeverityLevel.CRITICAL])
    def test_every_template_contains_988(self, crisis_type, severity):
        assert "988" in crisis_response(severity, crisis_type)

    @pytest.mark.parametrize("crisis_type", list(CrisisType))
    def test_critical_templates_contain_911(self, crisis_type):
        assert "911" in crisis_response(SeverityLevel.CRITICAL, crisis_type)

    def test_high_template_has_no_911(self):
        assert "911" not in crisis_response(SeverityLevel.HIGH, CrisisType.SELF_HARM)

    def test_type_specific_hotlines(self):
        assert "1-800-931-2237" in crisis_response(SeverityLevel.HIGH, CrisisType.EATING_DISORDER)
        assert "1-800-662-4357" in crisis_response(SeverityLevel.HIGH, CrisisType.SUBSTANCE_USE)

    def test_local_line_for_substance_use_in_cleveland(self):
        cleveland = LocationInfo(city="Cleveland", region="Ohio")

        response = crisis_response(SeverityLevel.HIGH, CrisisType.SUBSTANCE_USE, cleveland)

        assert "1-216-387-6290" in response

    def test_fallback_location_gets_no_local_line(self):
        assert local_resources(FALLBACK_LOCATION, CrisisType.SUICIDE) == []


class TestLexicons:

    @pytest.mark.parametrize("text,phrase", [
        ("jk", "jk"),
        ("lol just kidding", "just kidding"),
        ("I didn’t mean it", "didn't mean it"),
        ("I was just testing you", "just testing"),
    ])
    def test_deception_phrases(self, text, phrase):
        assert match_deception(text) == phrase

    def test_jk_inside_word_not_matched(self):
        assert match_deception("I like jkrowling books") is None

    @pytest.mark.parametrize("text", [
        "I won't call 988",
        "I'm not going to the hospital",
        "I don't want to call the hotline",
        "hotlines don't help",
    ])
    def test_refusals(self, text):
        assert is_resource_refusal(text) is True

    def test_plain_message_is_not_refusal(self):
        assert is_resource_refusal("I called my sister today") is False


class TestExtractLocation:

    def test_city_maps_to_county(self):
        location = extract_location("I live in Lakewood")

        assert location.city == "Lakewood"
        assert location.region == "Cuyahoga County"

    def test_longest_name_wins(self):
        assert extract_location("near Cuyahoga Falls").city == "Cuyahoga Falls"

    def test_county_mention(self):
        location = extract_location("somewhere in Lake County")

        assert location.city is None
        assert location.region == "Lake County"
        assert "1-440-381-8347" in local_resources(location, CrisisType.GENERAL_CRISIS)[0]

    def test_unknown_place(self):
        assert extract_location("I'm at home") is None


class SlowProvider(LocationProvider):

    async def lookup(self, session_id):
        await asyncio.sleep(1)
        return LocationInfo(city="Akron", region="Summit County")


class FailingProvider(LocationProvider):

    async def lookup(self, session_id):
        raise PermissionError("location denied")


class TestLocationResolver:

    @pytest.mark.asyncio
    async def test_no_provider_uses_fallback(self):
        assert await LocationResolver().resolve("h") == FALLBACK_LOCATION

    @pytest.mark.asyncio
    async def test_timeout_uses_fallback(self):
        resolver = LocationResolver(SlowProvider(), timeout_seconds=0.01)

        assert await resolver.resolve("h") == FALLBACK_LOCATION

    @pytest.mark.asyncio
    async def test_denied_uses_fallback(self):
        resolver = LocationResolver(FailingProvider())

        assert (await resolver.resolve("h")).is_fallback is True

    @pytest.mark.asyncio
    async def test_provider_location_returned(self):
        akron = LocationInfo(city="Akron", region="Summit County")
        resolver = LocationResolver(StaticLocationProvider(akron))

        assert await resolver.resolve("h") == akron
