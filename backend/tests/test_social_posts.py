"""Tests for LLM social post generation."""

import json

import pytest
from sqlalchemy import select

from conftest import FakeAIService
from database.models import AiGenerationRequest, SocialMediaPost, Website
from services.ai_service import AiApiError, AiRateLimitError
from services.social_post_generator import (
    SocialPostGenerator,
    aspect_ratio_for,
    format_listing_price,
    parse_post_response,
)


def post_reply(caption="Sunny apartment in Marbella with sea views.", hashtags="#marbella #seaview"):
    return json.dumps(
        {
            "caption": caption,
            "hashtags": hashtags,
            "suggested_photos": ["exterior", "terrace"],
            "best_posting_time": "Tuesday 6pm",
        }
    )


class TestParsePostResponse:
    def test_strips_code_fences(self):
        parsed = parse_post_response(f"Here you go:\n```json\n{post_reply()}\n```")
        assert parsed["caption"] == "Sunny apartment in Marbella with sea views."
        assert parsed["hashtags"] == "#marbella #seaview"
        assert parsed["suggested_photos"] == ["exterior", "terrace"]

    def test_missing_json_raises(self):
        with pytest.raises(AiApiError, match="No valid JSON"):
            parse_post_response("Sorry, I can't help with that.")

    def test_malformed_json_raises(self):
        with pytest.raises(AiApiError, match="Failed to parse"):
            parse_post_response('{"caption": "unterminated}')


class TestHelpers:
    def test_aspect_ratios(self):
        assert aspect_ratio_for("instagram") == "1:1"
        assert aspect_ratio_for("instagram", "story") == "9:16"
        assert aspect_ratio_for("twitter") == "16:9"
        assert aspect_ratio_for("pinterest") == "1:1"

    async def test_format_listing_price(self, website, asset_factory):
        sale = await asset_factory(website, price_cents=45_000_000)
        rental = await asset_factory(website, reference="R", rental=True, price_cents=180_000)
        unlisted = await asset_factory(website, reference="U", price_cents=None)

        assert format_listing_price(sale) == "EUR 450,000"
        assert format_listing_price(rental) == "EUR 1,800/mo"
        assert format_listing_price(unlisted) == "Price on request"


class TestSocialPostGenerator:
    async def test_generates_draft_post(self, session, website, asset_factory):
        asset = await asset_factory(website, features=("features.pool",))
        ai = FakeAIService([post_reply()])

        result = await SocialPostGenerator(session, ai).generate(website, asset, "Instagram")

        assert result.success
        post = result.post
        assert post.id is not None
        assert post.status == "draft"
        assert post.platform == "instagram"
        assert post.postable_id == asset.id
        assert post.link_url == f"https://costa-homes.propertywebbuilder.com/properties/{asset.id}"
        assert [photo["suggested_crop"] for photo in post.selected_photos] == ["1:1", "1:1"]
        assert result.compliance["compliant"]

        prompt = ai.calls[0]["prompt"]
        assert "Create a instagram feed post" in prompt
        assert "features.pool" in prompt
        assert "Include 15 relevant hashtags" in prompt

        request = await session.get(AiGenerationRequest, result.request_id)
        assert request.status == "completed"
        assert request.ai_provider == "anthropic"
        assert request.output_data["caption"] == post.caption

    async def test_non_compliant_caption_is_still_saved(self, session, website, asset_factory):
        asset = await asset_factory(website)
        ai = FakeAIService([post_reply(caption="Adults only retreat, no kids")])

        result = await SocialPostGenerator(session, ai).generate(website, asset, "facebook")

        assert result.success
        assert not result.compliance["compliant"]

    async def test_caption_over_platform_limit_fails(self, session, website, asset_factory):
        asset = await asset_factory(website)
        ai = FakeAIService([post_reply(caption="x" * 300)])

        result = await SocialPostGenerator(session, ai).generate(website, asset, "twitter")

        assert not result.success
        assert "280 character limit" in result.error
        posts = (await session.execute(select(SocialMediaPost))).scalars().all()
        assert posts == []
        request = await session.get(AiGenerationRequest, result.request_id)
        assert request.status == "failed"

    async def test_unparseable_reply_returns_failure(self, session, website, asset_factory):
        asset = await asset_factory(website)

        result = await SocialPostGenerator(session, FakeAIService(["no json here"])).generate(
            website, asset, "linkedin"
        )

        assert not result.success
        assert result.error == "No valid JSON in response"

    async def test_rate_limit_propagates_and_marks_request_failed(self, session, website, asset_factory):
        asset = await asset_factory(website)
        ai = FakeAIService(error=AiRateLimitError(retry_after=30))

        with pytest.raises(AiRateLimitError):
            await SocialPostGenerator(session, ai).generate(website, asset, "instagram")

        requests = (await session.execute(select(AiGenerationRequest))).scalars().all()
        assert [request.status for request in requests] == ["failed"]

    async def test_unexpected_error_is_contained(self, session, website, asset_factory):
        asset = await asset_factory(website)
        ai = FakeAIService(error=RuntimeError("boom"))

        result = await SocialPostGenerator(session, ai).generate(website, asset, "instagram")

        assert not result.success
        assert result.error == "An unexpected error occurred"

    async def test_database_failure_rolls_back_and_marks_request_failed(
        self, session, website, asset_factory, monkeypatch
    ):
        asset = await asset_factory(website)
        generator = SocialPostGenerator(session, FakeAIService([post_reply()]))
        slug = website.slug

        async def conflicting_flush(request, output, model_used=None):
            session.add(Website(slug=slug))
            await session.flush()

        monkeypatch.setattr(generator.tracker, "mark_completed", conflicting_flush)

        result = await generator.generate(website, asset, "instagram")

        assert not result.success
        assert result.error == "An unexpected error occurred"
        requests = (await session.execute(select(AiGenerationRequest))).scalars().all()
        assert [request.status for request in requests] == ["failed"]
        assert requests[0].error_message.startswith("Unexpected error:")
        assert (await session.execute(select(SocialMediaPost))).scalars().all() == []

    async def test_batch_defaults_to_three_platforms(self, session, website, asset_factory):
        asset = await asset_factory(website)
        ai = FakeAIService([post_reply(), post_reply(), post_reply()])

        results = await SocialPostGenerator(session, ai).generate_batch(website, asset, category="price_drop")

        assert [result.post.platform for result in results] == ["instagram", "facebook", "linkedin"]
        assert all("Post Category: Price Drop" in call["prompt"] for call in ai.calls)
