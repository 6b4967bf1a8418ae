"""
LLM-generated social media posts for property listings.

Each platform gets its own tone, emoji level, hashtag budget and call to
action. Generated captions are screened with the Fair Housing checker and
saved as draft ``SocialMediaPost`` rows.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from database.models import RealtyAsset, SocialMediaPost, Website
from services.ai_requests import AiRequestTracker
from services.ai_service import AiApiError, AiConfigurationError, AiError, AiRateLimitError
from services.fair_housing import FairHousingComplianceChecker

logger = logging.getLogger(__name__)

PLATFORM_CONFIGS: dict[str, dict[str, Any]] = {
    "instagram": {"tone": "engaging and visual", "emoji_level": "high", "hashtag_count": 15, "cta_style": "link in bio"},
    "facebook": {"tone": "informative and friendly", "emoji_level": "medium", "hashtag_count": 5, "cta_style": "direct link"},
    "linkedin": {"tone": "professional", "emoji_level": "low", "hashtag_count": 5, "cta_style": "professional inquiry"},
    "twitter": {"tone": "concise and punchy", "emoji_level": "medium", "hashtag_count": 2, "cta_style": "link"},
    "tiktok": {"tone": "trendy and fun", "emoji_level": "high", "hashtag_count": 6, "cta_style": "link in bio"},
}

CATEGORY_INSTRUCTIONS = {
    "just_listed": "Focus: Excitement about the new listing. Highlight unique features and create urgency.",
    "price_drop": "Focus: Emphasize the value and opportunity. Mention price reduction and encourage quick action.",
    "open_house": (
        "Focus: Create excitement for the event. Include placeholder for date/time. "
        "Emphasize the opportunity to view in person."
    ),
    "sold": "Focus: Celebrate the successful sale. Build credibility and encourage other sellers to reach out.",
    "market_update": "Focus: Provide market insights. Position the agent as a local market expert.",
}

PLATFORM_GUIDELINES = {
    "instagram": (
        "Instagram tips: Use line breaks for readability. Front-load the hook. "
        "Mix popular and niche hashtags. Place emoji strategically."
    ),
    "facebook": (
        "Facebook tips: Can be slightly longer. Ask questions to drive comments. "
        "Encourage shares. Make it conversational."
    ),
    "linkedin": (
        "LinkedIn tips: Professional tone throughout. Focus on market expertise and investment value. "
        "Use minimal emoji. Keep hashtags industry-relevant."
    ),
    "twitter": (
        "Twitter/X tips: Be concise and punchy. Leave room for retweets. "
        "Use 1-2 relevant hashtags maximum. Strong hook in first line."
    ),
    "tiktok": (
        "TikTok tips: Trendy, casual language. Hook in first line. "
        "Use trending hashtags when relevant. Be fun and engaging."
    ),
}

SYSTEM_PROMPT = """You are an expert social media manager specializing in real estate marketing.
You create engaging, platform-optimized content that drives leads and engagement.

Guidelines:
- Write authentic, non-salesy content
- Use platform-specific best practices
- Include relevant local hashtags
- Create curiosity that drives clicks
- Follow Fair Housing guidelines (no discriminatory language)
- Make content shareable and engaging
- NEVER mention proximity to religious institutions or schools
- NEVER describe neighborhood demographics"""

DEFAULT_OPTIONS = {"post_type": "feed", "category": "just_listed", "locale": "en"}

CODE_FENCE = re.compile(r"```\w*\n?")
JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


@dataclass
class Result:
    success: bool
    post: SocialMediaPost | None = None
    error: str | None = None
    request_id: int | None = None
    compliance: dict[str, Any] | None = None


def aspect_ratio_for(platform: str, post_type: str = "feed") -> str:
    if platform == "instagram":
        return "9:16" if post_type == "story" else "1:1"
    return {"facebook": "1.91:1", "linkedin": "1.91:1", "twitter": "16:9", "tiktok": "9:16"}.get(platform, "1:1")


def format_listing_price(asset: RealtyAsset) -> str:
    if asset.for_sale and asset.sale_listing.price_sale_current_cents > 0:
        listing = asset.sale_listing
        return f"{listing.currency or 'EUR'} {listing.price_sale_current_cents // 100:,}"
    if asset.for_rent and asset.rental_listing.price_rental_monthly_current_cents > 0:
        listing = asset.rental_listing
        return f"{listing.currency or 'EUR'} {listing.price_rental_monthly_current_cents // 100:,}/mo"
    return "Price on request"


def parse_post_response(text: str) -> dict[str, Any]:
    """Pull the JSON object out of an LLM reply, tolerating code fences."""
    content = CODE_FENCE.sub("", text or "")
    match = JSON_OBJECT.search(content)
    if not match:
        raise AiApiError("No valid JSON in response")
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        raise AiApiError(f"Failed to parse AI response: {exc}", cause=exc) from exc

    return {
        "caption": CODE_FENCE.sub("", str(parsed.get("caption") or "")).strip(),
        "hashtags": CODE_FENCE.sub("", str(parsed.get("hashtags") or "")).strip(),
        "suggested_photos": parsed.get("suggested_photos") or [],
        "best_posting_time": parsed.get("best_posting_time"),
    }


class SocialPostGenerator:
    def __init__(self, session: AsyncSession, ai_service: Any) -> None:
        self.session = session
        self.ai_service = ai_service
        self.tracker = AiRequestTracker(session, ai_service)
        self.compliance_checker = FairHousingComplianceChecker()

    def property_attributes(self, website: Website, asset: RealtyAsset) -> dict[str, Any]:
        return {
            "property_type": asset.prop_type_key or "property",
            "bedrooms": asset.count_bedrooms or 0,
            "bathrooms": asset.count_bathrooms or 0,
            "price": format_listing_price(asset),
            "city": asset.city or "the area",
            "region": asset.region or "",
            "features": asset.feature_keys[:5] or ["modern", "well-maintained"],
            "photo_count": len(asset.images or []),
            "listing_url": f"{website.primary_url()}/properties/{asset.slug or asset.id}",
        }

    def build_prompt(self, platform: str, options: dict[str, Any], attributes: dict[str, Any]) -> str:
        config = PLATFORM_CONFIGS.get(platform, PLATFORM_CONFIGS["instagram"])
        caption_limit = SocialMediaPost.CAPTION_LIMITS.get(platform, 2000)
        category = str(options["category"])

        return f"""Create a {platform} {options['post_type']} post for this real estate listing:

## Property Details
- Type: {attributes['property_type']}
- Bedrooms: {attributes['bedrooms']}
- Bathrooms: {attributes['bathrooms']}
- Price: {attributes['price']}
- Location: {attributes['city']}, {attributes['region']}
- Key Features: {', '.join(attributes['features'])}
- Listing URL: {attributes['listing_url']}

## Post Category: {category.replace('_', ' ').title()}

## Platform Requirements
- Platform: {platform.title()}
- Tone: {config['tone']}
- Emoji usage: {config['emoji_level']}
- Include {config['hashtag_count']} relevant hashtags
- Call-to-action style: {config['cta_style']}
- Character limit for caption: {caption_limit}
- Write in locale: {options['locale']}

{CATEGORY_INSTRUCTIONS.get(category, "Focus: Create engaging content that drives property inquiries.")}

{PLATFORM_GUIDELINES.get(platform, "")}

Respond ONLY with valid JSON in this format:
{{
  "caption": "The main post caption (without hashtags)",
  "hashtags": "#hashtag1 #hashtag2 ...",
  "suggested_photos": ["exterior", "living_room", "kitchen"],
  "best_posting_time": "suggestion for optimal posting time"
}}"""

    def select_photos(self, asset: RealtyAsset, platform: str, post_type: str) -> list[dict[str, Any]]:
        crop = aspect_ratio_for(platform, post_type)
        return [
            {"position": index, "url": url, "suggested_crop": crop}
            for index, url in enumerate((asset.images or [])[:4])
        ]

    async def generate(
        self,
        website: Website,
        asset: RealtyAsset,
        platform: str,
        **options: Any,
    ) -> Result:
        """
        Generate one draft post.

        Rate-limit and configuration errors propagate; other AI failures
        return an unsuccessful ``Result`` with the request marked failed.
        """
        options = {**DEFAULT_OPTIONS, **{k: v for k, v in options.items() if v is not None}}
        platform = str(platform).lower()
        attributes = self.property_attributes(website, asset)

        request = await self.tracker.create(
            website,
            "social_post",
            {
                "platform": platform,
                "post_type": options["post_type"],
                "category": options["category"],
                "property_id": asset.id,
                "property": attributes,
                "config": PLATFORM_CONFIGS.get(platform, PLATFORM_CONFIGS["instagram"]),
            },
        )
        await self.tracker.mark_processing(request)
        await self.session.commit()

        try:
            response = await self.ai_service.generate_text(
                self.build_prompt(platform, options, attributes), system_prompt=SYSTEM_PROMPT
            )
            parsed = parse_post_response(response.get("text", ""))
            compliance = self.compliance_checker.check(parsed["caption"])
            if not compliance["compliant"]:
                logger.warning(
                    "[SocialPost] Caption for property %s has %s fair housing issue(s)",
                    asset.id,
                    len(compliance["violations"]),
                )

            post = SocialMediaPost(
                website_id=website.id,
                ai_generation_request_id=request.id,
                postable_type="RealtyAsset",
                postable_id=asset.id,
                platform=platform,
                post_type=options["post_type"],
                caption=parsed["caption"],
                hashtags=parsed["hashtags"],
                selected_photos=self.select_photos(asset, platform, options["post_type"]),
                link_url=attributes["listing_url"],
                status="draft",
            )
            errors = post.validation_errors()
            if errors:
                raise AiApiError(f"Generated post is invalid: {'; '.join(errors)}")
            self.session.add(post)

            await self.tracker.mark_completed(
                request,
                {**parsed, "compliance": compliance},
                model_used=response.get("model_used"),
            )
            await self.session.commit()
            logger.info("[SocialPost] Generated %s post %s for property %s", platform, post.id, asset.id)
            return Result(success=True, post=post, request_id=request.id, compliance=compliance)
        except (AiRateLimitError, AiConfigurationError) as exc:
            await self.tracker.mark_failed(request, exc.message)
            await self.session.commit()
            raise
        except AiError as exc:
            await self.tracker.mark_failed(request, exc.message)
            await self.session.commit()
            return Result(success=False, error=exc.message, request_id=request.id)
        except Exception as exc:
            logger.exception("[SocialPost] Unexpected error: %s", exc)
            await self.session.rollback()
            await self.session.refresh(website)
            await self.session.refresh(request)
            await self.tracker.mark_failed(request, f"Unexpected error: {exc}")
            await self.session.commit()
            return Result(success=False, error="An unexpected error occurred", request_id=request.id)

    async def generate_batch(
        self,
        website: Website,
        asset: RealtyAsset,
        platforms: list[str] | None = None,
        **options: Any,
    ) -> list[Result]:
        platforms = platforms or ["instagram", "facebook", "linkedin"]
        return [await self.generate(website, asset, platform, **options) for platform in platforms]
