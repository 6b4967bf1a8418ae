"""
Audit trail of LLM calls (``AiGenerationRequest`` rows).
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from database.models import AiGenerationRequest, Website

logger = logging.getLogger(__name__)


class AiRequestTracker:
    def __init__(self, session: AsyncSession, ai_service: Any) -> None:
        self.session = session
        self.ai_service = ai_service

    async def create(self, website: Website, request_type: str, input_data: dict[str, Any]) -> AiGenerationRequest:
        request = AiGenerationRequest(
            website_id=website.id,
            request_type=request_type,
            status="pending",
            ai_provider=getattr(self.ai_service, "provider", None),
            ai_model=getattr(self.ai_service, "model_id", None),
            input_data=input_data,
            output_data={},
        )
        self.session.add(request)
        await self.session.flush()
        return request

    async def mark_processing(self, request: AiGenerationRequest) -> None:
        request.status = "processing"
        await self.session.flush()

    async def mark_completed(
        self, request: AiGenerationRequest, output: dict[str, Any], model_used: str | None = None
    ) -> None:
        request.status = "completed"
        request.output_data = output
        if model_used:
            request.ai_model = model_used
        await self.session.flush()

    async def mark_failed(self, request: AiGenerationRequest, error: str) -> None:
        request.status = "failed"
        request.error_message = error
        await self.session.flush()
        logger.info("AI request %s (%s) failed: %s", request.id, request.request_type, error)
