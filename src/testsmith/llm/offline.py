# src/testsmith/llm/offline.py

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


class OfflineSuggestionGenerator:
    """
    Used when no LLM is configured.

    Always returns None, so tasks fail at the generation step with a clear
    message instead of opening pull requests with unchanged tests.
    """

    def generate_suggestions(self, test_content: str, source_content: str) -> str | None:
        logger.warning("LLM is not configured (set TESTSMITH_OPENAI_API_KEY); no suggestions generated.")
        return None
