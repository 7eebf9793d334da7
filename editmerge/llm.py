"""Remote merge reconciliation through an OpenAI-compatible chat API."""
import logging
import sys
import time

from pattern import diff_example, code_block_pattern
from .config import config
from .errors import MergeServiceError

logger = logging.getLogger(__name__)

MERGE_SYSTEM_PROMPT = f"""You merge partial code changes into complete files.
Partial changes may be loose snippets or SEARCH/REPLACE blocks such as:

{diff_example}

Return ONLY the complete merged file. Preserve all existing code structure and formatting.
Do not add explanations or annotations."""

def _create_openai_client():
    from openai import OpenAI
    # Access module directly to get latest values
    cfg = sys.modules["editmerge.config"]
    return OpenAI(base_url=cfg.API_BASE_URL, api_key=cfg.API_KEY)

def build_merge_prompt(partial_code: str, original_code: str, file_name: str) -> str:
    return f"""Merge these partial code changes into the original file {file_name}:

Partial changes:
{partial_code}

Original complete file:
{original_code}

Return ONLY the complete merged file with the changes applied."""

def strip_code_fence(text: str) -> str:
    """Unwrap a reply that is a single fenced block; other text is returned as-is."""
    stripped = text.strip()
    if stripped.startswith("```"):
        match = code_block_pattern.match(stripped)
        if match and match.end() == len(stripped):
            return match.group(1).rstrip("\n")
    return text


class LLMMergeService:
    """Merge service backed by a chat-completions model."""

    def __init__(self, model: str | None = None, client=None):
        self.model = model or config.merge_model
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = _create_openai_client()
        return self._client

    def compute_merge(self, partial_code: str, original_code: str, file_name: str) -> str:
        messages = [
            {"role": "system", "content": MERGE_SYSTEM_PROMPT},
            {"role": "user", "content": build_merge_prompt(partial_code, original_code, file_name)},
        ]

        logger.info(f"Merging {file_name} with model: {self.model}")
        start_time = time.time()
        try:
            response = self.client.chat.completions.create(model=self.model, messages=messages)
        except Exception as e:
            logger.exception(f"Merge request failed for {file_name}: {e}")
            raise MergeServiceError(f"Merge request failed for {file_name}: {e}") from e

        if not response.choices or response.choices[0].message.content is None:
            raise MergeServiceError(f"Merge service returned no content for {file_name}")

        merged = strip_code_fence(response.choices[0].message.content)

        usage = getattr(response, "usage", None)
        if usage:
            logger.info(f"Tokens: {usage.prompt_tokens} in / {usage.completion_tokens} out")
        logger.info(f"Time: {time.time() - start_time:.2f}s")
        return merged
