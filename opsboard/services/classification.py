"""
Batch LLM classification of chat transcripts.

Each transcript is sent to an OpenAI-compatible chat model which answers with
a JSON object:

    {"frustrated": bool, "confused": bool, "mainIssues": [...], "keyPhrases": [...]}

Batches run through ``run_bounded``: at most ``concurrency`` requests are in
flight and every item settles on its own, so one failed transcript is
reported individually instead of failing the batch.
"""

import asyncio
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Generic, List, Optional, Sequence, TypeVar

from openai import AsyncOpenAI


logger = logging.getLogger(__name__)

T = TypeVar('T')
R = TypeVar('R')

TRUNCATION_MARKER = '\n...[truncated]'
_JSON_OBJECT_PATTERN = re.compile(r'\{[\s\S]*\}')

SYSTEM_PROMPT = (
    "You are a customer support quality analyst for a domestic-worker agency. "
    "You read chat transcripts between customers (clients or maids) and agents "
    "and report how the customer experienced the conversation. "
    "Always respond with a single JSON object and nothing else."
)

CLASSIFICATION_PROMPT = """Analyze the conversation below and answer in JSON with these fields:

- "frustrated": true if the customer shows frustration, anger or impatience
- "confused": true if the customer is confused about a process, requirement or status
- "mainIssues": short labels (2-5 words) for the issues the customer raised
- "keyPhrases": up to 5 short phrases quoted or paraphrased from the customer

Conversation:
"""


class ClassificationError(Exception):
    """Raised when a model reply cannot be turned into a classification."""


# =============================================================================
# Bounded worker pool
# =============================================================================

@dataclass
class SettledResult(Generic[R]):
    index: int
    value: Optional[R] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def run_bounded(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[R]],
    concurrency: int = 10,
) -> List[SettledResult[R]]:
    """
    Run ``worker`` over ``items`` with at most ``concurrency`` calls in flight.

    Returns one SettledResult per item, in input order. A worker exception is
    captured on its result; it never cancels the other items.
    """
    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def settle(index: int, item: T) -> SettledResult[R]:
        async with semaphore:
            try:
                return SettledResult(index=index, value=await worker(item))
            except Exception as e:
                logger.warning(f"Batch item {index} failed: {e}")
                return SettledResult(index=index, error=e)

    return list(await asyncio.gather(*(settle(i, item) for i, item in enumerate(items))))


# =============================================================================
# Reply parsing
# =============================================================================

def truncate_transcript(transcript: str, max_chars: int = 8000) -> str:
    if len(transcript) <= max_chars:
        return transcript
    return transcript[:max_chars] + TRUNCATION_MARKER


def _string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(item).strip() for item in value if str(item).strip()]


def parse_classification(content: str) -> Dict[str, Any]:
    """
    Classification from the first ``{...}`` span of a model reply.

    Raises:
        ClassificationError: no JSON object or invalid JSON.
    """
    match = _JSON_OBJECT_PATTERN.search(content or '')
    if not match:
        raise ClassificationError('No JSON found in response')
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise ClassificationError(f"Invalid JSON in response: {e}") from e
    if not isinstance(parsed, dict):
        raise ClassificationError('Response JSON is not an object')

    return {
        'frustrated': bool(parsed.get('frustrated')),
        'confused': bool(parsed.get('confused')),
        'mainIssues': _string_list(parsed.get('mainIssues')),
        'keyPhrases': _string_list(parsed.get('keyPhrases')),
    }


# =============================================================================
# Classifier
# =============================================================================

class ConversationClassifier:
    """Frustration/confusion classifier backed by an OpenAI-compatible chat model."""

    def __init__(
        self,
        client: AsyncOpenAI,
        model: str = 'gpt-4o-mini',
        max_chars: int = 8000,
        temperature: float = 0.1,
        max_tokens: int = 300,
    ) -> None:
        self.client = client
        self.model = model
        self.max_chars = max_chars
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def classify(self, transcript: str) -> Dict[str, Any]:
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {'role': 'system', 'content': SYSTEM_PROMPT},
                {'role': 'user', 'content': CLASSIFICATION_PROMPT + truncate_transcript(transcript, self.max_chars)},
            ],
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )
        if not response.choices or not response.choices[0].message.content:
            raise ClassificationError('Empty response from model')
        return parse_classification(response.choices[0].message.content)

    async def close(self) -> None:
        await self.client.close()


async def classify_conversations(
    classifier: ConversationClassifier,
    conversations: Sequence[Dict[str, Any]],
    concurrency: int = 10,
) -> Dict[str, Any]:
    """
    Classify ``conversations`` (dicts with ``conversationId`` and ``transcript``).

    Successful items come back as the input dict (minus the transcript) merged
    with the classification; failures list the conversation id and error.
    """
    async def worker(conversation: Dict[str, Any]) -> Dict[str, Any]:
        return await classifier.classify(conversation.get('transcript') or '')

    settled = await run_bounded(conversations, worker, concurrency)

    results: List[Dict[str, Any]] = []
    failures: List[Dict[str, Any]] = []
    for outcome in settled:
        conversation = conversations[outcome.index]
        if outcome.ok:
            row = {key: value for key, value in conversation.items() if key != 'transcript'}
            row.update(outcome.value)
            results.append(row)
        else:
            failures.append({
                'conversationId': conversation.get('conversationId'),
                'error': str(outcome.error),
            })

    logger.info(f"Classified {len(results)}/{len(conversations)} conversations ({len(failures)} failed)")
    return {'results': results, 'failures': failures}
