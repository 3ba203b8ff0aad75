"""
Tests for batch LLM classification.

The OpenAI client is replaced by a fake with the same
``chat.completions.create`` shape (see conftest.fake_openai_client).
"""

import asyncio
from types import SimpleNamespace

import pytest

from opsboard.services.classification import (
    TRUNCATION_MARKER,
    ClassificationError,
    classify_conversations,
    parse_classification,
    run_bounded,
    truncate_transcript,
)


# =============================================================================
# WORKER POOL
# =============================================================================


class TestRunBounded:

    @pytest.mark.asyncio
    async def test_results_keep_input_order(self):
        async def worker(n):
            await asyncio.sleep(0.01 * (5 - n))
            return n * 10

        results = await run_bounded(list(range(5)), worker, concurrency=3)

        assert [r.index for r in results] == [0, 1, 2, 3, 4]
        assert [r.value for r in results] == [0, 10, 20, 30, 40]

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self):
        in_flight = 0
        peak = 0

        async def worker(n):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return n

        await run_bounded(list(range(12)), worker, concurrency=4)

        assert peak == 4

    @pytest.mark.asyncio
    async def test_failures_settle_individually(self):
        async def worker(n):
            if n == 1:
                raise ValueError('bad item')
            return n

        results = await run_bounded([0, 1, 2], worker, concurrency=0)

        assert [r.ok for r in results] == [True, False, True]
        assert str(results[1].error) == 'bad item'
        assert results[2].value == 2


# =============================================================================
# REPLY PARSING
# =============================================================================


class TestParseClassification:

    def test_json_inside_prose(self):
        reply = 'Sure! ```json\n{"frustrated": true, "confused": 0, "mainIssues": ["Visa delay", " "], ' \
                '"keyPhrases": ["still waiting"]}\n```'

        assert parse_classification(reply) == {
            'frustrated': True,
            'confused': False,
            'mainIssues': ['Visa delay'],
            'keyPhrases': ['still waiting'],
        }

    def test_missing_fields_default(self):
        assert parse_classification('{}') == {
            'frustrated': False, 'confused': False, 'mainIssues': [], 'keyPhrases': []
        }

    @pytest.mark.parametrize('reply', ['no json here', '{"frustrated": tru', ''])
    def test_invalid_replies(self, reply):
        with pytest.raises(ClassificationError):
            parse_classification(reply)

    def test_truncate(self):
        assert truncate_transcript('short', 10) == 'short'
        assert truncate_transcript('x' * 20, 10) == 'x' * 10 + TRUNCATION_MARKER


# =============================================================================
# CLASSIFIER
# =============================================================================


class TestClassifier:

    @pytest.mark.asyncio
    async def test_classify_sends_truncated_transcript(self, make_classifier):
        classifier = make_classifier({'refund': '{"frustrated": true, "mainIssues": ["Refund"]}'}, max_chars=50)

        result = await classifier.classify('I want my refund ' + 'please ' * 50)

        assert result['frustrated'] is True
        assert result['mainIssues'] == ['Refund']
        call = classifier.client.chat.completions.create.await_args
        assert call.kwargs['model'] == 'gpt-4o-mini'
        assert call.kwargs['messages'][-1]['content'].endswith(TRUNCATION_MARKER)

    @pytest.mark.asyncio
    async def test_empty_reply_raises(self, make_classifier):
        classifier = make_classifier({})
        classifier.client.chat.completions.create.side_effect = None
        classifier.client.chat.completions.create.return_value = SimpleNamespace(choices=[])

        with pytest.raises(ClassificationError, match='Empty response'):
            await classifier.classify('hello')

    @pytest.mark.asyncio
    async def test_batch_reports_failures_per_item(self, make_classifier):
        classifier = make_classifier({
            'refund': '{"frustrated": true, "mainIssues": ["Refund"]}',
            'broken': 'I cannot answer that',
            'timeout': RuntimeError('upstream timeout'),
        })
        conversations = [
            {'conversationId': 'c1', 'transcript': 'where is my refund', 'clientId': 'K1'},
            {'conversationId': 'c2', 'transcript': 'broken reply'},
            {'conversationId': 'c3', 'transcript': 'timeout please'},
            {'conversationId': 'c4', 'transcript': 'thanks'},
        ]

        outcome = await classify_conversations(classifier, conversations, concurrency=2)

        assert [r['conversationId'] for r in outcome['results']] == ['c1', 'c4']
        assert outcome['results'][0] == {
            'conversationId': 'c1',
            'clientId': 'K1',
            'frustrated': True,
            'confused': False,
            'mainIssues': ['Refund'],
            'keyPhrases': [],
        }
        assert [f['conversationId'] for f in outcome['failures']] == ['c2', 'c3']
        assert outcome['failures'][1]['error'] == 'upstream timeout'

    @pytest.mark.asyncio
    async def test_close(self, make_classifier):
        classifier = make_classifier({})

        await classifier.close()

        classifier.client.close.assert_awaited_once()
