"""
Tests for chat analysis aggregation and snapshot persistence.

Covers:
1. Person-level frustration/confusion percentages
2. Issue drivers and main-issue insights
3. Day-over-day trends and the trend window
4. Conversation result merging for display
5. The empty-day placeholder
"""

import pytest

from opsboard.models.enums import PersonType
from opsboard.services.chat_analysis import (
    aggregate_conversations,
    build_chat_snapshot,
    clear_chat_data,
    content_key,
    empty_chat_snapshot,
    expand_entities,
    get_chat_snapshot,
    get_chat_trend_data,
    group_people,
    list_chat_dates,
    merge_conversation_results,
    save_chat_snapshot,
    window_days,
)
from opsboard.services.entity_resolution import RawRecord, ResolvedEntity


ANALYSIS_DATE = '2026-02-13'


def stored_snapshot(day: str, frustration: int, confusion: int) -> dict:
    snapshot = empty_chat_snapshot(day)
    snapshot['overallMetrics']['frustrationPercentage'] = frustration
    snapshot['overallMetrics']['confusionPercentage'] = confusion
    return snapshot


# =============================================================================
# AGGREGATION
# =============================================================================


class TestAggregateConversations:

    def test_percentages_are_over_people(self, sample_records):
        snapshot = aggregate_conversations(sample_records, ANALYSIS_DATE)

        metrics = snapshot['overallMetrics']
        assert metrics['totalConversations'] == 3
        assert metrics['frustratedCount'] == 2
        assert metrics['frustrationPercentage'] == 67
        assert metrics['confusedCount'] == 1
        assert metrics['confusionPercentage'] == 33
        assert snapshot['processing']['inputRecords'] == 4
        assert snapshot['processing']['people'] == 3

    def test_drivers_and_main_issue(self, sample_records):
        snapshot = aggregate_conversations(sample_records, ANALYSIS_DATE)

        frustration = snapshot['insights']['frustration']
        assert frustration['topDrivers'] == [
            {'issue': 'Visa delay', 'impact': 100, 'frequency': 2},
            {'issue': 'Payment', 'impact': 50, 'frequency': 1},
        ]
        assert frustration['mainIssue']['title'] == 'Visa delay'
        assert frustration['mainIssue']['trending'] == 'up'
        confusion = snapshot['insights']['confusion']
        assert [d['issue'] for d in confusion['topDrivers']] == ['Visa delay', 'Payment']

    def test_top_drivers_are_limited(self):
        records = [
            RawRecord(conversation_id=f"c{i}", client_id=f"K{i}", frustrated=True, main_issues=(f"issue {i}",))
            for i in range(6)
        ]

        snapshot = aggregate_conversations(records, ANALYSIS_DATE, top_drivers=4)

        assert len(snapshot['insights']['frustration']['topDrivers']) == 4

    def test_trend_without_history_is_stable(self, sample_records):
        snapshot = aggregate_conversations(sample_records, ANALYSIS_DATE)

        assert snapshot['trends']['frustration'] == {'current': 67, 'previous': 67, 'direction': 'stable'}
        assert snapshot['trendData'] == [
            {'date': ANALYSIS_DATE, 'frustrationPercentage': 67, 'confusionPercentage': 33}
        ]

    def test_trend_against_previous_day(self, sample_records):
        history = {
            '2026-02-12': stored_snapshot('2026-02-12', 50, 40),
            '2026-02-10': stored_snapshot('2026-02-10', 20, 10),
            '2026-01-01': stored_snapshot('2026-01-01', 90, 90),
        }

        snapshot = aggregate_conversations(sample_records, ANALYSIS_DATE, history=history, trend_days=7)

        assert snapshot['trends']['frustration']['direction'] == 'increasing'
        assert snapshot['trends']['confusion']['direction'] == 'decreasing'
        assert [point['date'] for point in snapshot['trendData']] == [
            '2026-02-10', '2026-02-12', ANALYSIS_DATE
        ]

    def test_zero_percent_previous_day_is_a_real_value(self, sample_records):
        history = {'2026-02-12': stored_snapshot('2026-02-12', 0, 0)}

        snapshot = aggregate_conversations(sample_records, ANALYSIS_DATE, history=history)

        assert snapshot['trends']['frustration'] == {'current': 67, 'previous': 0, 'direction': 'increasing'}
        assert snapshot['trends']['confusion'] == {'current': 33, 'previous': 0, 'direction': 'increasing'}

    def test_conversation_results_merge_same_content(self, sample_records):
        snapshot = aggregate_conversations(sample_records, ANALYSIS_DATE)

        ids = sorted(result['conversationId'] for result in snapshot['conversationResults'])
        assert ids == ['c1,c2', 'c3', 'c4']

    def test_empty_day_placeholder(self):
        snapshot = aggregate_conversations([], ANALYSIS_DATE)

        assert snapshot['analysisDate'] == ANALYSIS_DATE
        assert snapshot['overallMetrics']['totalConversations'] == 0
        assert snapshot['overallMetrics']['frustrationPercentage'] == 0
        assert snapshot['insights']['frustration']['mainIssue']['title'] == 'No Data Available'
        assert snapshot['conversationResults'] == []


# =============================================================================
# BUILDING BLOCKS
# =============================================================================


class TestBuildingBlocks:

    def test_expand_dedupes_shared_sub_ids(self):
        entities = [
            ResolvedEntity(merged_ids=('x1', 'x2'), frustrated=True, client_id='K1', main_issues=('a',)),
            ResolvedEntity(merged_ids=('x2',), confused=True, main_issues=('b', 'c')),
        ]

        expansion = expand_entities(entities)

        assert [row.conversation_id for row in expansion.conversations] == ['x1', 'x2']
        x2 = expansion.conversations[1]
        assert x2.frustrated and x2.confused
        assert x2.main_issues == ('a', 'b', 'c')
        assert expansion.duplicates == 1
        assert expansion.owners['x2'] == 'client_K1'

    def test_group_people_types(self):
        people = group_people([
            RawRecord(conversation_id='c1', contract_id='C1'),
            RawRecord(conversation_id='c2', client_id='K1'),
            RawRecord(conversation_id='c3', maid_id='M1'),
            RawRecord(conversation_id='c4'),
        ])

        assert [p.person_type for p in people] == [
            PersonType.CLIENT, PersonType.CLIENT, PersonType.MAID, PersonType.UNKNOWN
        ]

    def test_content_key_ignores_phrase_order_and_case(self):
        a = RawRecord(conversation_id='c1', client_id='K1', key_phrases=('Late', 'refund'),
                      timestamp='2026-02-13T09:15:10Z')
        b = RawRecord(conversation_id='c2', client_id='K1', key_phrases=('REFUND', 'late'),
                      timestamp='2026-02-13T09:15:50Z')

        assert content_key(a) == content_key(b)
        assert merge_conversation_results([a, b])[0]['conversationId'] == 'c1,c2'

    def test_different_minutes_stay_separate(self):
        a = RawRecord(conversation_id='c1', client_id='K1', timestamp='2026-02-13T09:15:00Z')
        b = RawRecord(conversation_id='c2', client_id='K1', timestamp='2026-02-13T09:16:00Z')

        assert len(merge_conversation_results([a, b])) == 2

    def test_window_days(self):
        assert window_days('2026-03-02', 3) == ['2026-02-28', '2026-03-01', '2026-03-02']


# =============================================================================
# PERSISTENCE
# =============================================================================


class TestChatPersistence:

    @pytest.mark.asyncio
    async def test_build_reads_previous_day(self, snapshot_store, sample_records):
        await save_chat_snapshot(snapshot_store, stored_snapshot('2026-02-12', 50, 33))

        snapshot = await build_chat_snapshot(snapshot_store, sample_records, ANALYSIS_DATE)

        assert snapshot['trends']['frustration'] == {'current': 67, 'previous': 50, 'direction': 'increasing'}
        assert snapshot['trends']['confusion']['direction'] == 'stable'
        assert len(snapshot['trendData']) == 2

    @pytest.mark.asyncio
    async def test_save_get_list_trends_clear(self, snapshot_store):
        await save_chat_snapshot(snapshot_store, stored_snapshot('2026-02-11', 10, 5))
        await save_chat_snapshot(snapshot_store, stored_snapshot('2026-02-13', 30, 15))

        assert (await get_chat_snapshot(snapshot_store))['analysisDate'] == '2026-02-13'
        assert (await get_chat_snapshot(snapshot_store, '2026-02-11'))['analysisDate'] == '2026-02-11'
        assert await get_chat_snapshot(snapshot_store, '2026-02-12') is None
        assert await list_chat_dates(snapshot_store) == ['2026-02-11', '2026-02-13']

        trend = await get_chat_trend_data(snapshot_store, '2026-02-13', days=3)
        assert trend == [
            {'date': '2026-02-11', 'frustrationPercentage': 10, 'confusionPercentage': 5},
            {'date': '2026-02-13', 'frustrationPercentage': 30, 'confusionPercentage': 15},
        ]

        assert await clear_chat_data(snapshot_store) == 3
        assert await list_chat_dates(snapshot_store) == []
