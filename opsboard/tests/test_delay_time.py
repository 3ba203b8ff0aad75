"""
Tests for agent delay / response time processing.
"""

import pytest

from opsboard.models.enums import DelayRecordFormat
from opsboard.services.delay_time import (
    AgentResponseTimeRecord,
    LegacyDelayRecord,
    UnknownDelayFormatError,
    classify_delay_records,
    default_analysis_date,
    format_seconds,
    get_delay_snapshot,
    list_delay_dates,
    parse_duration_to_seconds,
    process_delay_records,
    record_format_of,
    save_delay_snapshot,
)


@pytest.fixture
def legacy_rows() -> list:
    return [
        {'agentFullName': 'Alice', 'avgDelayDdHhMmSs': '00:00:01:00', 'endedWithConsumerNoReply': 'Yes'},
        {'agentFullName': 'Alice', 'avgDelayDdHhMmSs': '00:00:02:01', 'endedWithConsumerNoReply': 'No'},
        {'agentFullName': 'Bob', 'avgDelayDdHhMmSs': '00:01:00:00', 'endedWithConsumerNoReply': 'no'},
    ]


@pytest.fixture
def response_time_rows() -> list:
    return [
        {'REPORT_DATE': '2026-02-13 00:00:00', 'AGENT_FULL_NAME': 'Total', 'AVG_ADJUSTED_RESPONSE_TIME': '00:05:00'},
        {'REPORT_DATE': '2026-02-13 00:00:00', 'AGENT_FULL_NAME': 'Alice', 'AVG_ADJUSTED_RESPONSE_TIME': '00:07:30'},
        {'REPORT_DATE': '2026-02-13 00:00:00', 'AGENT_FULL_NAME': 'Bob', 'AVG_ADJUSTED_RESPONSE_TIME': '00:03:00'},
    ]


class TestDurations:

    @pytest.mark.parametrize('value,expected', [
        ('1:00:00:00', 86400),
        ('00:01:02:03', 3723),
        ('01:02:03', 3723),
        ('00:00:30', 30),
        ('12:34', 0),
        ('a:b:c', 0),
        ('', 0),
    ])
    def test_parse(self, value, expected):
        assert parse_duration_to_seconds(value) == expected

    @pytest.mark.parametrize('seconds,expected', [(0, '00:00:00'), (91, '00:01:31'), (90061, '25:01:01')])
    def test_format(self, seconds, expected):
        assert format_seconds(seconds) == expected


class TestClassification:

    def test_legacy_rows(self, legacy_rows):
        records = classify_delay_records(legacy_rows)

        assert all(isinstance(r, LegacyDelayRecord) for r in records)
        assert record_format_of(records) == DelayRecordFormat.LEGACY
        assert records[0].no_reply is True
        assert records[2].no_reply is False

    def test_response_time_rows(self, response_time_rows):
        records = classify_delay_records(response_time_rows)

        assert all(isinstance(r, AgentResponseTimeRecord) for r in records)
        assert record_format_of(records) == DelayRecordFormat.AGENT_RESPONSE_TIME
        assert default_analysis_date(records) == '2026-02-13'

    def test_empty_upload(self):
        with pytest.raises(UnknownDelayFormatError, match='cannot be empty'):
            classify_delay_records([])

    def test_unknown_format(self):
        with pytest.raises(UnknownDelayFormatError, match='REPORT_DATE'):
            classify_delay_records([{'agent': 'Alice', 'delay': '00:01:00'}])

    def test_legacy_has_no_default_date(self, legacy_rows):
        assert default_analysis_date(classify_delay_records(legacy_rows)) is None


class TestProcessing:

    def test_legacy_grouped_per_agent_slowest_first(self, legacy_rows):
        snapshot = process_delay_records(classify_delay_records(legacy_rows), '2026-02-13')

        assert snapshot['analysisDate'] == '2026-02-13'
        assert snapshot['agentStats'] == [
            {'agentName': 'Bob', 'avgDelaySeconds': 3600, 'avgDelayFormatted': '01:00:00',
             'noReplyCount': 0, 'conversations': 1},
            {'agentName': 'Alice', 'avgDelaySeconds': 91, 'avgDelayFormatted': '00:01:31',
             'noReplyCount': 1, 'conversations': 2},
        ]

    def test_response_times_fastest_first(self, response_time_rows):
        snapshot = process_delay_records(classify_delay_records(response_time_rows), '2026-02-13')

        assert snapshot['dailyAverageDelaySeconds'] == 300
        assert snapshot['dailyAverageDelayFormatted'] == '00:05:00'
        assert [s['agentName'] for s in snapshot['agentStats']] == ['Bob', 'Alice']
        assert snapshot['agentStats'][1] == {
            'agentName': 'Alice', 'avgDelaySeconds': 450, 'avgDelayFormatted': '00:07:30'
        }

    def test_response_times_without_total_row(self, response_time_rows):
        snapshot = process_delay_records(classify_delay_records(response_time_rows[1:]), '2026-02-13')

        assert 'dailyAverageDelaySeconds' not in snapshot
        assert len(snapshot['agentStats']) == 2

    @pytest.mark.asyncio
    async def test_snapshot_persistence(self, snapshot_store, legacy_rows, response_time_rows):
        await save_delay_snapshot(
            snapshot_store, process_delay_records(classify_delay_records(legacy_rows), '2026-02-12')
        )
        await save_delay_snapshot(
            snapshot_store, process_delay_records(classify_delay_records(response_time_rows), '2026-02-13')
        )

        assert (await get_delay_snapshot(snapshot_store))['analysisDate'] == '2026-02-13'
        assert (await get_delay_snapshot(snapshot_store, '2026-02-12'))['agentStats'][0]['agentName'] == 'Bob'
        assert await get_delay_snapshot(snapshot_store, '2026-02-01') is None
        assert await list_delay_dates(snapshot_store) == ['2026-02-12', '2026-02-13']
