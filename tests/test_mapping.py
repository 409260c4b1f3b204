import itertools

import pytest

from trafficsnap.core.errors import MappingRequired
from trafficsnap.ingest.mapping import DEFAULT_HEADER, DEFAULT_MAPPING, detect_mapping, resolve_mapping
from trafficsnap.schemas import REQUIRED_COLUMNS, Column, ColumnMapping


def test_default_header_resolves_to_default_mapping():
    assert detect_mapping(list(DEFAULT_HEADER)) == DEFAULT_MAPPING


def test_every_header_permutation_resolves_all_required_columns():
    # every 997th of the 8! orderings
    for order in itertools.islice(itertools.permutations(range(8)), 0, 40320, 997):
        header = [DEFAULT_HEADER[i] for i in order]
        mapping = detect_mapping(header)
        assert mapping is not None
        assert mapping.is_complete
        for column in REQUIRED_COLUMNS:
            assert header[mapping.index(column)] == DEFAULT_HEADER[DEFAULT_MAPPING.index(column)]


def test_ctr_header_is_not_taken_by_impressions():
    header = ["Impressions click-through rate (%)", "Impressions"]
    mapping = detect_mapping(header)
    assert mapping.ctr == 0
    assert mapping.impressions == 1


def test_short_keywords_and_case():
    mapping = detect_mapping(["  TRAFFIC SOURCE ", "ctr", '"Views"', "\ufeffWatch Time"])
    assert mapping.source_id == 0
    assert mapping.ctr == 1
    assert mapping.views == 2
    assert mapping.watch_time == 3
    assert mapping.source_title == -1


def test_channel_id_column_is_optional():
    mapping = detect_mapping([*DEFAULT_HEADER, "Channel ID"])
    assert mapping.channel_id == 8
    assert detect_mapping(list(DEFAULT_HEADER)).channel_id == -1


def test_russian_export_headers():
    header = [
        "Источник трафика",
        "Тип источника",
        "Название источника",
        "Показы",
        "CTR для значков видео (%)",
        "Просмотры",
        "Средняя продолжительность просмотра",
        "Время просмотра (часы)",
    ]
    mapping = detect_mapping(header)
    assert mapping.is_complete
    assert mapping.ctr == 4


def test_no_match_returns_none():
    assert detect_mapping(["foo", "bar"]) is None


def test_unrecognized_title_header_requires_mapping():
    header = list(DEFAULT_HEADER)
    header[2] = "Video Name"
    mapping = detect_mapping(header)
    assert mapping.source_title == -1

    with pytest.raises(MappingRequired) as exc:
        resolve_mapping(header)
    assert exc.value.missing == [Column.SOURCE_TITLE.value]
    assert exc.value.headers == header


def test_resolve_mapping_with_nothing_detected_lists_all_columns():
    with pytest.raises(MappingRequired) as exc:
        resolve_mapping(["a", "b"])
    assert len(exc.value.missing) == 8


def test_user_mapping_is_used_as_given():
    header = ["x"] * 8
    manual = ColumnMapping(
        source_id=7, source_type=6, source_title=5, impressions=4, ctr=3, views=2, avg_duration=1, watch_time=0
    )
    assert resolve_mapping(header, manual) is manual


def test_incomplete_user_mapping_is_rejected():
    with pytest.raises(MappingRequired):
        resolve_mapping(list(DEFAULT_HEADER), ColumnMapping(source_id=0))
