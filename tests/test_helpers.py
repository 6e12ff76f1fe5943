import pytest

from query_node_harness.chain.groups import WORKING_GROUPS, WorkingGroup
from query_node_harness.utils.helpers import (
    entity_id,
    event_id,
    from_query_datetime,
    now_ms,
    to_query_datetime,
)


def test_event_id_format():
    assert event_id(100, 3) == "100-3"


def test_entity_id_accepts_enum_and_string():
    assert entity_id(WorkingGroup.STORAGE, 7) == "storageWorkingGroup-7"
    assert entity_id("storageWorkingGroup", 7) == "storageWorkingGroup-7"


def test_to_query_datetime_has_millisecond_precision():
    assert to_query_datetime(0) == "1970-01-01T00:00:00.000Z"
    assert to_query_datetime(1_700_000_000_123) == "2023-11-14T22:13:20.123Z"


@pytest.mark.parametrize("ms", [0, 1, 999, 1_700_000_000_123])
def test_query_datetime_round_trip(ms):
    assert from_query_datetime(to_query_datetime(ms)) == ms


def test_now_ms_is_milliseconds():
    assert now_ms() > 1_600_000_000_000


def test_every_group_has_pallet_and_lock():
    assert len(WORKING_GROUPS) == 9
    locks = {g.lock_id for g in WORKING_GROUPS}
    assert len(locks) == 9
    assert WorkingGroup.STORAGE.pallet == "StorageWorkingGroup"
    assert WorkingGroup.OPERATIONS_GAMMA.pallet == "OperationsWorkingGroupGamma"
    assert str(WorkingGroup.FORUM) == "forumWorkingGroup"
