"""Tests for AggregateAccessManager violation lists and caching."""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from hmis_services import acl
from hmis_services.access import AggregateAccessManager
from hmis_services.acl import AclService
from hmis_services.metrics import get_metrics
from hmis_services.models import (
    AggregateDataValue,
    CategoryOption,
    CategoryOptionCombo,
    DataElementOperand,
    DataSet,
    Sharing,
    User,
    UserAccess,
)

ALICE = User(uid="UsrAlice001", id=1)
ROOT = User(uid="UsrRoot0001", id=3, is_super=True)


def _option(uid: str, access: str = acl.DEFAULT) -> CategoryOption:
    return CategoryOption(uid=uid, sharing=Sharing(public_access=access))


def _combo(uid: str, *options: CategoryOption) -> CategoryOptionCombo:
    return CategoryOptionCombo(uid=uid, category_options=list(options))


class CountingAcl(AclService):
    def __init__(self):
        self.calls = 0

    def can_data_write(self, user, obj):
        self.calls += 1
        return super().can_data_write(user, obj)


@pytest.fixture
def manager():
    return AggregateAccessManager(AclService())


def test_requires_acl_service():
    with pytest.raises(ValueError):
        AggregateAccessManager(None)


class TestBypass:
    @pytest.mark.parametrize("user", [None, ROOT])
    def test_no_checks_for_missing_or_super_user(self, manager, user):
        closed = _combo("CocClosed01", _option("CoClosed001"))
        ds = DataSet(uid="DsMalaria01")
        dv = AggregateDataValue("DeCases0001", "202401", "OuSierra001", closed, closed)

        assert manager.can_read_data_value(user, dv) == []
        assert manager.can_write_data_set(user, ds) == []
        assert manager.can_read_data_set(user, ds) == []
        assert manager.can_write_option_combo(user, closed) == []
        assert manager.can_write_option_combo_cached(user, closed) == []
        assert manager.can_read_option_combo(user, closed) == []
        assert manager.can_write_operand(user, DataElementOperand("DeCases0001", closed, closed)) == []


class TestDataSet:
    def test_write_denied_message(self, manager):
        ds = DataSet(uid="DsMalaria01", sharing=Sharing(public_access=acl.DATA_READ))
        assert manager.can_write_data_set(ALICE, ds) == [
            "User does not have write access for DataSet: DsMalaria01"
        ]
        assert manager.can_read_data_set(ALICE, ds) == []

    def test_read_denied_message(self, manager):
        ds = DataSet(uid="DsMalaria01")
        assert manager.can_read_data_set(ALICE, ds) == [
            "User does not have read access for DataSet: DsMalaria01"
        ]

    def test_user_grant(self, manager):
        ds = DataSet(
            uid="DsMalaria01",
            sharing=Sharing(user_accesses=[UserAccess(id=1, access=acl.DATA_READ_WRITE, user=ALICE)]),
        )
        assert manager.can_write_data_set(ALICE, ds) == []

    def test_denials_are_counted(self, manager):
        manager.can_read_data_set(ALICE, DataSet(uid="DsMalaria01"))
        assert get_metrics()["access_denials"] == 1


class TestOptionCombos:
    def test_read_data_value_checks_both_combos_once_per_option(self, manager):
        shared = _option("CoShared001")
        coc = _combo("CocAgeSex01", shared, _option("CoOpen00001", acl.DATA_READ))
        aoc = _combo("AocProj0001", shared, _option("CoProj00001"))
        dv = AggregateDataValue("DeCases0001", "202401", "OuSierra001", coc, aoc)

        assert manager.can_read_data_value(ALICE, dv) == [
            "User has no data read access for CategoryOption: CoShared001",
            "User has no data read access for CategoryOption: CoProj00001",
        ]

    def test_read_data_value_without_combos(self, manager):
        dv = AggregateDataValue("DeCases0001", "202401", "OuSierra001")
        assert manager.can_read_data_value(ALICE, dv) == []

    def test_write_option_combo_messages(self, manager):
        coc = _combo("CocAgeSex01", _option("CoRead00001", acl.DATA_READ), _option("CoWrite0001", acl.DATA_READ_WRITE))
        assert manager.can_write_option_combo(ALICE, coc) == [
            "User has no data write access for CategoryOption: CoRead00001"
        ]
        assert manager.can_read_option_combo(ALICE, coc) == []

    def test_write_operand_dedupes_options(self, manager):
        shared = _option("CoShared001")
        op = DataElementOperand("DeCases0001", _combo("CocA0000001", shared), _combo("AocA0000001", shared))
        assert manager.can_write_operand(ALICE, op) == [
            "User has no data write access for CategoryOption: CoShared001"
        ]

    def test_write_operand_with_only_attribute_combo(self, manager):
        op = DataElementOperand("DeCases0001", None, _combo("AocA0000001", _option("CoProj00001")))
        assert manager.can_write_operand(ALICE, op) == [
            "User has no data write access for CategoryOption: CoProj00001"
        ]


class TestCachedWriteCheck:
    def test_second_call_served_from_cache(self):
        counting = CountingAcl()
        manager = AggregateAccessManager(counting)
        coc = _combo("CocAgeSex01", _option("CoClosed001"))

        first = manager.can_write_option_combo_cached(ALICE, coc)
        second = manager.can_write_option_combo_cached(ALICE, coc)

        assert first == second == ["User has no data write access for CategoryOption: CoClosed001"]
        assert counting.calls == 1
        assert get_metrics()["caches"]["can_data_write_coc"] == {"hits": 1, "misses": 1}

    def test_cache_keyed_per_user(self):
        counting = CountingAcl()
        manager = AggregateAccessManager(counting)
        coc = _combo("CocAgeSex01", _option("CoClosed001"))

        manager.can_write_option_combo_cached(ALICE, coc)
        manager.can_write_option_combo_cached(User(uid="UsrOther001"), coc)
        assert counting.calls == 2

    def test_returned_list_is_a_copy(self, manager):
        coc = _combo("CocAgeSex01", _option("CoClosed001"))
        manager.can_write_option_combo_cached(ALICE, coc).append("mutated")
        assert manager.can_write_option_combo_cached(ALICE, coc) == [
            "User has no data write access for CategoryOption: CoClosed001"
        ]

    def test_invalidate_clears_cache(self):
        counting = CountingAcl()
        manager = AggregateAccessManager(counting)
        coc = _combo("CocAgeSex01", _option("CoOpen00001", acl.DATA_READ_WRITE))

        manager.can_write_option_combo_cached(ALICE, coc)
        manager.invalidate()
        manager.can_write_option_combo_cached(ALICE, coc)
        assert counting.calls == 2


@settings(max_examples=50, deadline=None)
@given(st.lists(st.tuples(st.sampled_from("ABCDEF"), st.booleans()), max_size=12))
def test_one_violation_per_denied_unique_option(entries):
    # First occurrence of a uid decides its access, matching the manager's dedupe
    options = [_option(f"Co{uid}", acl.DATA_READ if readable else acl.DEFAULT) for uid, readable in entries]
    half = len(options) // 2
    dv = AggregateDataValue(
        "DeCases0001", "202401", "OuSierra001",
        _combo("CocA0000001", *options[:half]),
        _combo("AocA0000001", *options[half:]),
    )

    first_seen: dict[str, bool] = {}
    for uid, readable in entries:
        first_seen.setdefault(f"Co{uid}", readable)
    denied = [uid for uid, readable in first_seen.items() if not readable]

    errors = AggregateAccessManager(AclService()).can_read_data_value(ALICE, dv)
    assert errors == [f"User has no data read access for CategoryOption: {uid}" for uid in denied]
