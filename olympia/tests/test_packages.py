"""
Finish-round packages: three distinct draws per seat, no question handed out
twice in a match, exhaustion reported per value tier.
"""
import pytest

from olympia.orm.match import RoundType
from olympia.services import live_context
from olympia.services.control_service import ControlService
from olympia.services.package_service import PackageService, item_key
from olympia.services.session_service import SessionService

from conftest import seed_match


async def filled_slots(db, match_id):
    finish_round = await live_context.get_round(db, match_id, RoundType.FINISH)
    slots = await live_context.list_round_questions(db, finish_round.id)
    return [slot for slot in slots if slot.question_set_item_id is not None]


@pytest.mark.asyncio
class TestSelectPackage:

    async def test_fills_the_seat_slots(self, db_session, live_match):
        await ControlService.set_round(db_session, live_match.match_id, "finish")
        result = await PackageService.select_package(
            db_session, live_match.match_id, live_match.seat(2), [20, 30, 20]
        )

        assert result.ok, result.message
        assert [slot["order_index"] for slot in result.data["slots"]] == [4, 5, 6]
        assert [slot["value"] for slot in result.data["slots"]] == [20, 30, 20]
        slots = await filled_slots(db_session, live_match.match_id)
        assert all(slot.target_player_id == live_match.seat(2) for slot in slots)
        assert all(slot.code.startswith("VD") for slot in slots)

    async def test_no_item_is_drawn_twice(self, db_session, live_match):
        await ControlService.set_round(db_session, live_match.match_id, "finish")
        for seat in (1, 2):
            result = await PackageService.select_package(
                db_session, live_match.match_id, live_match.seat(seat), [20, 20, 20]
            )
            assert result.ok, result.message

        slots = await filled_slots(db_session, live_match.match_id)
        assert len({slot.question_set_item_id for slot in slots}) == 6

    async def test_tier_exhaustion(self, db_session, live_match):
        await ControlService.set_round(db_session, live_match.match_id, "finish")
        await PackageService.select_package(db_session, live_match.match_id, live_match.seat(1), [30, 30, 30])

        result = await PackageService.select_package(
            db_session, live_match.match_id, live_match.seat(2), [30, 30, 20]
        )
        assert not result.ok
        assert result.error_kind == "exhausted"
        assert result.message == "Pool VD-30 exhausted."

    async def test_changing_values_releases_previous_items(self, db_session, live_match):
        await ControlService.set_round(db_session, live_match.match_id, "finish")
        await PackageService.select_package(db_session, live_match.match_id, live_match.seat(1), [30, 30, 30])

        changed = await PackageService.select_package(
            db_session, live_match.match_id, live_match.seat(1), [20, 30, 30]
        )
        assert changed.ok, changed.message
        assert changed.data["values_changed"] is True
        other = await PackageService.select_package(
            db_session, live_match.match_id, live_match.seat(2), [30, 30, 20]
        )
        assert other.ok, other.message

    async def test_duplicate_text_counts_as_used(self, db_session):
        items = [
            ("VD-20.1", "Same question", "Same answer"),
            ("VD-20.2", "  same QUESTION ", "same answer"),
            ("VD-20.3", "Other question", "Other"),
            ("VD-20.4", "Fourth question", "Fourth"),
            ("VD-30.1", "Thirty", "Thirty"),
        ]
        live = await seed_match(db_session, items=items)
        assert (await SessionService.open_session(db_session, live.match_id)).ok
        await ControlService.set_round(db_session, live.match_id, "finish")

        result = await PackageService.select_package(db_session, live.match_id, live.seat(1), [20, 20, 20])

        assert result.ok, result.message
        slots = await filled_slots(db_session, live.match_id)
        keys = [item_key(slot.question_text, slot.answer_text) for slot in slots]
        assert len(set(keys)) == 3

    async def test_empty_tier(self, db_session):
        live = await seed_match(db_session, items=[("VD-20.1", "Only twenty", "A")])
        await SessionService.open_session(db_session, live.match_id)
        await ControlService.set_round(db_session, live.match_id, "finish")

        result = await PackageService.select_package(db_session, live.match_id, live.seat(1), [20, 20, 20])
        assert result.message == "Pool VD-30 is empty."

    @pytest.mark.parametrize("values", [[20, 20], [20, 25, 30], [30, 30, 30, 30]])
    async def test_invalid_values(self, db_session, live_match, values):
        await ControlService.set_round(db_session, live_match.match_id, "finish")
        result = await PackageService.select_package(db_session, live_match.match_id, live_match.seat(1), values)
        assert result.error_kind == "validation"

    async def test_only_in_the_finish_round(self, db_session, live_match):
        await ControlService.set_round(db_session, live_match.match_id, "speed")
        result = await PackageService.select_package(
            db_session, live_match.match_id, live_match.seat(1), [20, 20, 20]
        )
        assert result.error_kind == "precondition"

    async def test_reset_all_packages(self, db_session, live_match):
        await ControlService.set_round(db_session, live_match.match_id, "finish")
        await PackageService.select_package(db_session, live_match.match_id, live_match.seat(1), [20, 20, 20])

        result = await PackageService.reset_all_packages(db_session, live_match.match_id)

        assert result.data["cleared"] == 12
        assert await filled_slots(db_session, live_match.match_id) == []
