"""
Scoring through the services: finish star and steal, speed auto-grading,
the obstacle keyword, manual totals, undo and the ledger floor.
"""
import pytest
from sqlalchemy import func, select

from olympia.orm.answer import Answer, AnswerKind
from olympia.orm.catalog import RoundQuestion
from olympia.orm.live_session import QuestionState
from olympia.orm.match import RoundType
from olympia.orm.scoring import MatchScore, ScoreChange, StarOutcome, StarUse
from olympia.services import ledger, live_context
from olympia.services.answer_service import AnswerService
from olympia.services.buzzer_service import BuzzerService
from olympia.services.control_service import ControlService
from olympia.services.navigation_service import NavigationService
from olympia.services.package_service import PackageService
from olympia.services.scoring_service import ScoringService

from conftest import question_ids, reload_player


async def total_of(db, match_id, player_id):
    return await ledger.player_total(db, match_id, player_id)


async def change_count(db, match_id):
    result = await db.execute(select(func.count(ScoreChange.id)).where(ScoreChange.match_id == match_id))
    return result.scalar()


# =============================================================================
# Finish round
# =============================================================================

async def finish_question(db, live, seat, values=(30, 20, 20), star=True):
    """Pick a package for ``seat``, optionally star its first slot and show it."""
    await ControlService.set_round(db, live.match_id, "finish")
    picked = await PackageService.select_package(db, live.match_id, live.seat(seat), list(values))
    assert picked.ok, picked.message
    slot_id = picked.data["slots"][0]["id"]
    if star:
        starred = await ScoringService.toggle_star(db, live.match_id, slot_id, live.seat(seat), True)
        assert starred.ok, starred.message
    shown = await NavigationService.select_question(db, live.match_id, slot_id)
    assert shown.ok, shown.message
    return slot_id


@pytest.mark.asyncio
class TestFinishStar:

    async def test_star_doubles_a_correct_answer(self, db_session, live_match):
        slot_id = await finish_question(db_session, live_match, seat=1)
        result = await ScoringService.record_decision(
            db_session, live_match.match_id, live_match.seat(1), "correct"
        )

        assert result.ok, result.message
        assert result.data["delta"] == 60
        assert result.data["star_outcome"] == StarOutcome.APPLIED.value
        star = (await db_session.execute(select(StarUse).where(StarUse.round_question_id == slot_id))).scalar_one()
        assert star.outcome == StarOutcome.APPLIED.value
        live_session = await live_context.get_session(db_session, live_match.match_id, lock=False)
        assert live_session.question_state == QuestionState.COMPLETED.value

    async def test_star_costs_the_value_on_a_miss(self, db_session, live_match):
        await ScoringService.manual_adjust(
            db_session, live_match.match_id, live_match.seat(1), "finish", 50, "carry over"
        )
        await finish_question(db_session, live_match, seat=1)
        result = await ScoringService.record_decision(
            db_session, live_match.match_id, live_match.seat(1), "wrong"
        )

        assert result.data["delta"] == -30
        assert result.data["star_outcome"] == StarOutcome.WASTED.value
        assert result.data["steal_window"] is True
        assert await total_of(db_session, live_match.match_id, live_match.seat(1)) == 20

    async def test_star_locks_once_used(self, db_session, live_match):
        slot_id = await finish_question(db_session, live_match, seat=1)
        await ScoringService.record_decision(db_session, live_match.match_id, live_match.seat(1), "correct")

        moved = await ScoringService.toggle_star(
            db_session, live_match.match_id, slot_id + 1, live_match.seat(1), True
        )
        assert not moved.ok
        assert "already been used" in moved.message

    async def test_only_the_owner_is_scored(self, db_session, live_match):
        await finish_question(db_session, live_match, seat=1, star=False)
        result = await ScoringService.record_decision(
            db_session, live_match.match_id, live_match.seat(2), "correct"
        )
        assert result.error_kind == "precondition"

    async def test_star_only_on_finish_questions(self, db_session, live_match):
        ids = await question_ids(db_session, live_match.match_id, RoundType.OPENING)
        result = await ScoringService.toggle_star(
            db_session, live_match.match_id, ids["DKA-1"], live_match.seat(1), True
        )
        assert result.error_kind == "precondition"

    async def test_star_after_a_miss_is_refused(self, db_session, live_match):
        await ScoringService.manual_adjust(
            db_session, live_match.match_id, live_match.seat(1), "finish", 40, "carry over"
        )
        slot_id = await finish_question(db_session, live_match, seat=1, values=(20, 20, 20), star=False)
        await ScoringService.record_decision(db_session, live_match.match_id, live_match.seat(1), "wrong")

        late = await ScoringService.toggle_star(db_session, live_match.match_id, slot_id, live_match.seat(1), True)
        assert late.error_kind == "precondition"

        await BuzzerService.trigger_buzzer(db_session, live_match.match_id, live_match.seat(2))
        result = await ScoringService.record_decision(
            db_session, live_match.match_id, live_match.seat(2), "correct"
        )
        assert result.data["transferred"] == -20
        assert await total_of(db_session, live_match.match_id, live_match.seat(1)) == 20

    async def test_star_after_a_miss_is_refused_once_hidden(self, db_session, live_match):
        slot_id = await finish_question(db_session, live_match, seat=1, star=False)
        await ScoringService.record_decision(db_session, live_match.match_id, live_match.seat(1), "wrong")
        await ControlService.set_question_state(db_session, live_match.match_id, "hidden")

        late = await ScoringService.toggle_star(db_session, live_match.match_id, slot_id, live_match.seat(1), True)
        assert late.error_kind == "precondition"
        assert "before the question is shown" in late.message

    async def test_star_refused_while_showing(self, db_session, live_match):
        slot_id = await finish_question(db_session, live_match, seat=1, star=False)

        result = await ScoringService.toggle_star(
            db_session, live_match.match_id, slot_id, live_match.seat(1), True
        )
        assert result.error_kind == "precondition"
        stars = await db_session.execute(select(func.count(StarUse.id)).where(StarUse.match_id == live_match.match_id))
        assert stars.scalar() == 0

    async def test_star_only_on_own_questions(self, db_session, live_match):
        await ControlService.set_round(db_session, live_match.match_id, "finish")
        picked = await PackageService.select_package(
            db_session, live_match.match_id, live_match.seat(1), [30, 20, 20]
        )
        slot_id = picked.data["slots"][0]["id"]

        result = await ScoringService.toggle_star(
            db_session, live_match.match_id, slot_id, live_match.seat(2), True
        )
        assert result.error_kind == "precondition"
        assert result.message == "Stars can only be placed on your own questions."


@pytest.mark.asyncio
class TestFinishSteal:

    async def test_steal_takes_the_points_from_the_owner(self, db_session, live_match):
        await ScoringService.manual_adjust(
            db_session, live_match.match_id, live_match.seat(1), "finish", 40, "carry over"
        )
        await finish_question(db_session, live_match, seat=1, values=(20, 20, 20), star=False)
        missed = await ScoringService.record_decision(
            db_session, live_match.match_id, live_match.seat(1), "wrong"
        )
        assert missed.data["steal_window"] is True

        steal = await BuzzerService.trigger_buzzer(db_session, live_match.match_id, live_match.seat(2))
        assert steal.ok and steal.data["event_type"] == "steal" and steal.data["won"] is True

        result = await ScoringService.record_decision(
            db_session, live_match.match_id, live_match.seat(2), "correct"
        )
        assert result.ok, result.message
        assert result.data["delta"] == 20
        assert result.data["transferred"] == -20
        assert await total_of(db_session, live_match.match_id, live_match.seat(1)) == 20

    async def test_no_transfer_when_the_owner_used_the_star(self, db_session, live_match):
        await ScoringService.manual_adjust(
            db_session, live_match.match_id, live_match.seat(1), "finish", 50, "carry over"
        )
        await finish_question(db_session, live_match, seat=1)
        await ScoringService.record_decision(db_session, live_match.match_id, live_match.seat(1), "wrong")
        await BuzzerService.trigger_buzzer(db_session, live_match.match_id, live_match.seat(3))

        result = await ScoringService.record_decision(
            db_session, live_match.match_id, live_match.seat(3), "correct"
        )
        assert result.data["delta"] == 30
        assert result.data["transferred"] == 0
        assert await total_of(db_session, live_match.match_id, live_match.seat(1)) == 20

    async def test_wrong_steal_costs_half(self, db_session, live_match):
        await ScoringService.manual_adjust(
            db_session, live_match.match_id, live_match.seat(2), "finish", 40, "carry over"
        )
        await finish_question(db_session, live_match, seat=1, star=False)
        await ScoringService.record_decision(db_session, live_match.match_id, live_match.seat(1), "wrong")
        await BuzzerService.trigger_buzzer(db_session, live_match.match_id, live_match.seat(2))

        result = await ScoringService.record_decision(
            db_session, live_match.match_id, live_match.seat(2), "wrong"
        )
        assert result.data["delta"] == -15

    async def test_owner_cannot_steal(self, db_session, live_match):
        await finish_question(db_session, live_match, seat=1, star=False)
        await ScoringService.record_decision(db_session, live_match.match_id, live_match.seat(1), "wrong")

        result = await BuzzerService.trigger_buzzer(db_session, live_match.match_id, live_match.seat(1))
        assert not result.ok
        assert "own question" in result.message

    async def test_steal_buzz_after_the_window(self, db_session, live_match, frozen_clock):
        await finish_question(db_session, live_match, seat=1, star=False)
        await ScoringService.record_decision(db_session, live_match.match_id, live_match.seat(1), "wrong")
        frozen_clock.advance(60_000)

        result = await BuzzerService.trigger_buzzer(db_session, live_match.match_id, live_match.seat(2))
        assert not result.ok
        assert "closed" in result.message


@pytest.mark.asyncio
class TestFinishGuards:

    async def test_question_without_a_value_is_not_scored(self, db_session, live_match):
        slot_id = await finish_question(db_session, live_match, seat=1, star=False)
        slot = await db_session.get(RoundQuestion, slot_id)
        slot.value = None
        await db_session.commit()
        before = await change_count(db_session, live_match.match_id)

        result = await ScoringService.record_decision(
            db_session, live_match.match_id, live_match.seat(1), "correct"
        )

        assert result.error_kind == "precondition"
        assert result.message == "This finish question has no value yet."
        assert await change_count(db_session, live_match.match_id) == before
        assert await total_of(db_session, live_match.match_id, live_match.seat(1)) == 0

    async def test_value_must_be_twenty_or_thirty(self, db_session, live_match):
        slot_id = await finish_question(db_session, live_match, seat=1, star=False)
        for value in (None, 0, 25):
            result = await ScoringService.set_finish_value(db_session, live_match.match_id, slot_id, value)
            assert result.error_kind == "validation"

    async def test_decision_on_a_hidden_question_is_refused(self, db_session, live_match):
        await finish_question(db_session, live_match, seat=1, star=False)
        await ControlService.set_question_state(db_session, live_match.match_id, "hidden")
        before = await change_count(db_session, live_match.match_id)

        result = await ScoringService.record_decision(
            db_session, live_match.match_id, live_match.seat(1), "wrong"
        )

        assert result.error_kind == "precondition"
        assert await change_count(db_session, live_match.match_id) == before
        live_session = await live_context.get_session(db_session, live_match.match_id, lock=False)
        assert live_session.question_state == QuestionState.HIDDEN.value
        assert live_session.timer_deadline is None

    async def test_steal_window_needs_a_shown_question(self, db_session, live_match):
        await finish_question(db_session, live_match, seat=1, star=False)
        await ControlService.set_question_state(db_session, live_match.match_id, "hidden")

        result = await ControlService.open_steal_window(db_session, live_match.match_id)

        assert result.error_kind == "precondition"
        assert result.message == "The display cannot go from hidden to answer_revealed."


@pytest.mark.asyncio
class TestStealAnswers:

    async def open_steal(self, db, live, winner_seat=None):
        await finish_question(db, live, seat=1, star=False)
        missed = await ScoringService.record_decision(db, live.match_id, live.seat(1), "wrong")
        assert missed.data["steal_window"] is True
        if winner_seat is not None:
            won = await BuzzerService.trigger_buzzer(db, live.match_id, live.seat(winner_seat))
            assert won.data["won"] is True

    async def test_winner_answers_once(self, db_session, live_match):
        await self.open_steal(db_session, live_match, winner_seat=2)

        first = await AnswerService.submit_answer(db_session, live_match.match_id, live_match.seat(2), "Hanoi")
        second = await AnswerService.submit_answer(db_session, live_match.match_id, live_match.seat(2), "Hue")

        assert first.ok, first.message
        assert second.error_kind == "precondition"
        assert second.message == "Only one steal answer is accepted."

    async def test_only_the_steal_winner_may_answer(self, db_session, live_match):
        await self.open_steal(db_session, live_match, winner_seat=2)

        result = await AnswerService.submit_answer(db_session, live_match.match_id, live_match.seat(3), "Hanoi")

        assert result.error_kind == "precondition"
        assert result.message == "Only the contestant who won the steal may answer."

    async def test_nobody_answers_before_a_steal_buzz(self, db_session, live_match):
        await self.open_steal(db_session, live_match)

        result = await AnswerService.submit_answer(db_session, live_match.match_id, live_match.seat(2), "Hanoi")

        assert result.error_kind == "precondition"
        answers = await db_session.execute(
            select(func.count(Answer.id)).where(
                Answer.match_id == live_match.match_id, Answer.player_id == live_match.seat(2)
            )
        )
        assert answers.scalar() == 0


# =============================================================================
# Speed round
# =============================================================================

@pytest.mark.asyncio
class TestSpeedRound:

    async def show_speed(self, db, live, code="TT-1"):
        await ControlService.set_round(db, live.match_id, "speed")
        ids = await question_ids(db, live.match_id, RoundType.SPEED)
        await NavigationService.select_question(db, live.match_id, ids[code])
        return ids[code]

    async def test_answers_are_graded_loosely(self, db_session, live_match):
        await self.show_speed(db_session, live_match)
        result = await AnswerService.submit_answer(
            db_session, live_match.match_id, live_match.seat(1), "  đà  LẠT "
        )
        answer = await db_session.get(Answer, result.data["answer_id"])
        assert answer.is_correct is True

    async def test_awards_by_submission_time(self, db_session, live_match, frozen_clock):
        await self.show_speed(db_session, live_match)
        frozen_clock.advance(1000)
        await AnswerService.submit_answer(db_session, live_match.match_id, live_match.seat(3), "Da Lat")
        frozen_clock.advance(5)
        await AnswerService.submit_answer(db_session, live_match.match_id, live_match.seat(1), "da lat")
        frozen_clock.advance(500)
        await AnswerService.submit_answer(db_session, live_match.match_id, live_match.seat(2), "Vung Tau")
        frozen_clock.advance(500)
        await AnswerService.submit_answer(db_session, live_match.match_id, live_match.seat(4), "ĐÀ LẠT")

        result = await ScoringService.auto_score_speed(db_session, live_match.match_id)

        assert result.ok, result.message
        deltas = {item["player_id"]: item["delta"] for item in result.data["results"]}
        assert deltas == {live_match.seat(3): 40, live_match.seat(1): 40, live_match.seat(4): 20}

    async def test_response_time_counts_from_the_epoch(self, db_session, live_match, frozen_clock):
        await self.show_speed(db_session, live_match)
        frozen_clock.advance(2500)
        result = await AnswerService.submit_answer(
            db_session, live_match.match_id, live_match.seat(1), "Da Lat"
        )
        assert result.data["response_time_ms"] == 2500

    async def test_cannot_grade_twice(self, db_session, live_match):
        await self.show_speed(db_session, live_match)
        await AnswerService.submit_answer(db_session, live_match.match_id, live_match.seat(1), "Da Lat")
        assert (await ScoringService.auto_score_speed(db_session, live_match.match_id)).ok

        again = await ScoringService.auto_score_speed(db_session, live_match.match_id)
        assert again.error_kind == "precondition"

    async def test_batch_in_moderator_order(self, db_session, live_match):
        await self.show_speed(db_session, live_match, code="TT-2")
        result = await ScoringService.record_decisions_batch(db_session, live_match.match_id, [
            {"player_id": live_match.seat(2), "decision": "correct"},
            {"player_id": live_match.seat(1), "decision": "wrong"},
            {"player_id": live_match.seat(4), "decision": "correct"},
        ])
        assert result.ok, result.message
        assert [item["delta"] for item in result.data["results"]] == [40, 0, 30]

    async def test_batch_rejects_duplicates(self, db_session, live_match):
        await self.show_speed(db_session, live_match)
        result = await ScoringService.record_decisions_batch(db_session, live_match.match_id, [
            {"player_id": live_match.seat(2), "decision": "correct"},
            {"player_id": live_match.seat(2), "decision": "wrong"},
        ])
        assert result.error_kind == "validation"

    async def test_single_decision_is_refused(self, db_session, live_match):
        await self.show_speed(db_session, live_match)
        result = await ScoringService.record_decision(
            db_session, live_match.match_id, live_match.seat(1), "correct"
        )
        assert result.error_kind == "precondition"

    async def test_late_answer_after_timer(self, db_session, live_match, frozen_clock):
        await self.show_speed(db_session, live_match)
        started = await ControlService.start_timer(db_session, live_match.match_id)
        assert started.data["duration_seconds"] == 10
        frozen_clock.advance(11_000)

        result = await AnswerService.submit_answer(
            db_session, live_match.match_id, live_match.seat(1), "Da Lat"
        )
        assert result.message == "Time is up."


# =============================================================================
# Obstacle round
# =============================================================================

@pytest.mark.asyncio
class TestObstacle:

    async def decide_row(self, db, live, code, seat, decision):
        ids = await question_ids(db, live.match_id, RoundType.OBSTACLE)
        await NavigationService.select_question(db, live.match_id, ids[code])
        result = await ScoringService.record_decision(db, live.match_id, live.seat(seat), decision)
        assert result.ok, result.message
        return result

    async def test_keyword_after_two_rows(self, db_session, live_match):
        await ControlService.set_round(db_session, live_match.match_id, "obstacle")
        row = await self.decide_row(db_session, live_match, "VCNV-1", 1, "correct")
        assert row.data["delta"] == 10
        await self.decide_row(db_session, live_match, "VCNV-2", 2, "wrong")

        guess = await AnswerService.submit_obstacle_guess(
            db_session, live_match.match_id, live_match.seat(3), "Ngũ Hành"
        )
        assert guess.ok, guess.message
        result = await ScoringService.confirm_obstacle_guess(
            db_session, live_match.match_id, guess.data["answer_id"], "correct"
        )

        assert result.ok, result.message
        assert result.data["resolved_rows"] == 2
        assert result.data["delta"] == 40
        ids = await question_ids(db_session, live_match.match_id, RoundType.OBSTACLE)
        assert set(result.data["revealed"]) == {ids["VCNV-3"], ids["VCNV-4"], ids["VCNV-OTT"]}
        reveals = await db_session.execute(
            select(func.count(Answer.id)).where(Answer.kind == AnswerKind.REVEAL.value)
        )
        assert reveals.scalar() == 3

    async def test_wrong_keyword_disqualifies(self, db_session, live_match):
        await ControlService.set_round(db_session, live_match.match_id, "obstacle")
        guess = await AnswerService.submit_obstacle_guess(
            db_session, live_match.match_id, live_match.seat(2), "Tứ Quý"
        )
        result = await ScoringService.confirm_obstacle_guess(
            db_session, live_match.match_id, guess.data["answer_id"], "wrong"
        )

        assert result.data["disqualified"] is True
        player = await reload_player(db_session, live_match.seat(2))
        assert player.is_disqualified_obstacle is True
        again = await AnswerService.submit_obstacle_guess(
            db_session, live_match.match_id, live_match.seat(2), "Ngũ Hành"
        )
        assert again.error_kind == "precondition"

    async def test_wrong_buzz_winner_is_out(self, db_session, live_match):
        await ControlService.set_round(db_session, live_match.match_id, "obstacle")
        ids = await question_ids(db_session, live_match.match_id, RoundType.OBSTACLE)
        await NavigationService.select_question(db_session, live_match.match_id, ids["VCNV-1"])
        await BuzzerService.trigger_buzzer(db_session, live_match.match_id, live_match.seat(4))

        result = await ScoringService.record_decision(
            db_session, live_match.match_id, live_match.seat(4), "wrong"
        )
        assert result.data["disqualified"] is True
        blocked = await BuzzerService.trigger_buzzer(db_session, live_match.match_id, live_match.seat(4))
        assert not blocked.ok

    async def test_new_round_lifts_disqualification(self, db_session, live_match):
        await ControlService.set_round(db_session, live_match.match_id, "obstacle")
        guess = await AnswerService.submit_obstacle_guess(
            db_session, live_match.match_id, live_match.seat(2), "wrong"
        )
        await ScoringService.confirm_obstacle_guess(
            db_session, live_match.match_id, guess.data["answer_id"], "wrong"
        )
        await ControlService.set_round(db_session, live_match.match_id, "obstacle")

        player = await reload_player(db_session, live_match.seat(2))
        assert player.is_disqualified_obstacle is False


# =============================================================================
# Manual corrections, undo, ledger floor
# =============================================================================

@pytest.mark.asyncio
class TestManualCorrections:

    async def test_set_total_raise_books_the_manual_row(self, db_session, live_match):
        player_id = live_match.seat(1)
        await ScoringService.manual_adjust(db_session, live_match.match_id, player_id, "opening", 35, "warm-up")

        result = await ScoringService.set_total(db_session, live_match.match_id, player_id, 50, "judge ruling")

        assert result.ok, result.message
        assert result.data["delta"] == 15
        board = await ScoringService.scoreboard(db_session, live_match.match_id)
        row = next(entry for entry in board if entry["player_id"] == player_id)
        assert row["rounds"] == {"opening": 35, "manual": 15}

    async def test_set_total_cut_takes_from_the_rounds(self, db_session, live_match):
        player_id = live_match.seat(1)
        await ScoringService.manual_adjust(db_session, live_match.match_id, player_id, "opening", 35, "warm-up")

        result = await ScoringService.set_total(db_session, live_match.match_id, player_id, 20, "judge ruling")

        assert result.ok, result.message
        assert result.data["requested_delta"] == -15
        assert result.data["delta"] == -15
        assert result.data["new_total"] == 20
        board = await ScoringService.scoreboard(db_session, live_match.match_id)
        row = next(entry for entry in board if entry["player_id"] == player_id)
        assert row["rounds"] == {"opening": 20}

    async def test_set_total_cut_drains_the_manual_row_first(self, db_session, live_match):
        player_id = live_match.seat(2)
        await ScoringService.manual_adjust(db_session, live_match.match_id, player_id, "opening", 20, "warm-up")
        await ScoringService.manual_adjust(db_session, live_match.match_id, player_id, "speed", 10, "warm-up")
        await ScoringService.set_total(db_session, live_match.match_id, player_id, 40, "bonus")

        result = await ScoringService.set_total(db_session, live_match.match_id, player_id, 15, "correction")

        assert result.data["rounds"] == {"manual": 0, "speed": 0, "opening": 15}
        board = await ScoringService.scoreboard(db_session, live_match.match_id)
        row = next(entry for entry in board if entry["player_id"] == player_id)
        assert row["rounds"] == {"opening": 15, "speed": 0, "manual": 0}
        assert row["total"] == 15

    async def test_no_row_goes_negative_after_a_forced_zero(self, db_session, live_match):
        player_id = live_match.seat(3)
        await ScoringService.manual_adjust(db_session, live_match.match_id, player_id, "opening", 10, "seed")
        await ScoringService.set_total(db_session, live_match.match_id, player_id, 0, "reset to zero")

        result = await ScoringService.manual_adjust(
            db_session, live_match.match_id, player_id, "opening", -5, "penalty"
        )

        assert result.data["delta"] == 0
        rows = await db_session.execute(
            select(MatchScore.points).where(
                MatchScore.match_id == live_match.match_id, MatchScore.player_id == player_id
            )
        )
        assert all(points >= 0 for points in rows.scalars().all())
        assert await total_of(db_session, live_match.match_id, player_id) == 0

    async def test_set_total_needs_a_reason(self, db_session, live_match):
        player_id = live_match.seat(1)
        await ScoringService.manual_adjust(db_session, live_match.match_id, player_id, "opening", 35, "warm-up")
        before = await change_count(db_session, live_match.match_id)

        result = await ScoringService.set_total(db_session, live_match.match_id, player_id, 20, "  ")

        assert result.error_kind == "validation"
        assert await change_count(db_session, live_match.match_id) == before
        assert await total_of(db_session, live_match.match_id, player_id) == 35

    async def test_adjust_bounds(self, db_session, live_match):
        for delta in (0, 501, -501):
            result = await ScoringService.manual_adjust(
                db_session, live_match.match_id, live_match.seat(1), "opening", delta, "bounds"
            )
            assert result.error_kind == "validation"

    async def test_floor_reports_applied_delta(self, db_session, live_match):
        player_id = live_match.seat(2)
        await ScoringService.manual_adjust(db_session, live_match.match_id, player_id, "speed", 10, "seed")

        result = await ScoringService.manual_adjust(
            db_session, live_match.match_id, player_id, "speed", -25, "penalty"
        )
        assert result.data["requested_delta"] == -25
        assert result.data["delta"] == -10
        assert await total_of(db_session, live_match.match_id, player_id) == 0

    async def test_undo_reverses_once(self, db_session, live_match):
        player_id = live_match.seat(3)
        await ScoringService.manual_adjust(db_session, live_match.match_id, player_id, "opening", 15, "typo")

        undone = await ScoringService.undo_last(db_session, live_match.match_id, created_by="host-1")
        assert undone.ok
        assert undone.data["delta"] == -15
        assert await total_of(db_session, live_match.match_id, player_id) == 0

        nothing = await ScoringService.undo_last(db_session, live_match.match_id)
        assert nothing.message == "Nothing to undo."

    async def test_undo_resets_the_answer_points(self, db_session, live_match):
        await ControlService.set_round(db_session, live_match.match_id, "opening")
        ids = await question_ids(db_session, live_match.match_id, RoundType.OPENING)
        await NavigationService.select_question(db_session, live_match.match_id, ids["KD1-1"])
        decided = await ScoringService.record_decision(
            db_session, live_match.match_id, live_match.seat(1), "correct"
        )
        assert decided.data["delta"] == 10

        await ScoringService.undo_last(db_session, live_match.match_id)
        result = await db_session.execute(
            select(Answer.points_awarded).where(Answer.round_question_id == ids["KD1-1"])
        )
        assert result.scalar_one() == 0

    async def test_reset_session_state(self, db_session, live_match):
        await ScoringService.manual_adjust(
            db_session, live_match.match_id, live_match.seat(1), "opening", 30, "rehearsal"
        )
        result = await ScoringService.reset_session_state(db_session, live_match.match_id)

        assert result.ok
        assert await total_of(db_session, live_match.match_id, live_match.seat(1)) == 0
        assert await change_count(db_session, live_match.match_id) == 0
