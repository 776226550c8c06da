import pytest

from src.engine.messages import IDLE_GAP_MESSAGE
from src.engine.status import (
    StatusEngine,
    classify_arrival,
    classify_pre_arrival,
    compute_phase,
)
from src.models.enums import StepPhase, StepState
from tests.factories import T0, at, make_position, make_step

OUTSIDE = 200  # metres from the step, geofence is 150
INSIDE = 20


def _engine(*steps):
    return StatusEngine(list(steps), geofence_radius=150)


def _eval(engine, step, minutes, meters):
    return engine.evaluate(step, at(minutes), make_position(meters, timestamp=at(minutes)))


class TestComputePhase:
    def test_before_start(self):
        assert compute_phase(make_step(), at(-1)) == StepPhase.BEFORE_START

    def test_in_progress_at_start(self):
        assert compute_phase(make_step(), T0) == StepPhase.IN_PROGRESS

    def test_in_progress_at_end(self):
        assert compute_phase(make_step(scheduled_end=at(30)), at(30)) == StepPhase.IN_PROGRESS

    def test_completed_after_end(self):
        assert compute_phase(make_step(scheduled_end=at(30)), at(31)) == StepPhase.COMPLETED

    def test_default_two_hour_window(self):
        assert compute_phase(make_step(), at(121)) == StepPhase.COMPLETED


class TestClassifiers:
    @pytest.mark.parametrize(
        ("delta", "expected"),
        [
            (-10.01, StepState.UPCOMING),
            (-10, StepState.EN_ROUTE),
            (15, StepState.EN_ROUTE),
            (15.01, StepState.LATE),
        ],
    )
    def test_pre_arrival(self, delta, expected):
        assert classify_pre_arrival(delta) == expected

    @pytest.mark.parametrize(
        ("delta", "expected"),
        [
            (-15, StepState.EARLY),
            (-14.99, StepState.ON_TIME),
            (10, StepState.ON_TIME),
            (10.01, StepState.LATE),
        ],
    )
    def test_arrival(self, delta, expected):
        assert classify_arrival(delta) == expected


class TestPreArrival:
    def test_upcoming_twenty_minutes_before(self):
        step = make_step()
        result = _eval(_engine(step), step, -20, OUTSIDE)
        assert result.status.status == StepState.UPCOMING
        assert result.status.delta_minutes is None
        assert result.inside is False
        assert result.distance_meters == pytest.approx(200, abs=1e-6)

    def test_en_route_five_minutes_before(self):
        step = make_step()
        result = _eval(_engine(step), step, -5, OUTSIDE)
        assert result.status.status == StepState.EN_ROUTE

    def test_late_locks_delta(self):
        step = make_step()
        engine = _engine(step)
        result = _eval(engine, step, 20, OUTSIDE)
        assert result.status.status == StepState.LATE
        assert result.status.delta_minutes == pytest.approx(20)
        assert result.status.actual_arrival_time is None

    def test_late_delta_not_recomputed(self):
        step = make_step()
        engine = _engine(step)
        _eval(engine, step, 20, OUTSIDE)
        result = _eval(engine, step, 40, OUTSIDE)
        assert result.status.status == StepState.LATE
        assert result.status.delta_minutes == pytest.approx(20)

    def test_progression_upcoming_en_route_late(self):
        step = make_step()
        engine = _engine(step)
        states = [_eval(engine, step, m, OUTSIDE).status.status for m in (-20, -5, 20)]
        assert states == [StepState.UPCOMING, StepState.EN_ROUTE, StepState.LATE]

    def test_geofence_edge_counts_as_inside(self):
        step = make_step()
        engine = StatusEngine([step], geofence_radius=150)
        result = _eval(engine, step, 0, 149.999)
        assert result.inside is True


class TestArrival:
    def test_early_arrival_locks_everything(self):
        step = make_step()
        engine = _engine(step)
        result = _eval(engine, step, -20, INSIDE)
        assert result.status.status == StepState.EARLY
        assert result.status.delta_minutes == pytest.approx(-20)
        assert result.status.actual_arrival_time == at(-20)

    def test_leave_and_return_keeps_early(self):
        step = make_step()
        engine = _engine(step)
        _eval(engine, step, -20, INSIDE)
        _eval(engine, step, -5, OUTSIDE)
        result = _eval(engine, step, 5, INSIDE)
        assert result.status.status == StepState.EARLY
        assert result.status.delta_minutes == pytest.approx(-20)
        assert result.status.actual_arrival_time == at(-20)

    def test_arrived_never_reverts_when_outside(self):
        step = make_step()
        engine = _engine(step)
        _eval(engine, step, 2, INSIDE)
        result = _eval(engine, step, 30, OUTSIDE)
        assert result.status.status == StepState.ON_TIME
        assert result.status.delta_minutes == pytest.approx(2)

    @pytest.mark.parametrize(
        ("minutes", "expected"),
        [
            (-15, StepState.EARLY),
            (-14.99, StepState.ON_TIME),
            (10, StepState.ON_TIME),
            (10.01, StepState.LATE),
        ],
    )
    def test_arrival_boundaries(self, minutes, expected):
        step = make_step()
        result = _eval(_engine(step), step, minutes, INSIDE)
        assert result.status.status == expected

    def test_first_evaluation_already_inside_is_arrival(self):
        step = make_step()
        engine = _engine(step)
        result = _eval(engine, step, 3, INSIDE)
        assert result.status.actual_arrival_time == at(3)
        assert result.status.status == StepState.ON_TIME

    def test_late_before_arrival_reclassified_on_arrival(self):
        step = make_step()
        engine = _engine(step)
        first = _eval(engine, step, 20, OUTSIDE)
        assert first.status.status == StepState.LATE

        result = _eval(engine, step, 25, INSIDE)
        assert result.status.status == StepState.LATE
        assert result.status.delta_minutes == pytest.approx(25)
        assert result.status.actual_arrival_time == at(25)


class TestPhaseAndPerforming:
    def test_performing_inside_during_window(self):
        step = make_step()
        result = _eval(_engine(step), step, 10, INSIDE)
        assert result.status.phase == StepPhase.IN_PROGRESS
        assert result.status.performing is True

    def test_not_performing_before_start(self):
        step = make_step()
        result = _eval(_engine(step), step, -20, INSIDE)
        assert result.status.performing is False

    def test_not_performing_outside(self):
        step = make_step()
        result = _eval(_engine(step), step, 10, OUTSIDE)
        assert result.status.performing is False

    def test_phase_moves_after_arrival(self):
        step = make_step(scheduled_end=at(30))
        engine = _engine(step)
        _eval(engine, step, -20, INSIDE)
        assert _eval(engine, step, 10, INSIDE).status.phase == StepPhase.IN_PROGRESS
        result = _eval(engine, step, 31, INSIDE)
        assert result.status.phase == StepPhase.COMPLETED
        assert result.status.performing is False
        assert result.status.status == StepState.EARLY


class TestWithoutPosition:
    def test_unknown_step_returns_none(self):
        step = make_step()
        assert _engine(step).evaluate(step, at(0), None) is None

    def test_status_untouched_phase_refreshed(self):
        step = make_step()
        engine = _engine(step)
        _eval(engine, step, -20, OUTSIDE)
        result = engine.evaluate(step, at(5), None)
        assert result.status.status == StepState.UPCOMING
        assert result.status.phase == StepPhase.IN_PROGRESS
        assert result.distance_meters is None

    def test_uses_last_known_geofence_membership(self):
        step = make_step()
        engine = _engine(step)
        _eval(engine, step, -1, INSIDE)
        result = engine.evaluate(step, at(5), None)
        assert result.inside is True
        assert result.status.performing is True

    def test_unscheduled_step_returns_none(self):
        step = make_step(scheduled_start=None)
        assert _eval(_engine(step), step, 0, INSIDE) is None


class TestIdleGapMessage:
    def test_idle_message_in_long_gap(self):
        prev = make_step(step_id="lunch", scheduled_start=at(-60), scheduled_end=at(0))
        current = make_step(step_id="museum", scheduled_start=at(120))
        engine = _engine(prev, current)
        result = _eval(engine, current, 30, OUTSIDE)
        assert result.status.message == IDLE_GAP_MESSAGE

    def test_idle_message_suppressed_near_start(self):
        prev = make_step(step_id="lunch", scheduled_start=at(-60), scheduled_end=at(0))
        current = make_step(step_id="museum", scheduled_start=at(120))
        engine = _engine(prev, current)
        result = _eval(engine, current, 110, OUTSIDE)
        assert result.status.status == StepState.EN_ROUTE
        assert result.status.message == "You're on the way. Starts in 10m 00s."


class TestCompleteStep:
    def test_forces_completed(self):
        step = make_step()
        engine = _engine(step)
        _eval(engine, step, 10, INSIDE)
        updated = engine.complete_step(step.step_id, "done")
        assert updated.phase == StepPhase.COMPLETED
        assert updated.performing is False
        assert updated.message == "done"
        assert updated.status == StepState.ON_TIME
        assert engine.get(step.step_id) == updated

    def test_unknown_step(self):
        assert _engine().complete_step("missing", "done") is None

    def test_reset(self):
        step = make_step()
        engine = _engine(step)
        _eval(engine, step, 10, INSIDE)
        engine.reset()
        assert engine.statuses == {}
        assert engine.was_inside(step.step_id) is False
