from src.engine.notifications import detect_notifications, format_punctuality
from src.models.enums import NotificationScenario, StepPhase, StepState
from tests.factories import at, make_step, make_step_status

STEP = make_step(step_id="act_louvre", place_name="Louvre Museum")


def _detect(previous, current):
    return detect_notifications(
        "trip_1", [STEP], {"act_louvre": previous} if previous else {}, {"act_louvre": current}
    )


def _scenarios(found):
    return [n.scenario for n in found]


class TestFormatPunctuality:
    def test_on_time(self):
        assert format_punctuality(StepState.ON_TIME, 4.0) == "On time"

    def test_late(self):
        assert format_punctuality(StepState.LATE, 22.4) == "Late +22m"

    def test_early(self):
        assert format_punctuality(StepState.EARLY, -18.0) == "Early -18m"

    def test_no_delta(self):
        assert format_punctuality(StepState.LATE, None) == "late"


class TestDetectNotifications:
    def test_became_late_without_arriving(self):
        prev = make_step_status(status=StepState.EN_ROUTE)
        nxt = make_step_status(status=StepState.LATE, delta_minutes=16.0)
        found = _detect(prev, nxt)
        assert _scenarios(found) == [NotificationScenario.LATE_NOT_ARRIVED]
        assert found[0].key == "trip_1:act_louvre:late_not_arrived"
        assert found[0].body == "You’re late for Louvre Museum."

    def test_still_late_is_silent(self):
        late = make_step_status(status=StepState.LATE, delta_minutes=16.0)
        assert _detect(late, late) == []

    def test_arrival(self):
        prev = make_step_status(status=StepState.EN_ROUTE)
        nxt = make_step_status(
            status=StepState.ON_TIME, actual_arrival_time=at(2), delta_minutes=2.0
        )
        found = _detect(prev, nxt)
        assert _scenarios(found) == [NotificationScenario.ARRIVED]
        assert found[0].title == "Arrived"
        assert found[0].body == "Louvre Museum — On time."

    def test_late_arrival_does_not_repeat_late_warning(self):
        prev = make_step_status(status=StepState.LATE, delta_minutes=16.0)
        nxt = make_step_status(
            status=StepState.LATE, actual_arrival_time=at(20), delta_minutes=20.0
        )
        found = _detect(prev, nxt)
        assert _scenarios(found) == [NotificationScenario.ARRIVED]
        assert found[0].body == "Louvre Museum — Late +20m."

    def test_started_performing(self):
        arrived = {"status": StepState.EARLY, "actual_arrival_time": at(-20), "delta_minutes": -20.0}
        prev = make_step_status(**arrived)
        nxt = make_step_status(**arrived, phase=StepPhase.IN_PROGRESS, performing=True)
        assert _scenarios(_detect(prev, nxt)) == [NotificationScenario.IN_PROGRESS]

    def test_completed(self):
        prev = make_step_status(phase=StepPhase.IN_PROGRESS)
        nxt = make_step_status(phase=StepPhase.COMPLETED)
        found = _detect(prev, nxt)
        assert _scenarios(found) == [NotificationScenario.COMPLETED]
        assert found[0].title == "Activity finished"

    def test_first_status_can_raise_several(self):
        nxt = make_step_status(
            status=StepState.ON_TIME,
            actual_arrival_time=at(1),
            delta_minutes=1.0,
            phase=StepPhase.IN_PROGRESS,
            performing=True,
        )
        assert _scenarios(_detect(None, nxt)) == [
            NotificationScenario.ARRIVED,
            NotificationScenario.IN_PROGRESS,
        ]

    def test_unknown_place_name(self):
        found = detect_notifications(
            "trip_1", [], {}, {"ghost": make_step_status(phase=StepPhase.COMPLETED)}
        )
        assert found[0].body == "activity has ended."
