import random
import threading

import numpy as np
import pytest

from rps_service.core.errors import InvalidRegion, RoundError
from rps_service.core.gesture import CLASSES, Gesture, RoundOutcome
from rps_service.core.region import BoundingRegion
from rps_service.core.state_machine import RoundController, RoundState, Score

from conftest import (
    PROBA,
    BlockingClassifier,
    FailingClassifier,
    FakeLocator,
    FakeSource,
    FixedClassifier,
    make_image,
)


def make_controller(player=Gesture.ROCK, computer=Gesture.SCISSORS, source=None,
                    locator=None, classifier=None, **kwargs):
    return RoundController(
        source=source or FakeSource(make_image()),
        locator=locator if locator is not None else FakeLocator(),
        classifier=classifier or FixedClassifier(PROBA[player]),
        computer_strategy=lambda: computer,
        **kwargs
    )


def test_rock_beats_scissors():
    controller = make_controller(Gesture.ROCK, Gesture.SCISSORS)

    result = controller.play_round()

    assert result.outcome == RoundOutcome.WIN
    assert result.player.gesture == Gesture.ROCK
    assert result.computer == Gesture.SCISSORS
    assert controller.score == Score(player=1, computer=0, ties=0)
    assert controller.state == RoundState.IDLE
    assert not controller.in_flight


def test_paper_vs_paper_is_tie():
    controller = make_controller(Gesture.PAPER, Gesture.PAPER)

    result = controller.play_round()

    assert result.outcome == RoundOutcome.TIE
    assert controller.score == Score(player=0, computer=0, ties=1)


def test_loss_increments_computer():
    controller = make_controller(Gesture.SCISSORS, Gesture.ROCK)
    controller.play_round()
    assert controller.score == Score(player=0, computer=1, ties=0)


def test_no_hand_uses_center_fallback():
    locator = FakeLocator(region=None)
    controller = make_controller(locator=locator)

    result = controller.play_round()

    assert result is not None
    assert locator.calls == 1
    assert not result.hand_detected
    assert result.region == BoundingRegion.centered_square(320, 240, 0.6)


def test_detected_hand_region_is_used(hand_region):
    controller = make_controller(locator=FakeLocator(region=hand_region))

    result = controller.play_round()

    assert result.hand_detected
    assert result.region == hand_region


def test_locator_error_falls_back_to_center():
    controller = make_controller(locator=FakeLocator(error=RuntimeError("graph failed")))

    result = controller.play_round()

    assert result is not None
    assert not result.hand_detected


def test_degenerate_hand_region_falls_back_to_center():
    degenerate = BoundingRegion(0.5, 0.5, 0.0, 0.0)
    controller = make_controller(locator=FakeLocator(region=degenerate))

    result = controller.play_round()

    assert result is not None
    assert not result.hand_detected
    assert result.region.area > 0


def test_capture_failure_aborts_round():
    events = []
    controller = make_controller(source=FakeSource(image=None))
    controller.register_callback(events.append)

    assert controller.play_round() is None

    assert controller.score == Score()
    assert controller.state == RoundState.IDLE
    assert not controller.in_flight
    assert controller.rounds_played == 0

    aborted = [e for e in events if e.event_type == "aborted"]
    assert len(aborted) == 1
    assert aborted[0].data["error"] == "capture_unavailable"
    assert aborted[0].state == RoundState.CAPTURING


def test_inference_failure_aborts_round():
    controller = make_controller(classifier=FailingClassifier())

    assert controller.play_round() is None
    assert controller.score == Score()
    assert not controller.in_flight

    # 下一次触发可正常进行
    controller.classifier = FixedClassifier(PROBA[Gesture.PAPER])
    assert controller.play_round() is not None


def test_unusable_frame_aborts_round():
    empty = np.zeros((0, 0, 3), dtype=np.uint8)
    controller = make_controller(source=FakeSource(empty))

    assert controller.play_round() is None
    assert controller.score == Score()


def test_inactive_source_is_noop():
    source = FakeSource(make_image(), running=False)
    controller = make_controller(source=source)

    assert controller.play_round() is None
    assert source.reads == 0


def test_in_flight_guard_drops_second_trigger():
    classifier = BlockingClassifier(PROBA[Gesture.ROCK])
    controller = make_controller(classifier=classifier)
    results = []

    worker = threading.Thread(target=lambda: results.append(controller.play_round("timer")))
    worker.start()
    assert classifier.entered.wait(timeout=5.0)

    assert controller.in_flight
    assert controller.state == RoundState.CLASSIFYING
    assert controller.play_round("manual") is None

    classifier.release.set()
    worker.join(timeout=5.0)

    assert results[0] is not None
    assert controller.rounds_played == 1
    assert controller.score.total == 1
    assert len(classifier.inputs) == 1
    assert not controller.in_flight


def test_score_total_matches_resolved_rounds():
    rng = random.Random(42)
    controller = RoundController(
        source=FakeSource(make_image()),
        locator=FakeLocator(),
        classifier=FixedClassifier(PROBA[Gesture.PAPER]),
        rng=rng
    )
    sources = [FakeSource(make_image()), FakeSource(None)]

    for i in range(30):
        controller.source = sources[i % 3 == 0]
        controller.play_round()

    score = controller.score
    assert controller.rounds_played == 20
    assert score.player + score.computer + score.ties == controller.rounds_played
    assert min(score.player, score.computer, score.ties) >= 0


def test_default_strategy_draws_from_all_gestures():
    controller = RoundController(
        source=FakeSource(make_image()),
        locator=None,
        classifier=FixedClassifier(PROBA[Gesture.ROCK]),
        rng=random.Random(7)
    )
    moves = {controller.play_round().computer for _ in range(60)}
    assert moves == set(CLASSES)


def test_state_events_follow_round_order():
    events = []
    controller = make_controller()
    controller.register_callback(events.append)

    controller.play_round()

    states = [e.state for e in events if e.event_type == "state"]
    assert states == [RoundState.CAPTURING, RoundState.LOCATING, RoundState.CLASSIFYING,
                      RoundState.RESOLVED, RoundState.IDLE]
    assert {e.round_id for e in events} == {1}

    resolved = [e for e in events if e.event_type == "resolved"]
    assert len(resolved) == 1
    assert resolved[0].data["outcome"] == "win"
    assert resolved[0].data["score"] == {"player": 1, "computer": 0, "ties": 0}
    assert events.index(resolved[0]) == len(events) - 2
    assert events[-1].state == RoundState.IDLE


def test_aborted_round_returns_to_idle():
    events = []
    controller = make_controller(source=FakeSource(image=None))
    controller.register_callback(events.append)

    controller.play_round()

    assert [e.event_type for e in events][-2:] == ["aborted", "state"]
    assert events[-1].state == RoundState.IDLE


def test_callback_errors_do_not_break_round():
    def broken(event):
        raise RuntimeError("observer failed")

    controller = make_controller()
    controller.register_callback(broken)

    assert controller.play_round() is not None
    assert controller.score.player == 1


def test_returned_score_is_a_snapshot():
    controller = make_controller()
    result = controller.play_round()
    controller.play_round()

    assert result.score.player == 1
    assert controller.score.player == 2


def test_mismatched_input_size_rejected():
    with pytest.raises(ValueError):
        make_controller(classifier=FixedClassifier(PROBA[Gesture.ROCK], input_size=64),
                        input_size=16)


def test_preprocess_uses_classifier_size():
    classifier = FixedClassifier(PROBA[Gesture.ROCK], input_size=8)
    controller = make_controller(classifier=classifier)

    controller.play_round()

    assert classifier.inputs[0].shape == (1, 8, 8, 3)


def test_invalid_region_is_round_error():
    assert issubclass(InvalidRegion, RoundError)


def test_unexpected_backend_error_aborts_only_current_round():
    events = []
    classifier = FailingClassifier(error=RuntimeError("backend crashed"))
    controller = make_controller(classifier=classifier)
    controller.register_callback(events.append)

    assert controller.play_round("timer") is None
    assert controller.play_round("timer") is None

    assert classifier.calls == 2
    assert controller.score == Score()
    assert controller.state == RoundState.IDLE
    assert not controller.in_flight

    aborted = [e for e in events if e.event_type == "aborted"]
    assert [e.data["error"] for e in aborted] == ["inference_failure"] * 2
    assert "backend crashed" in aborted[0].data["message"]

    controller.classifier = FixedClassifier(PROBA[Gesture.ROCK])
    assert controller.play_round("timer") is not None
    assert controller.score.player == 1
