"""Tests for the answer extraction strategies."""

import pytest

from markscan.grading.extraction import (
    BLANK,
    MULTIPLE,
    DarknessStrategy,
    HybridStrategy,
    QuestionReading,
    VisibilityStrategy,
    build_strategy,
    fuse_readings,
    resolve_darkness,
    resolve_visibility,
    sample_disc,
)
from markscan.grading.layout import OptionSpot, SheetLayout
from markscan.grading.settings import (
    ConflictPolicy,
    DarknessSettings,
    HybridSettings,
    MultipleAnswerPolicy,
    ScanMethod,
    ScanSettings,
    VisibilitySettings,
)

from conftest import render_frame

LAYOUT_3 = SheetLayout.for_questions(3)


class TestResolveDarkness:
    settings = DarknessSettings()

    def test_single_mark(self):
        reading = resolve_darkness(1, {"A": 0.0, "B": 0.8, "C": 0.05, "D": 0.0},
                                   self.settings, MultipleAnswerPolicy.BEST)

        assert reading.answer == "B"
        assert reading.confidence == pytest.approx(72.0)

    def test_weak_mark_above_minimum_fill(self):
        reading = resolve_darkness(1, {"A": 0.18, "B": 0.0, "C": 0.0, "D": 0.0},
                                   self.settings, MultipleAnswerPolicy.BEST)

        assert reading.answer == "A"
        assert reading.confidence == pytest.approx(10.8)

    def test_blank(self):
        reading = resolve_darkness(1, {"A": 0.1, "B": 0.0, "C": 0.0, "D": 0.0},
                                   self.settings, MultipleAnswerPolicy.BEST)

        assert reading.answer == BLANK
        assert reading.confidence == 0.0

    @pytest.mark.parametrize("policy, answer, confidence", [
        (MultipleAnswerPolicy.BEST, "C", 37.5),
        (MultipleAnswerPolicy.FIRST, "A", 22.5),
        (MultipleAnswerPolicy.REJECT, MULTIPLE, 0.0),
    ])
    def test_multiple_marks(self, policy, answer, confidence):
        reading = resolve_darkness(1, {"A": 0.3, "B": 0.0, "C": 0.5, "D": 0.1}, self.settings, policy)

        assert reading.answer == answer
        assert reading.confidence == pytest.approx(confidence)

    def test_best_keeps_first_on_ties(self):
        reading = resolve_darkness(1, {"A": 0.0, "B": 0.6, "C": 0.0, "D": 0.6},
                                   self.settings, MultipleAnswerPolicy.BEST)

        assert reading.answer == "B"


class TestResolveVisibility:
    settings = VisibilitySettings()

    def test_one_hidden_letter(self):
        reading = resolve_visibility(1, {"A": 100.0, "B": 30.0, "C": 95.0, "D": 100.0}, self.settings)

        assert reading.answer == "B"
        assert reading.confidence == pytest.approx(70.0)

    def test_most_hidden_wins(self):
        reading = resolve_visibility(1, {"A": 35.0, "B": 20.0, "C": 100.0, "D": 100.0}, self.settings)

        assert reading.answer == "B"
        assert reading.confidence == pytest.approx(80.0)

    def test_all_visible(self):
        reading = resolve_visibility(1, {"A": 100.0, "B": 60.0, "C": 95.0, "D": 41.0}, self.settings)

        assert reading.answer == BLANK
        assert reading.confidence == 0.0


class TestFuseReadings:
    def test_agreement_is_weighted(self):
        fused, note = fuse_readings(QuestionReading(1, "A", 80.0), QuestionReading(1, "A", 90.0),
                                    HybridSettings())

        assert fused.answer == "A"
        assert fused.confidence == pytest.approx(86.0)
        assert note is None

    def test_both_blank(self):
        fused, note = fuse_readings(QuestionReading(1, BLANK, 0.0), QuestionReading(1, BLANK, 0.0),
                                    HybridSettings())

        assert fused.answer == BLANK
        assert fused.confidence == 0.0
        assert note is None

    @pytest.mark.parametrize("policy, answer, confidence", [
        (ConflictPolicy.DARKNESS, "A", 56.0),
        (ConflictPolicy.VISIBILITY, "B", 49.0),
        (ConflictPolicy.CONFIDENCE, "A", 64.0),
    ])
    def test_disagreement(self, policy, answer, confidence):
        fused, note = fuse_readings(QuestionReading(3, "A", 80.0), QuestionReading(3, "B", 70.0),
                                    HybridSettings(conflict_policy=policy))

        assert fused.answer == answer
        assert fused.confidence == pytest.approx(confidence)
        assert note.startswith("Q3: disagreement")

    def test_confidence_tie_goes_to_visibility(self):
        fused, _ = fuse_readings(QuestionReading(1, "A", 50.0), QuestionReading(1, "D", 50.0),
                                 HybridSettings())

        assert fused.answer == "D"
        assert fused.confidence == pytest.approx(40.0)

    def test_measurements_are_kept_per_strategy(self):
        fused, _ = fuse_readings(QuestionReading(1, "A", 80.0, {"A": 0.9}),
                                 QuestionReading(1, "A", 90.0, {"A": 10.0}),
                                 HybridSettings())

        assert fused.measurements == {"darkness:A": 0.9, "visibility:A": 10.0}


class TestSampling:
    def test_disc_outside_frame_has_no_samples(self):
        frame = render_frame()
        spot = OptionSpot(1, "A", -50.0, -50.0, 5.0)

        assert sample_disc(frame.luminance, spot, 0.2).size == 0

    def test_out_of_bounds_spot_reads_as_unmarked(self):
        frame = render_frame()
        spots = [OptionSpot(1, "A", -50.0, -50.0, 5.0)]

        assert DarknessStrategy().measure(frame.luminance, spots) == {"A": 0.0}
        assert VisibilityStrategy().measure(frame.luminance, spots) == {"A": 100.0}


@pytest.mark.parametrize("strategy", [
    DarknessStrategy(),
    VisibilityStrategy(),
    HybridStrategy(DarknessStrategy(), VisibilityStrategy()),
])
def test_reads_marked_sheet(strategy):
    frame = render_frame(answers={1: "A", 2: "D"}, question_count=3)
    result = strategy.extract(frame, LAYOUT_3)

    assert result.answers == ["A", "D", BLANK]
    assert result.confidences[0] > 80
    assert result.confidences[2] == 0.0
    assert 0 <= result.confidence <= 100


@pytest.mark.parametrize("question_count", [1, 7, 20])
def test_one_answer_per_question(question_count):
    frame = render_frame(answers={1: "B"}, question_count=question_count)
    layout = SheetLayout.for_questions(question_count)

    for method in ScanMethod:
        strategy = build_strategy(ScanSettings().updated("general.method", method.value))
        result = strategy.extract(frame, layout)
        assert len(result.answers) == question_count
        assert result.answers[0] == "B"


def test_columns_are_read_right_to_left():
    # Question 1 sits in the rightmost column, question 2 in the middle one
    frame = render_frame(answers={1: "C", 2: "A", 3: "D", 4: "B"}, question_count=20)
    result = DarknessStrategy().extract(frame, SheetLayout())

    assert result.answers[:4] == ["C", "A", "D", "B"]
    spots = SheetLayout().option_spots(frame.width, frame.height)
    assert spots[0][0].x > spots[1][0].x > spots[2][0].x
    assert spots[3][0].x == spots[0][0].x


def test_multiple_marks_on_sheet_are_rejected():
    frame = render_frame(answers={1: ["A", "C"]}, question_count=3)
    strategy = DarknessStrategy(policy=MultipleAnswerPolicy.REJECT)

    assert strategy.extract(frame, LAYOUT_3).answers[0] == MULTIPLE


def test_darkness_is_idempotent():
    frame = render_frame(answers={1: "A", 2: "B", 3: "C"}, question_count=3)
    strategy = DarknessStrategy()

    first = strategy.extract(frame, LAYOUT_3)
    second = strategy.extract(frame, LAYOUT_3)

    assert first.answers == second.answers
    assert first.confidences == second.confidences
    assert first.trace == second.trace


def test_hybrid_trace_is_fusion_then_darkness_then_visibility():
    frame = render_frame(answers={1: "A"}, question_count=3)
    darkness, visibility = DarknessStrategy(), VisibilityStrategy()

    result = HybridStrategy(darkness, visibility).extract(frame, LAYOUT_3)
    a = darkness.extract(frame, LAYOUT_3)
    b = visibility.extract(frame, LAYOUT_3)

    assert result.trace[-len(b.trace):] == b.trace
    assert result.trace[-len(b.trace) - len(a.trace):-len(b.trace)] == a.trace
    assert result.trace[0].startswith("Q1: agreed: A")


def test_build_strategy_follows_settings():
    assert isinstance(build_strategy(ScanSettings()), DarknessStrategy)
    hybrid = build_strategy(ScanSettings().updated("general.method", "hybrid"))
    assert isinstance(hybrid, HybridStrategy)
    assert isinstance(hybrid.darkness, DarknessStrategy)
    assert isinstance(hybrid.visibility, VisibilityStrategy)
