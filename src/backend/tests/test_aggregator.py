import json

import pytest

from app.agent.aggregator import (
    GradingSession,
    StreamingAggregator,
    compute_aggregate,
    format_sse,
)
from app.exceptions import ConfigurationError
from app.models.schemas import (
    AverageEvent,
    BackendFailure,
    BackendSuccess,
    DoneEvent,
    ErrorEvent,
    Grade,
    GradeEvent,
    Verdict,
    grade_for_score,
)
from conftest import verdict_json


async def _events(aggregator, request):
    return [event async for event in aggregator.stream(request)]


class TestAggregateMath:
    @pytest.mark.parametrize(
        "score, grade",
        [
            (100, Grade.STRONG),
            (75, Grade.STRONG),
            (74, Grade.MODERATE),
            (50, Grade.MODERATE),
            (49, Grade.WEAK),
            (25, Grade.WEAK),
            (24, Grade.INSUFFICIENT),
            (0, Grade.INSUFFICIENT),
        ],
    )
    def test_thresholds(self, score, grade):
        assert grade_for_score(score) == grade

    @pytest.mark.parametrize(
        "scores, expected",
        [
            ([80], 80),
            ([80, 45], 63),
            ([70, 71, 71], 71),
            ([0, 1], 1),
            ([100, 100, 99], 100),
        ],
    )
    def test_rounded_mean(self, scores, expected):
        aggregate = compute_aggregate(scores, total_expected=5)
        assert aggregate.score == expected
        assert aggregate.grade == grade_for_score(expected)
        assert aggregate.success_count == len(scores)
        assert aggregate.total_expected == 5

    def test_no_successes(self):
        assert compute_aggregate([], total_expected=3) is None


class TestGradingSession:
    def test_ignores_duplicates_and_strangers(self, make_backends):
        session = GradingSession(make_backends("a", "b"))
        first = BackendFailure(backend_id="a", display_name="A", error="boom")
        again = BackendSuccess(
            backend_id="a",
            display_name="A",
            verdict=Verdict(grade=Grade.STRONG, score=90),
        )
        stranger = BackendFailure(backend_id="z", display_name="Z", error="boom")

        assert session.record(first) is True
        assert session.record(again) is False
        assert session.record(stranger) is False
        assert session.results == [first]
        assert not session.is_complete
        assert session.aggregate() is None


class TestStream:
    @pytest.mark.asyncio
    async def test_event_order_follows_completion(
        self, fake, make_backends, make_dispatcher, evaluation_request
    ):
        fake.script("a", verdict_json(score=40), delay=0.4)
        fake.script("b", verdict_json(score=80), delay=0.0)
        fake.script("c", verdict_json(score=60), delay=0.2)
        aggregator = StreamingAggregator(make_dispatcher(make_backends("a", "b", "c")))

        events = await _events(aggregator, evaluation_request)

        assert [e.type for e in events] == [
            "grade", "average", "grade", "average", "grade", "average", "done",
        ]
        assert [e.backend_id for e in events if isinstance(e, GradeEvent)] == ["b", "c", "a"]
        averages = [e for e in events if isinstance(e, AverageEvent)]
        assert [(a.score, a.success_count) for a in averages] == [(80, 1), (70, 2), (60, 3)]
        assert [a.grade for a in averages] == [Grade.STRONG, Grade.MODERATE, Grade.MODERATE]
        assert all(a.total_expected == 3 for a in averages)
        done = events[-1]
        assert isinstance(done, DoneEvent)
        assert (done.completed_count, done.failed_count, done.failed_backends) == (3, 0, [])

    @pytest.mark.asyncio
    async def test_one_failure_among_four(
        self, fake, make_backends, make_dispatcher, evaluation_request
    ):
        fake.script("a", verdict_json(score=90))
        fake.script("b", status=500, delay=0.05)
        fake.script("c", verdict_json(score=70), delay=0.1)
        fake.script("d", verdict_json(score=50), delay=0.15)
        aggregator = StreamingAggregator(make_dispatcher(make_backends("a", "b", "c", "d")))

        events = await _events(aggregator, evaluation_request)

        errors = [e for e in events if isinstance(e, ErrorEvent)]
        grades = [e for e in events if isinstance(e, GradeEvent)]
        assert len(errors) == 1
        assert errors[0].backend_id == "b"
        assert errors[0].display_name == "Backend B"
        assert "500" in errors[0].message
        assert len(grades) == 3
        # An error is never followed by an average.
        index = events.index(errors[0])
        assert not isinstance(events[index + 1], AverageEvent)
        done = events[-1]
        assert (done.completed_count, done.failed_count) == (3, 1)
        assert done.failed_backends == ["Backend B"]

    @pytest.mark.asyncio
    async def test_all_failed(self, fake, make_backends, make_dispatcher, evaluation_request):
        fake.script("a", status=401)
        fake.script("b", "no idea")
        aggregator = StreamingAggregator(make_dispatcher(make_backends("a", "b")))

        events = await _events(aggregator, evaluation_request)

        assert [e.type for e in events] == ["error", "error", "done"]
        assert events[-1].completed_count == 0
        assert sorted(events[-1].failed_backends) == ["Backend A", "Backend B"]

    @pytest.mark.asyncio
    async def test_replay_reconstructs_results(
        self, fake, make_backends, make_dispatcher, evaluation_request
    ):
        fake.script("a", verdict_json("strong", 88))
        fake.script("b", verdict_json("weak", 33), delay=0.05)
        fake.script("c", status=502, delay=0.1)
        aggregator = StreamingAggregator(make_dispatcher(make_backends("a", "b", "c")))

        events = await _events(aggregator, evaluation_request)

        grades = [e for e in events if isinstance(e, GradeEvent)]
        last_average = [e for e in events if isinstance(e, AverageEvent)][-1]
        replayed = compute_aggregate([g.score for g in grades], total_expected=3)
        assert replayed == last_average.to_aggregate()

    @pytest.mark.asyncio
    async def test_preflight_failure_calls_nothing(
        self, fake, make_backends, make_dispatcher, evaluation_request
    ):
        aggregator = StreamingAggregator(make_dispatcher(make_backends("a")))
        empty = evaluation_request.model_copy(update={"evidence_text": ""})

        with pytest.raises(ConfigurationError):
            await _events(aggregator, empty)
        assert fake.requests == []

    @pytest.mark.asyncio
    async def test_collect(self, fake, make_backends, make_dispatcher, evaluation_request):
        fake.script("a", verdict_json(score=80))
        fake.script("b", status=500)
        aggregator = StreamingAggregator(make_dispatcher(make_backends("a", "b")))

        summary = await aggregator.collect(evaluation_request)

        assert [g.backend_id for g in summary.grades] == ["a"]
        assert [f.backend_id for f in summary.failures] == ["b"]
        assert summary.average.score == 80
        assert summary.average.success_count == 1


def test_sse_frame():
    event = GradeEvent(
        backend_id="a",
        display_name="Backend A",
        grade=Grade.WEAK,
        score=30,
        feedback="Thin.",
        suggestions=["More"],
    )
    frame = format_sse(event)

    assert frame.startswith("data: ")
    assert frame.endswith("\n\n")
    payload = json.loads(frame[len("data: "):])
    assert payload == {
        "type": "grade",
        "backendId": "a",
        "displayName": "Backend A",
        "grade": "weak",
        "score": 30,
        "feedback": "Thin.",
        "suggestions": ["More"],
    }
