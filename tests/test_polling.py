# test_polling.py
import pytest

from layernet.core.errors import AppCallError, ExtractionCancelled
from layernet.extraction.cancel import CancellationToken
from layernet.extraction.config import PollingConfig
from layernet.extraction.result import ExtractedNetwork
from layernet.extraction.service import SubmitPollService, poll_interval, poll_until


class FakeClock:
    """Clock advanced only by the fake ``sleep``."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


class CountingFetch:
    def __init__(self, ready_after, result="done", on_call=None):
        self.ready_after = ready_after
        self.result = result
        self.calls = 0
        self.on_call = on_call

    def __call__(self):
        self.calls += 1
        if self.on_call is not None:
            self.on_call(self.calls)
        return self.result if self.calls > self.ready_after else None


class Job(SubmitPollService):
    name = "fake job service"

    def __init__(self, polls, **kwargs):
        super().__init__(**kwargs)
        self.polls = polls
        self.submitted = []

    def submit(self, graph, query_sources, query_targets):
        self.submitted.append((graph, dict(query_sources), dict(query_targets)))
        return "job-1"

    def fetch(self, job):
        assert job == "job-1"
        self.polls -= 1
        if self.polls > 0:
            return None
        return ExtractedNetwork(["a_1"])


class TestPollInterval:
    def test_schedule(self):
        config = PollingConfig()
        assert poll_interval(0.0, config) == 1.0
        assert poll_interval(59.0, config) == 1.0
        assert poll_interval(60.0, config) == 10.0

    def test_config_bounds(self):
        with pytest.raises(ValueError):
            PollingConfig(initial_interval=0)


class TestPollUntil:
    def test_immediate_result(self):
        clock = FakeClock()
        assert poll_until(lambda: 42, sleep=clock.sleep, clock=clock) == 42
        assert clock.sleeps == []

    def test_backoff(self):
        clock = FakeClock()
        fetch = CountingFetch(ready_after=63)
        assert poll_until(fetch, sleep=clock.sleep, clock=clock) == "done"
        assert fetch.calls == 64
        assert clock.sleeps[:60] == [1.0] * 60
        assert clock.sleeps[60:] == [10.0] * 3

    def test_timeout(self):
        clock = FakeClock()
        config = PollingConfig(timeout=5.0)
        fetch = CountingFetch(ready_after=1000)
        with pytest.raises(AppCallError) as ctx:
            poll_until(fetch, config=config, sleep=clock.sleep, clock=clock)
        assert ctx.value.title == "Timeout"
        assert fetch.calls == 6
        assert ctx.value.details["attempts"] == 6

    def test_cancel_between_polls(self):
        clock = FakeClock()
        token = CancellationToken()

        def cancel_on_third(calls):
            if calls == 3:
                token.cancel()

        fetch = CountingFetch(ready_after=1000, on_call=cancel_on_third)
        with pytest.raises(ExtractionCancelled):
            poll_until(fetch, token=token, sleep=clock.sleep, clock=clock)
        assert fetch.calls == 3


class TestSubmitPollService:
    def test_submit_then_poll(self):
        clock = FakeClock()
        service = Job(polls=3, sleep=clock.sleep, clock=clock)
        net = service.extract("graph", {"a_1": None}, {"b_2": "x"})
        assert net.nodes == ["a_1"]
        assert service.submitted == [("graph", {"a_1": None}, {"b_2": "x"})]
        assert clock.sleeps == [1.0, 1.0]
        assert str(service) == "fake job service"

    def test_timeout_is_reported(self):
        clock = FakeClock()
        service = Job(polls=100, polling=PollingConfig(timeout=3.0), sleep=clock.sleep, clock=clock)
        with pytest.raises(AppCallError):
            service.extract("graph", {}, {})
