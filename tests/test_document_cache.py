import logging

from hltv_tracker.document_cache import DocumentCache


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class CountingFetch:
    def __init__(self, results):
        self.results = list(results)
        self.calls = 0

    def __call__(self):
        self.calls += 1
        return self.results.pop(0) if self.results else None


def test_two_calls_within_ttl_fetch_once():
    clock = FakeClock()
    cache = DocumentCache(clock=clock)
    fetch = CountingFetch(['doc-1', 'doc-2'])

    assert cache.get_or_fetch('team', 600, fetch) == 'doc-1'
    clock.advance(599)
    assert cache.get_or_fetch('team', 600, fetch) == 'doc-1'
    assert fetch.calls == 1
    assert cache.hits == 1
    assert cache.misses == 1


def test_refetch_after_ttl():
    clock = FakeClock()
    cache = DocumentCache(clock=clock)
    fetch = CountingFetch(['doc-1', 'doc-2'])

    cache.get_or_fetch('team', 600, fetch)
    clock.advance(600)
    assert cache.get_or_fetch('team', 600, fetch) == 'doc-2'
    assert fetch.calls == 2


def test_expired_entry_is_not_served_on_failure(caplog):
    clock = FakeClock()
    cache = DocumentCache(clock=clock)
    fetch = CountingFetch(['doc-1', None])

    cache.get_or_fetch('matches', 600, fetch)
    clock.advance(601)
    with caplog.at_level(logging.WARNING):
        assert cache.get_or_fetch('matches', 600, fetch) is None
    assert 'Fetch failed for matches' in caplog.text


def test_failure_then_success_refetches():
    clock = FakeClock()
    cache = DocumentCache(clock=clock)
    fetch = CountingFetch([None, 'doc-1'])

    assert cache.get_or_fetch('team', 3600, fetch) is None
    assert len(cache) == 0
    assert cache.get_or_fetch('team', 3600, fetch) == 'doc-1'
    assert fetch.calls == 2


def test_new_fetch_replaces_entry():
    clock = FakeClock()
    cache = DocumentCache(clock=clock)
    cache.get_or_fetch('team', 10, CountingFetch(['old']))
    clock.advance(11)
    cache.get_or_fetch('team', 10, CountingFetch(['new']))
    assert len(cache) == 1
    assert cache.get('team', 10) == 'new'


def test_keys_are_independent():
    cache = DocumentCache(clock=FakeClock())
    fetch = CountingFetch(['info', 'matches'])
    assert cache.get_or_fetch('info', 3600, fetch) == 'info'
    assert cache.get_or_fetch('matches', 600, fetch) == 'matches'
    assert fetch.calls == 2


def test_sweep_uses_each_entry_ttl():
    clock = FakeClock()
    cache = DocumentCache(clock=clock)
    cache.get_or_fetch('info', 3600, CountingFetch(['info']))
    cache.get_or_fetch('matches', 600, CountingFetch(['matches']))

    clock.advance(900)
    assert cache.sweep() == 1
    assert cache.get('info', 3600) == 'info'
    # Evicted, so not served even under a longer TTL
    assert cache.get('matches', 86400) is None

    clock.advance(3600)
    assert cache.sweep() == 1
    assert len(cache) == 0


def test_invalidate():
    cache = DocumentCache(clock=FakeClock())
    cache.get_or_fetch('info', 3600, CountingFetch(['info']))
    cache.invalidate('info')
    cache.invalidate('missing')
    assert len(cache) == 0
