"""Tests for the credential cache."""

import threading

from nginx_console.credentials import Credential, CredentialCache


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestCredential:
    def test_repr_hides_secret(self):
        cred = Credential("hunter2")
        assert "hunter2" not in repr(cred)
        assert "hunter2" not in str(cred)
        assert "hunter2" not in f"{cred}"

    def test_reveal(self):
        assert Credential("hunter2").reveal() == "hunter2"

    def test_equality(self):
        assert Credential("a") == Credential("a")
        assert Credential("a") != Credential("b")


class TestStoreLoad:
    def test_load_after_store(self):
        cache = CredentialCache()
        cache.store("sid", "hunter2")
        assert cache.load("sid") == Credential("hunter2")

    def test_store_overwrites(self):
        cache = CredentialCache()
        cache.store("sid", "first")
        cache.store("sid", Credential("second"))
        assert cache.load("sid").reveal() == "second"
        assert len(cache) == 1

    def test_miss_returns_none(self):
        assert CredentialCache().load("nope") is None

    def test_keys_are_independent(self):
        cache = CredentialCache()
        cache.store("a", "one")
        cache.store("b", "two")
        assert cache.load("a").reveal() == "one"
        assert cache.load("b").reveal() == "two"

    def test_invalidate(self):
        cache = CredentialCache()
        cache.store("sid", "hunter2")
        assert cache.invalidate("sid") is True
        assert cache.load("sid") is None
        assert cache.invalidate("sid") is False

    def test_clear(self):
        cache = CredentialCache()
        cache.store("a", "one")
        cache.store("b", "two")
        cache.clear()
        assert len(cache) == 0


class TestExpiry:
    def test_entry_expires_after_ttl(self):
        clock = FakeClock()
        cache = CredentialCache(ttl_seconds=60, clock=clock)
        cache.store("sid", "hunter2")
        clock.now += 59
        assert cache.load("sid") is not None
        clock.now += 1
        assert cache.load("sid") is None
        assert len(cache) == 0

    def test_zero_ttl_never_expires(self):
        clock = FakeClock()
        cache = CredentialCache(ttl_seconds=0, clock=clock)
        cache.store("sid", "hunter2")
        clock.now += 10 ** 6
        assert cache.load("sid") is not None

    def test_purge_expired(self):
        clock = FakeClock()
        cache = CredentialCache(ttl_seconds=60, clock=clock)
        cache.store("old", "x")
        clock.now += 30
        cache.store("new", "y")
        clock.now += 40
        assert cache.purge_expired() == 1
        assert cache.load("old") is None
        assert cache.load("new") is not None


class TestLocking:
    def test_busy_lock_reads_as_absent(self):
        cache = CredentialCache(lock_timeout=0.05)
        cache.store("sid", "hunter2")
        cache._lock.acquire()
        try:
            assert cache.load("sid") is None
            assert cache.store("sid", "other") is False
            assert cache.purge_expired() == 0
        finally:
            cache._lock.release()
        assert cache.load("sid").reveal() == "hunter2"

    def test_len_waits_for_lock(self):
        cache = CredentialCache()
        cache.store("sid", "hunter2")
        counts = []
        cache._lock.acquire()
        try:
            t = threading.Thread(target=lambda: counts.append(len(cache)))
            t.start()
            t.join(timeout=0.1)
            assert counts == []
        finally:
            cache._lock.release()
        t.join(timeout=2)
        assert counts == [1]

    def test_concurrent_writers(self):
        cache = CredentialCache()

        def writer(n):
            for i in range(200):
                cache.store(f"k{n}", f"v{i}")
                cache.load(f"k{n}")

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(cache) == 8
        assert all(cache.load(f"k{n}").reveal() == "v199" for n in range(8))
