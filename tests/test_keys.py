import threading
from collections import Counter

import pytest

from tryon_agent.config import parse_api_keys
from tryon_agent.errors import ConfigurationError
from tryon_agent.keys import KeyRotator


def test_rotation_cycles_twice_in_order():
    rotator = KeyRotator(["a", "b", "c"])
    assert [rotator.next() for _ in range(6)] == ["a", "b", "c", "a", "b", "c"]
    assert rotator.calls == 6


def test_single_key_always_returned():
    rotator = KeyRotator(["only"])
    assert {rotator.next() for _ in range(5)} == {"only"}


def test_empty_pool_is_a_configuration_error():
    rotator = KeyRotator([])
    assert len(rotator) == 0
    with pytest.raises(ConfigurationError):
        rotator.next()


def test_concurrent_callers_share_the_counter():
    rotator = KeyRotator(["a", "b", "c", "d"])
    seen = []
    lock = threading.Lock()

    def worker():
        for _ in range(50):
            key = rotator.next()
            with lock:
                seen.append(key)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert rotator.calls == 400
    assert Counter(seen) == {"a": 100, "b": 100, "c": 100, "d": 100}


def test_parse_api_keys_drops_blanks_and_placeholders():
    assert parse_api_keys(" k1 , ,your-key-here, k2 ") == ["k1", "k2"]


def test_parse_api_keys_falls_back_to_single_key():
    assert parse_api_keys("", "solo") == ["solo"]
    assert parse_api_keys(None, None) == []
    assert parse_api_keys("k1", "solo") == ["k1"]
