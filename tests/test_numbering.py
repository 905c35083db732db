"""Tests for order number allocation."""

import random
import re
import threading

from food_ordering.services.numbering import OrderNumberAllocator
from tests.fakes import NOW

NUMBER_PATTERN = re.compile(r"^ORD\d{13}\d{4}\d{3}$")


class FixedRandom(random.Random):
    """Always draws the same disambiguator."""

    def randrange(self, *args, **kwargs):
        return 42


def test_format():
    number = OrderNumberAllocator(prefix="ORD", clock=lambda: NOW).allocate()
    assert NUMBER_PATTERN.match(number)
    assert number[3:16] == str(int(NOW.timestamp() * 1000)).zfill(13)


def test_custom_prefix():
    assert OrderNumberAllocator(prefix="FO", clock=lambda: NOW).allocate().startswith("FO")


def test_unique_within_one_millisecond():
    allocator = OrderNumberAllocator(clock=lambda: NOW, rng=FixedRandom())
    numbers = [allocator.allocate() for _ in range(5000)]
    assert len(set(numbers)) == len(numbers)


def test_sequence_is_monotonic():
    allocator = OrderNumberAllocator(clock=lambda: NOW, rng=FixedRandom())
    sequences = [int(allocator.allocate()[16:20]) for _ in range(3)]
    assert sequences == [1, 2, 3]


def test_unique_across_threads():
    allocator = OrderNumberAllocator(clock=lambda: NOW, rng=FixedRandom())
    results: list[str] = []
    lock = threading.Lock()

    def worker():
        mine = [allocator.allocate() for _ in range(500)]
        with lock:
            results.extend(mine)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(results) == 4000
    assert len(set(results)) == 4000
