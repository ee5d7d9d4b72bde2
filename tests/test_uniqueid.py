from concurrent.futures import ThreadPoolExecutor

from kernsim.uniqueid import UniqueID


def test_first_id_is_one():
    assert UniqueID().next() == 1


def test_ids_are_sequential():
    ids = UniqueID()
    values = [ids.next() for _ in range(5)]
    assert values == list(range(1, 6))


def test_generators_are_independent():
    a, b = UniqueID(), UniqueID()
    a.next()
    a.next()
    assert b.next() == 1


def test_concurrent_ids_are_unique():
    ids = UniqueID()
    total = 8 * 200
    with ThreadPoolExecutor(max_workers=8) as pool:
        futures = [pool.submit(ids.next) for _ in range(total)]
        results = [f.result() for f in futures]
    assert sorted(results) == list(range(1, total + 1))
    assert ids.next() == total + 1