"""
tests/test_concurrency.py

Concurrent claims against one ledger.

  - Racing claims for one recipient transfer exactly once
  - Racing claims across recipients each settle once
  - The journal written under contention audits clean
"""

import threading
from collections import Counter

from merkledrop import AlreadyClaimedError

THREADS = 16


def _race(target, count):
    barrier = threading.Barrier(count)
    outcomes = []
    lock = threading.Lock()

    def worker(i):
        barrier.wait()
        try:
            result = target(i)
        except Exception as exc:
            result = exc
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return outcomes


def test_same_recipient_transfers_once(ledger, tree, token):
    proof = tree.proof("B")
    outcomes = _race(lambda _: ledger.claim("B", 20, proof), THREADS)

    successes = [o for o in outcomes if not isinstance(o, Exception)]
    failures = [o for o in outcomes if isinstance(o, Exception)]
    assert len(successes) == 1
    assert all(isinstance(f, AlreadyClaimedError) for f in failures)
    assert token.balance_of("B") == 20


def test_many_recipients_with_journal(journaled_ledger, journal, tree, token):
    recipients = [("A", 10), ("B", 20), ("C", 30), ("D", 40)]
    proofs = {r: tree.proof(r) for r, _ in recipients}

    def claim(i):
        recipient, amount = recipients[i % len(recipients)]
        return journaled_ledger.claim(recipient, amount, proofs[recipient])

    outcomes = _race(claim, THREADS)

    paid = Counter(o.recipient for o in outcomes if not isinstance(o, Exception))
    assert paid == Counter({"A": 1, "B": 1, "C": 1, "D": 1})
    for recipient, amount in recipients:
        assert token.balance_of(recipient) == amount

    report = journal.verify_chain()
    assert report.valid
    assert report.total_entries == 1 + 2 * len(recipients)
