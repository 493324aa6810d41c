"""
Synthetic state workload.

Phase 1 (creation) is driven by a seeded random source and is reproducible
bit for bit; phase 2 (modification) rewrites random slots of a random subset
of the phase 1 accounts. Random sources are always passed in.
"""
import time
import random
from collections import namedtuple
from mptbench import utils

SMALL_WORD = b'\x00' * 31 + b'\x01'
ZERO_WORD = b'\x00' * 32


AccountCreation = namedtuple('AccountCreation',
                             ['index', 'address', 'balance', 'nonce', 'slots'])

AccountModification = namedtuple('AccountModification',
                                 ['index', 'address', 'slots'])


def account_address(index):
    return utils.sha3(b'account-%d' % index)[:20]


def slot_key(index, slot):
    return utils.sha3(b'account-%d-slot-%d' % (index, slot))


def random_word(rng):
    return rng.getrandbits(256).to_bytes(32, byteorder='big')


def slot_count(rng, avg_slots):
    if avg_slots <= 0:
        return 0
    return rng.randrange(avg_slots * 2)


def slot_value(rng, zero_percent=20, small_percent=10):
    dice = rng.randrange(100)
    if dice < zero_percent:
        return ZERO_WORD
    if dice < zero_percent + small_percent:
        return SMALL_WORD
    return random_word(rng)


def creation_workload(rng, n, avg_slots, balance=utils.ETHER,
                      zero_percent=20, small_percent=10):
    """Yield one AccountCreation per account index in [0, n).

    The slot count and then every slot value of an account are drawn in
    order from `rng`.
    """
    for i in range(n):
        count = slot_count(rng, avg_slots)
        slots = [(slot_key(i, j), slot_value(rng, zero_percent, small_percent))
                 for j in range(count)]
        yield AccountCreation(i, account_address(i), balance, i, slots)


def modification_workload(rng, addresses, avg_slots, m, slots_per_account=500):
    """Yield rewrites for the first `m` accounts of a random permutation.

    Every write is a fresh random word at slot index randrange(avg_slots),
    so repeated draws overwrite slots that phase 1 may have created.
    """
    perm = list(range(len(addresses)))
    rng.shuffle(perm)
    m = min(m, len(addresses))
    for idx in perm[:m]:
        slots = []
        if avg_slots > 0:
            for _ in range(slots_per_account):
                j = rng.randrange(avg_slots)
                slots.append((slot_key(idx, j), random_word(rng)))
        yield AccountModification(idx, addresses[idx], slots)


def creation_rng(seed=42):
    return random.Random(seed)


def modification_rng(seed=None):
    if seed is None:
        seed = time.time_ns()
    return random.Random(seed)
