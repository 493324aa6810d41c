from Crypto.Hash import keccak
import rlp
from rlp.sedes import Binary


def sha3(data):
    return keccak.new(digest_bits=256, data=data).digest()


assert sha3(b'').hex() == \
    'c5d2460186f7233c927e7db2dcc703c0e500b653ca82273b7bfad8045d85a470'


def sha3rlp(x):
    return sha3(rlp.encode(x))


def encode_hex(b):
    return b.hex()


def zpad(x, l):
    """ Left zero pad value `x` at least to length `l`.

    >>> zpad(b'', 1)
    b'\\x00'
    >>> zpad(b'\\xca\\xfe', 4)
    b'\\x00\\x00\\xca\\xfe'
    """
    return b'\x00' * max(0, l - len(x)) + x


def is_zero_word(v):
    return not v.lstrip(b'\x00')


MiB = 1024 * 1024


def to_mb(nbytes):
    return float(nbytes) / MiB


ETHER = 10 ** 18

hash32 = Binary.fixed_length(32)
trie_root = Binary.fixed_length(32, allow_empty=True)
