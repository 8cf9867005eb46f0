"""SHA-1 compression function and streaming driver (pure Python).

The compressor can run a configurable number of phases (1–4 phases = 20
rounds each; full SHA-1 uses 4) so that reduced-round variants can be checked
against the CNF model in collider.py. The driver keeps the running state,
a partial-block buffer and the message length, and applies the padding
(0x80, zero fill to 56 mod 64, 64-bit big-endian bit length) on finalize.
"""

IV = (0x67452301, 0xefcdab89, 0x98badcfe, 0x10325476, 0xc3d2e1f0)

BLOCK_SIZE = 64
DIGEST_SIZE = 20

# The bit length must fit the 64-bit length field.
MAX_MESSAGE_BYTES = 1 << 61

# Per-phase additive constants (FIPS 180-4)
K_table = [0x5a827999, 0x6ed9eba1, 0x8f1bbcdc, 0xca62c1d6]


class HashFinalizedError(RuntimeError):
    """Raised when a finalized hasher is fed more data or finalized again."""


class MessageTooLongError(OverflowError):
    """Raised when the message bit length would not fit in 64 bits."""


def rotl(x, n):
    """Rotate the 32-bit word x left by n bits."""
    x = x & 0xffffffff
    return ((x << n) | (x >> (32 - n))) & 0xffffffff


def K(t):
    """Return the additive constant for round t (0 ≤ t < 80)."""
    return K_table[t // 20]


def F(b, c, d, t):
    """SHA-1 non-linear boolean function selected by round index t.

    Phase 0 (t < 20): (b & c) | (~b & d)
    Phase 1 (t < 40): b ^ c ^ d
    Phase 2 (t < 60): (b & c) | (b & d) | (c & d)
    Phase 3 (t < 80): b ^ c ^ d
    """
    if t < 20:
        return ((b & c) | (~b & d)) & 0xffffffff
    elif t < 40:
        return b ^ c ^ d
    elif t < 60:
        return (b & c) | (b & d) | (c & d)
    elif t < 80:
        return b ^ c ^ d
    else:
        raise ValueError("Invalid round index")


def schedule(block, num_rounds=80):
    """Expand a 64-byte block into its message schedule of num_rounds words."""
    assert len(block) == BLOCK_SIZE
    w = [int.from_bytes(block[i:i + 4], 'big') for i in range(0, BLOCK_SIZE, 4)]
    for t in range(16, num_rounds):
        w.append(rotl(w[t - 3] ^ w[t - 8] ^ w[t - 14] ^ w[t - 16], 1))
    return w


def compress(state, block, num_phases=4):
    """Mix one 64-byte block into state and return the new 5-word state.

    num_phases selects how many 20-round phases run; 4 is real SHA-1.
    """
    assert num_phases in [1, 2, 3, 4]
    num_rounds = 20 * num_phases
    w = schedule(block, num_rounds)

    a, b, c, d, e = state
    for t in range(num_rounds):
        temp = (rotl(a, 5) + F(b, c, d, t) + e + w[t] + K(t)) & 0xffffffff
        e = d
        d = c
        c = rotl(b, 30)
        b = a
        a = temp

    return (
        (state[0] + a) & 0xffffffff,
        (state[1] + b) & 0xffffffff,
        (state[2] + c) & 0xffffffff,
        (state[3] + d) & 0xffffffff,
        (state[4] + e) & 0xffffffff,
    )


def _to_bytes(data):
    """Return data as bytes, raising TypeError for anything not bytes-like."""
    if isinstance(data, (bytes, bytearray)):
        return bytes(data)
    if isinstance(data, memoryview):
        return data.tobytes()
    raise TypeError("data must be bytes-like, not %s" % type(data).__name__)


class SHA1:
    """Incremental SHA-1 hasher with a hashlib-like interface.

    Feed data with update() in chunks of any size, then call finalize() (or
    digest()) once. The instance must not be shared between callers without
    external locking.
    """

    name = "sha1"
    digest_size = DIGEST_SIZE
    block_size = BLOCK_SIZE

    def __init__(self, data=None, num_phases=4):
        assert num_phases in [1, 2, 3, 4]
        self.num_phases = num_phases
        self.state = IV
        self.pending = b""
        self.size = 0
        self._digest = None
        if data is not None:
            self.update(data)

    @property
    def finalized(self):
        return self._digest is not None

    def copy(self):
        h = type(self)(num_phases=self.num_phases)
        h.state, h.pending, h.size, h._digest = self.state, self.pending, self.size, self._digest
        return h

    def update(self, data):
        """Append data to the message, compressing every full block."""
        if self.finalized:
            raise HashFinalizedError("update() called after finalize()")
        data = _to_bytes(data)
        if self.size + len(data) >= MAX_MESSAGE_BYTES:
            raise MessageTooLongError(
                "message of %d bytes exceeds the SHA-1 length limit" % (self.size + len(data)))
        if not data:
            return self

        buffer = self.pending + data
        end = len(buffer) - len(buffer) % BLOCK_SIZE
        state = self.state
        for offset in range(0, end, BLOCK_SIZE):
            state = compress(state, buffer[offset:offset + BLOCK_SIZE], self.num_phases)
        self.state = state
        self.pending = buffer[end:]
        self.size += len(data)
        return self

    @staticmethod
    def pad(length):
        """Return the padding appended to a message of length bytes.

        Padding: 0x80 byte, then 0x00 bytes up to 56 mod 64, then the
        64-bit big-endian length (in bits).
        """
        index = length % BLOCK_SIZE
        if index < 56:
            pad_len = 56 - index
        else:
            pad_len = 120 - index
        return b"\x80" + b"\x00" * (pad_len - 1) + (length * 8).to_bytes(8, 'big')

    def finalize(self):
        """Pad the message, compress the final frame(s) and return the digest."""
        if self.finalized:
            raise HashFinalizedError("finalize() called twice")

        # One frame when the tail leaves room for 0x80 and the length, else two.
        data = self.pending + self.pad(self.size)
        state = self.state
        for offset in range(0, len(data), BLOCK_SIZE):
            state = compress(state, data[offset:offset + BLOCK_SIZE], self.num_phases)

        self.state = state
        self.pending = b""
        self._digest = b"".join(word.to_bytes(4, 'big') for word in state)
        return self._digest

    def digest(self):
        """Return the digest, finalizing on first use."""
        if self._digest is None:
            self.finalize()
        return self._digest

    def hexdigest(self):
        return self.digest().hex()


def new(data=None, num_phases=4):
    """Return a fresh SHA1 hasher, optionally primed with data."""
    return SHA1(data, num_phases=num_phases)


def update(hasher, data):
    """Feed data into hasher."""
    hasher.update(data)


def finalize(hasher):
    """Finalize hasher and return its 20-byte digest."""
    return hasher.finalize()


def hash(message):
    """Return the SHA-1 digest of message as 20 raw bytes.

    A str message is encoded as UTF-8 first.
    """
    if isinstance(message, str):
        message = message.encode("utf-8")
    h = SHA1()
    h.update(message)
    return h.finalize()
