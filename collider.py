"""CNF encoding of SHA-1 using PySAT for preimage/collision experiments.

This module builds a SAT instance that models the SHA-1 compression function
over one or more 512-bit blocks. It supports:
  - fixing some or all input bytes,
  - optionally constraining the final digest,
  - running a configurable number of 20-round phases,
then asks a SAT solver to find a satisfying assignment.
"""
import logging

from pysat.solvers import Solver

from sha1 import IV, K

logger = logging.getLogger(__name__)


class SHA1Collider:
    """Builder that encodes SHA-1 as CNF and solves it with a SAT solver.

    Parameters
    - input_bytes: bytes or None. If provided, must be a multiple of 64 bytes
                   (i.e. already padded). Those bytes are constrained into the instance.
    - exclude_input_bits: iterable of bit indices (MSB-first within each byte). These
                   bits are constrained to differ from the value in input_bytes, which
                   lets the solver search for nearby preimages.
    - target_digest: optional 160-bit integer. If provided, the final (h0..h4)
                   state is constrained to match this digest.
    - solver_name: any PySAT solver name.
    """

    def __init__(self, input_bytes=None, exclude_input_bits=(), target_digest=None, solver_name='g4'):
        if input_bytes is not None and len(input_bytes) % 64 != 0:
            raise ValueError("input_bytes must be a multiple of 64 bytes, got %d" % len(input_bytes))
        num_chunks = len(input_bytes) // 64 if input_bytes is not None else 1
        self.solver = Solver(name=solver_name)
        self.var_idx = 1
        self.h = []
        self.x = []
        self.target_digest = target_digest
        self._init_vars(num_chunks)
        if input_bytes is not None:
            for i in range(len(input_bytes)):
                exclude_bits = [bit % 8 for bit in exclude_input_bits if bit // 8 == i]
                byte = self._get_byte_vars(self.x, i)
                self._add_constant(byte, input_bytes[i], exclude_bits=exclude_bits)
        # Chaining value starts at the SHA-1 IV.
        for word, iv in zip(self.h, IV):
            self._add_constant(word, iv)
        logger.debug("encoded %d chunk(s), %d message vars", num_chunks, len(self.x))

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.delete()

    def delete(self):
        """Release the underlying solver."""
        self.solver.delete()

    def _init_number(self, num_bits):
        """Allocate and return a fresh vector of SAT variables of length num_bits."""
        num = list(range(self.var_idx, self.var_idx + num_bits))
        self.var_idx += num_bits
        return num

    def _init_vars(self, num_chunks):
        """Initialize message and chaining variables for the given chunk count."""
        self.x = self._init_number(512 * num_chunks)
        self.h = [self._init_number(32) for _ in range(5)]

    # Byte 0 is the left most (MSB) byte of the bit array
    def _get_byte_vars(self, bit_array, byte_idx):
        """Return the 8-bit slice vars corresponding to byte_idx."""
        return bit_array[byte_idx*8:(byte_idx+1)*8]

    def _get_word_vars(self, bit_array, word_idx):
        """Return the 32-bit slice vars for word_idx; SHA-1 words are big-endian,
        so this matches the byte order of the message."""
        return bit_array[word_idx*32:(word_idx+1)*32]

    def _add_constant(self, bit_array, constant, exclude_bits=()):
        """Fix bit_array (MSB first) to constant; bits in exclude_bits get the
        opposite value."""
        assert 2 ** len(bit_array) > constant
        width = len(bit_array)
        for i, var in enumerate(bit_array):
            lit = var if (constant >> (width - i - 1)) & 1 else -var
            self.solver.add_clause([-lit if i in exclude_bits else lit])
        return bit_array

    def _prepare_output(self, a, c):
        if c is not None:
            assert len(a) == len(c)
            return c
        return self._init_number(len(a))

    # Per-bit clause templates over (a, b, out); a 0 sign drops the literal.
    _GATES = {
        'or': ((1, 1, -1), (-1, 0, 1), (0, -1, 1)),
        'and': ((-1, -1, 1), (1, 0, -1), (0, 1, -1)),
        'xor': ((-1, -1, -1), (1, 1, -1), (1, -1, 1), (-1, 1, 1)),
    }

    def _add_gate(self, kind, a, b, c=None):
        """Bitwise two-input gate c = a <kind> b. Returns c (allocates if None)."""
        assert len(a) == len(b)
        c = self._prepare_output(a, c)
        for bits in zip(a, b, c):
            for signs in self._GATES[kind]:
                self.solver.add_clause([s * v for s, v in zip(signs, bits) if s])
        return c

    def _add_or(self, a, b, c=None):
        return self._add_gate('or', a, b, c)

    def _add_and(self, a, b, c=None):
        return self._add_gate('and', a, b, c)

    def _add_xor(self, a, b, c=None):
        return self._add_gate('xor', a, b, c)

    def _add_not(self, a, b=None):
        """Bitwise NOT: b = ~a. Returns b (allocates if None)."""
        b = self._prepare_output(a, b)
        for x, y in zip(a, b):
            self.solver.add_clause([-x, -y])
            self.solver.add_clause([x, y])
        return b

    def _add_sum(self, a, b, c=None):
        """Add two n-bit vectors a and b modulo 2^n (ripple-carry adder)."""
        assert len(a) == len(b)
        c = self._prepare_output(a, c)
        carry = None
        # LSB is the last index; the carry out of the MSB is dropped.
        for idx in reversed(range(len(a))):
            if carry is None:
                self._add_xor([a[idx]], [b[idx]], [c[idx]])
                if idx > 0:
                    carry = self._add_and([a[idx]], [b[idx]])
            else:
                ab = self._add_xor([a[idx]], [b[idx]])
                self._add_xor(carry, ab, [c[idx]])
                if idx > 0:
                    carry = self._add_or(self._add_and([a[idx]], [b[idx]]), self._add_and(carry, ab))
        return c

    def _add_rotate_left(self, a, n, b=None):
        """Rotate-left by n bits. Returns b (allocates if None)."""
        b = self._prepare_output(a, b)
        width = len(a)
        for i, bit in enumerate(a):
            out = b[(i - n) % width]
            self.solver.add_clause([bit, -out])
            self.solver.add_clause([-bit, out])
        return b

    def add_F(self, b, c, d, t):
        """CNF version of SHA-1's round-dependent boolean function."""
        if t < 20:
            return self._add_or(self._add_and(b, c), self._add_and(self._add_not(b), d))
        elif t < 40 or 60 <= t < 80:
            return self._add_xor(self._add_xor(b, c), d)
        elif t < 60:
            bc = self._add_and(b, c)
            return self._add_or(self._add_or(bc, self._add_and(b, d)), self._add_and(c, d))
        else:
            raise ValueError("Invalid round index")

    def add_schedule(self, chunk_idx, num_rounds=80):
        """Message schedule for one chunk: 16 input words plus the rotated XOR recurrence."""
        w = [self._get_word_vars(self.x, chunk_idx*16 + t) for t in range(16)]
        for t in range(16, num_rounds):
            mixed = self._add_xor(self._add_xor(w[t-3], w[t-8]), self._add_xor(w[t-14], w[t-16]))
            w.append(self._add_rotate_left(mixed, 1))
        return w

    def add_round(self, a, b, c, d, e, w, t):
        """One SHA-1 round updating (a,b,c,d,e) with schedule word w at round t."""
        f = self.add_F(b, c, d, t)
        k = self._add_constant(self._init_number(32), K(t))
        temp = self._add_sum(
            self._add_sum(self._add_rotate_left(a, 5), f),
            self._add_sum(self._add_sum(e, w), k))
        return temp, a, self._add_rotate_left(b, 30), c, d

    def solve_sha1_chunk(self, chunk_idx, num_phases=4):
        """Encode all rounds for one 64-byte chunk and update the chaining variables."""
        assert num_phases in [1, 2, 3, 4]
        num_rounds = 20 * num_phases
        w = self.add_schedule(chunk_idx, num_rounds)

        a, b, c, d, e = self.h
        for t in range(num_rounds):
            a, b, c, d, e = self.add_round(a, b, c, d, e, w[t], t)

        # Feed-forward: add the incoming chaining value.
        self.h = [self._add_sum(h, v) for h, v in zip(self.h, (a, b, c, d, e))]

    def solve_sha1(self, num_phases=4):
        """Finalize the encoding for all chunks, add optional digest constraint, and solve.

        Returns (False, None) if UNSAT or interrupted; otherwise
        (True, (x_bytes, digest_int)).
        """
        for i in range(len(self.x) // 512):
            self.solve_sha1_chunk(i, num_phases)

        if self.target_digest is not None:
            for j, word in enumerate(self.h):
                self._add_constant(word, (self.target_digest >> (32 * (4 - j))) & 0xffffffff)

        logger.debug("solving with %d vars, %d clauses",
                     self.solver.nof_vars(), self.solver.nof_clauses())
        sat = self.solver.solve_limited(expect_interrupt=True)
        if not sat:
            logger.debug("no solution (solver returned %r)", sat)
            return False, None
        return True, self.process_solution(self.solver.get_model())

    def solution_to_bytes(self, model, vars):
        """Read a bit-vector assignment from model and pack into bytes.

        Bits inside each byte are read MSB-first.
        """
        byte_vals = b""
        byte = 0
        for j, bit_var in enumerate(vars):
            bit_val = model[bit_var-1] > 0
            byte |= bit_val << (8 - (j % 8) - 1)
            if j % 8 == 7:
                byte_vals += byte.to_bytes(1, 'big')
                byte = 0
        return byte_vals

    def process_solution(self, model):
        """Extract (message_bytes, digest_int) from a satisfying assignment."""
        digest = b"".join(self.solution_to_bytes(model, word) for word in self.h)
        x = self.solution_to_bytes(model, self.x)
        return x, int.from_bytes(digest, 'big')
