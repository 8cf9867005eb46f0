import unittest
from threading import Timer

import sha1
from collider import SHA1Collider
from sha1 import SHA1


def state_to_int(state):
    return int.from_bytes(b"".join(w.to_bytes(4, 'big') for w in state), 'big')


class TestSHA1ColliderGates(unittest.TestCase):
    def setUp(self):
        self.collider = SHA1Collider()
        self.solver = self.collider.solver

    def tearDown(self):
        self.collider.delete()

    def value(self, var):
        return self.solver.get_model()[var - 1] > 0

    def test_add_constant_sets_bits_msb_first(self):
        bits = self.collider._init_number(4)
        self.collider._add_constant(bits, 0b1010)
        self.assertTrue(self.solver.solve())
        self.assertEqual([self.value(v) for v in bits], [True, False, True, False])

    def test_add_constant_exclude_bits_flips(self):
        bits = self.collider._init_number(4)
        self.collider._add_constant(bits, 0b1010, exclude_bits=[0, 3])
        self.assertTrue(self.solver.solve())
        self.assertEqual([self.value(v) for v in bits], [False, False, True, True])

    def _check_truth_table(self, gate, op):
        a, b, c = (self.collider._init_number(1) for _ in range(3))
        gate(a, b, c)
        for a_val in (False, True):
            for b_val in (False, True):
                for c_val in (False, True):
                    assumps = [a[0] if a_val else -a[0], b[0] if b_val else -b[0], c[0] if c_val else -c[0]]
                    self.assertEqual(self.solver.solve(assumptions=assumps), op(a_val, b_val) == c_val)

    def test_add_or_truth_table(self):
        self._check_truth_table(self.collider._add_or, lambda x, y: x or y)

    def test_add_and_truth_table(self):
        self._check_truth_table(self.collider._add_and, lambda x, y: x and y)

    def test_add_xor_truth_table(self):
        self._check_truth_table(self.collider._add_xor, lambda x, y: x != y)

    def test_add_not_truth_table(self):
        a = self.collider._init_number(1)
        b = self.collider._add_not(a)
        for a_val in (False, True):
            for b_val in (False, True):
                assumps = [a[0] if a_val else -a[0], b[0] if b_val else -b[0]]
                self.assertEqual(self.solver.solve(assumptions=assumps), b_val == (not a_val))

    def test_add_sum_wraps(self):
        a = self.collider._add_constant(self.collider._init_number(4), 0b1110)
        b = self.collider._add_constant(self.collider._init_number(4), 0b1101)
        c = self.collider._add_sum(a, b)
        self.assertTrue(self.solver.solve())
        self.assertEqual([self.value(v) for v in c], [True, False, True, True])

    def test_add_rotate_left(self):
        a = self.collider._add_constant(self.collider._init_number(4), 0b1101)
        b = self.collider._add_rotate_left(a, 2)
        self.assertTrue(self.solver.solve())
        self.assertEqual([self.value(v) for v in b], [False, True, True, True])

    def test_add_F_matches_python(self):
        b_val, c_val, d_val = 0x12345678, 0x9abcdef0, 0x0f0f0f0f
        b = self.collider._add_constant(self.collider._init_number(32), b_val)
        c = self.collider._add_constant(self.collider._init_number(32), c_val)
        d = self.collider._add_constant(self.collider._init_number(32), d_val)
        outputs = {t: self.collider.add_F(b, c, d, t) for t in (0, 20, 40, 60)}
        self.assertTrue(self.solver.solve())
        model = self.solver.get_model()
        for t, f in outputs.items():
            got = int.from_bytes(self.collider.solution_to_bytes(model, f), 'big')
            self.assertEqual(got, sha1.F(b_val, c_val, d_val, t), t)


class TestSHA1ColliderSolve(unittest.TestCase):

    def test_rejects_unpadded_input(self):
        with self.assertRaises(ValueError):
            SHA1Collider(b"abc")

    def test_solve_sha1_chunk(self):
        message = b"Hello, World!"
        padded = message + SHA1.pad(len(message))
        with SHA1Collider(padded) as collider:
            sat, (x, digest) = collider.solve_sha1()
        self.assertTrue(sat)
        self.assertEqual(x, padded)
        self.assertEqual(digest, int.from_bytes(sha1.hash(message), 'big'))

    def test_reduced_phases_agree_with_compress(self):
        block = bytes(range(64))
        for num_phases in (1, 2):
            with SHA1Collider(block) as collider:
                sat, (x, digest) = collider.solve_sha1(num_phases)
            self.assertTrue(sat)
            self.assertEqual(digest, state_to_int(sha1.compress(sha1.IV, block, num_phases)))

    def test_excluded_bit_is_flipped(self):
        padded = b"abc" + SHA1.pad(3)
        with SHA1Collider(padded, exclude_input_bits=[5]) as collider:
            sat, (x, digest) = collider.solve_sha1(num_phases=1)
        self.assertTrue(sat)
        expected = bytes([padded[0] ^ (1 << 2)]) + padded[1:]
        self.assertEqual(x, expected)
        self.assertEqual(digest, state_to_int(sha1.compress(sha1.IV, expected, 1)))

    def test_conflicting_target_digest_is_unsat(self):
        padded = b"abc" + SHA1.pad(3)
        wrong = state_to_int(sha1.compress(sha1.IV, padded, 1)) ^ 1
        with SHA1Collider(padded, target_digest=wrong) as collider:
            timer = Timer(30, collider.solver.interrupt)
            timer.start()
            try:
                sat, result = collider.solve_sha1(num_phases=1)
            finally:
                timer.cancel()
            # None would mean the timer interrupted the search.
            status = collider.solver.get_status()
        self.assertFalse(sat)
        self.assertIsNone(result)
        self.assertIs(status, False)


if __name__ == "__main__":
    unittest.main(verbosity=1)
