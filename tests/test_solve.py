import unittest

import numpy as np

from houlsby.convergence import SolverStatus
from houlsby.core import (
    CLOSED_CHANNEL_DEPTH,
    ConfinedRecord,
    DerivedState,
    GuessMode,
    InvalidInputError,
    SampleInputs,
    UndefinedSample,
    check_physical_validity,
    solve_lmad,
    solve_sample,
)
from houlsby.equations import froude_number


class SolveSampleTests(unittest.TestCase):
    def setUp(self) -> None:
        self.sample = SampleInputs(beta=0.2, V0=1.0, d0=2.0, CT=0.8)
        self.state = solve_sample(self.sample)

    def test_reference_case(self) -> None:
        state = self.state
        self.assertIsInstance(state, DerivedState)
        self.assertAlmostEqual(state.Fr, 0.2258, places=4)
        self.assertGreater(state.u2, 1.0)
        self.assertLess(state.u2, 2.0)
        self.assertLess(state.u2_iter.residual, 1e-6)
        self.assertTrue(state.converged())
        self.assertIs(state.u2u1_iter.status, SolverStatus.SUCCESS)

    def test_reference_case_is_physical(self) -> None:
        state = self.state
        self.assertTrue(state.validity.all)
        self.assertIsInstance(state.u1, float)
        self.assertIsInstance(state.ut, float)
        self.assertGreater(state.V0Prime, state.inputs.V0)
        np.testing.assert_allclose(4.0 * state.ut * (state.V0Prime - state.ut), 0.8, rtol=1e-10)

    def test_free_surface(self) -> None:
        state = self.state
        self.assertGreater(state.dhToh, 0.0)
        self.assertLess(state.hFinal, state.inputs.d0)
        self.assertAlmostEqual(state.hFinal, 2.0 * (1.0 - state.dhToh))
        self.assertLess(state.hBypass, state.inputs.d0)

    def test_guess_modes_agree(self) -> None:
        by_speed_ratio = solve_sample(self.sample, 1.1, GuessMode.BYPASS_FREESTREAM_RATIO)
        by_velocity = solve_sample(self.sample, 1.1, "u2")
        for other in (by_speed_ratio, by_velocity):
            self.assertIsNone(other.u2u1_iter)
            self.assertAlmostEqual(other.u2, self.state.u2, places=6)
            self.assertAlmostEqual(other.u1, self.state.u1, places=6)

    def test_negative_thrust_is_undefined(self) -> None:
        with self.assertLogs("houlsby.core", level="WARNING"):
            result = solve_sample(SampleInputs(beta=0.2, V0=1.0, d0=2.0, CT=-0.1))
        self.assertIsInstance(result, UndefinedSample)
        self.assertAlmostEqual(result.Fr, self.state.Fr)

    def test_complex_wake_branch_is_not_converged(self) -> None:
        # u2**2 < CT V0**2 here, so the thrust balance gives an imaginary wake velocity
        state = solve_sample(SampleInputs(beta=0.05, V0=1.0, d0=2.0, CT=2.0))
        self.assertIsInstance(state, DerivedState)
        self.assertLess(state.u2**2, 2.0)
        self.assertIsInstance(state.u1, complex)
        self.assertFalse(state.u2_iter.real_branches)
        self.assertFalse(state.converged())
        self.assertFalse(state.validity.wake_slower_than_bypass)
        self.assertFalse(state.validity.all)

    def test_zero_froude_limit(self) -> None:
        state = solve_sample(self.sample, fr_zero_limit=True)
        self.assertEqual(state.inputs.d0, CLOSED_CHANNEL_DEPTH)
        self.assertLess(state.Fr, 1e-3)


class PhysicalValidityTests(unittest.TestCase):
    def test_flags(self) -> None:
        self.assertTrue(check_physical_validity(0.6, 1.2, 0.8, 1.0).all)
        slow_bypass = check_physical_validity(0.6, 0.9, 0.8, 1.0)
        self.assertFalse(slow_bypass.bypass_exceeds_freestream)
        self.assertTrue(slow_bypass.wake_slower_than_bypass)
        fast_rotor = check_physical_validity(0.6, 1.2, 1.3, 1.0)
        self.assertFalse(fast_rotor.turbine_between_wake_and_bypass)
        self.assertFalse(fast_rotor.all)


class ConfinedRecordTests(unittest.TestCase):
    def test_broadcast_and_read_only(self) -> None:
        record = ConfinedRecord.from_arrays(beta=0.2, V0=1.0, d0=2.0, CT=[0.6, 0.8], TSR=[3.0, 4.0])
        self.assertEqual(len(record), 2)
        np.testing.assert_array_equal(record.beta, [0.2, 0.2])
        self.assertIsNone(record.CP)
        with self.assertRaises(ValueError):
            record.CT[0] = 1.0
        self.assertEqual(record.sample(1), SampleInputs(0.2, 1.0, 2.0, 0.8))

    def test_replace_fields(self) -> None:
        record = ConfinedRecord.from_arrays(beta=0.2, V0=1.0, d0=2.0, CT=[0.6, 0.8])
        deeper = record.replace_fields(d0=5.0)
        np.testing.assert_array_equal(deeper.d0, [5.0, 5.0])
        np.testing.assert_array_equal(record.d0, [2.0, 2.0])

    def test_malformed_records(self) -> None:
        cases = [
            dict(beta=[0.1, 0.2], V0=1.0, d0=1.0, CT=[0.1, 0.2, 0.3]),
            dict(beta=1.0, V0=1.0, d0=1.0, CT=0.5),
            dict(beta=-0.1, V0=1.0, d0=1.0, CT=0.5),
            dict(beta=0.1, V0=0.0, d0=1.0, CT=0.5),
            dict(beta=0.1, V0=1.0, d0=-1.0, CT=0.5),
            dict(beta=[], V0=[], d0=[], CT=[]),
            dict(beta=0.1, V0=1.0, d0=1.0, CT=[[0.5, 0.6]]),
            dict(beta=0.1, V0=1.0, d0=1.0, CT="high"),
        ]
        for fields_ in cases:
            with self.subTest(fields_=fields_):
                with self.assertRaises(InvalidInputError):
                    ConfinedRecord.from_arrays(**fields_)


class SolveRecordTests(unittest.TestCase):
    def test_undefined_sample_among_valid(self) -> None:
        record = ConfinedRecord.from_arrays(beta=0.2, V0=1.0, d0=2.0, CT=[0.8, -0.1, 0.6])
        with self.assertLogs("houlsby.core", level="WARNING"):
            solved = solve_lmad(record)
        np.testing.assert_array_equal(solved.defined, [True, False, True])
        for values in (solved.u1, solved.u2, solved.ut):
            self.assertTrue(np.isnan(values[1]))
            self.assertTrue(np.all(np.isfinite(values[[0, 2]])))
        self.assertEqual(
            solved.statuses, (SolverStatus.SUCCESS, SolverStatus.UNDEFINED, SolverStatus.SUCCESS)
        )
        self.assertTrue(np.all(solved.u2_residual[[0, 2]] < 1e-6))
        np.testing.assert_allclose(solved.Fr, froude_number(1.0, 2.0))

    def test_zero_froude_closed_channel_balances(self) -> None:
        beta, V0 = 0.2, 1.0
        record = ConfinedRecord.from_arrays(beta=beta, V0=V0, d0=2.0, CT=[0.4, 0.8, 1.2])
        with self.assertLogs("houlsby.core", level="INFO"):
            solved = solve_lmad(record, fr_zero_limit=True)
        np.testing.assert_array_equal(solved.record.d0, CLOSED_CHANNEL_DEPTH)
        u1, u2, ut = solved.u1, solved.u2, solved.ut
        # momentum, thrust and continuity of the closed-channel actuator disk
        np.testing.assert_allclose(beta * (u2**2 - u1**2), (u2 - V0) * (u2 + 2.0 * u1 - V0), rtol=1e-5)
        np.testing.assert_allclose((u2**2 - u1**2) / V0**2, record.CT, rtol=1e-8)
        np.testing.assert_allclose(ut, u1 * (u2 - V0) / (beta * (u2 - u1)), rtol=1e-5)


if __name__ == "__main__":
    unittest.main()
