import math
import unittest

import numpy as np

from noise_field import NoiseField, NoiseFieldConfig, sample
from particle import ParticleSystem
from simulation import (
    Simulation, SimulationError, clamp_positions, outside_mask, wrap_angle,
    wrap_positions
)

WIDTH, HEIGHT = 1200.0, 800.0


def make_simulation(positions=None, **overrides):
    params = {
        "seed": 42,
        "particle_count": 300,
        "trail_length": 4,
        "noise_scale": 0.01,
        "speed": 2.0,
        "boundary_policy": "wrap",
        "min_scale": 0.001,
        "max_scale": 0.5,
    }
    params.update(overrides)
    particles = ParticleSystem(params, WIDTH, HEIGHT, positions=positions)
    return Simulation(particles, params, WIDTH, HEIGHT)


def fixed_grid(count=100):
    return np.array(
        [[10.0 + (i % 10) * 115.0, 10.0 + (i // 10) * 75.0] for i in range(count)]
    )


# Plain-Python gradient noise, written out separately from the jitted kernel.
GRADIENTS = ((1.0, 1.0), (-1.0, 1.0), (1.0, -1.0), (-1.0, -1.0))


def reference_angle(seed, scale, x, y):
    rng = np.random.default_rng(seed % 2**64)
    perm = [int(p) for p in rng.permutation(256)] * 2
    offset_x, offset_y = (float(v) for v in rng.uniform(0.0, 256.0, size=2))

    px = (x * scale + offset_x) % 256.0
    py = (y * scale + offset_y) % 256.0
    cx, cy = int(math.floor(px)), int(math.floor(py))
    fx, fy = px - cx, py - cy

    def corner(dx, dy):
        gx, gy = GRADIENTS[perm[perm[cx + dx] + cy + dy] % 4]
        return gx * (fx - dx) + gy * (fy - dy)

    def fade(t):
        return t * t * t * (t * (t * 6.0 - 15.0) + 10.0)

    u, v = fade(fx), fade(fy)
    bottom = corner(0, 0) + u * (corner(1, 0) - corner(0, 0))
    top = corner(0, 1) + u * (corner(1, 1) - corner(0, 1))
    n = min(max(bottom + v * (top - bottom), -1.0), 1.0)
    return ((n + 1.0) * math.pi) % (2.0 * math.pi)


class TestBoundaryHelpers(unittest.TestCase):
    def test_wrap_is_toroidal(self):
        wrapped = wrap_positions(np.array([[-1.0, 805.0], [1200.0, -800.0]]), WIDTH, HEIGHT)
        np.testing.assert_allclose(wrapped, [[1199.0, 5.0], [0.0, 0.0]])

    def test_wrap_never_lands_on_upper_edge(self):
        wrapped = wrap_positions(np.array([[-1e-17, -1e-17]]), WIDTH, HEIGHT)
        self.assertTrue(np.all(wrapped < [WIDTH, HEIGHT]))
        self.assertTrue(np.all(wrapped >= 0))

    def test_clamp_stays_below_extent(self):
        clamped = clamp_positions(np.array([[5000.0, -3.0]]), WIDTH, HEIGHT)
        self.assertLess(clamped[0, 0], WIDTH)
        self.assertEqual(clamped[0, 1], 0.0)

    def test_wrap_angle(self):
        np.testing.assert_allclose(wrap_angle([3 * math.pi / 2, -3 * math.pi / 2]), [-math.pi / 2, math.pi / 2])


class TestTick(unittest.TestCase):
    def test_positions_stay_in_viewport_for_every_policy(self):
        for policy in ("wrap", "clamp", "respawn"):
            sim = make_simulation(boundary_policy=policy, speed=400.0, noise_scale=0.05)
            for _ in range(40):
                sim.tick(1.0)
                pos = sim.positions
                self.assertTrue(np.all(pos >= 0.0), policy)
                self.assertTrue(np.all(pos[:, 0] < WIDTH), policy)
                self.assertTrue(np.all(pos[:, 1] < HEIGHT), policy)
            self.assertEqual(len(sim.particles), 300)

    def test_seed_42_reference_trajectory(self):
        start = fixed_grid()
        sim = make_simulation(positions=start, trail_length=1)
        self.assertEqual(sim.config, NoiseFieldConfig(seed=42, scale=0.01))

        sim.tick(1.0)

        expected_headings = [reference_angle(42, 0.01, x, y) for x, y in start]
        expected = [
            [(x + math.cos(h) * 2.0) % WIDTH, (y + math.sin(h) * 2.0) % HEIGHT]
            for (x, y), h in zip(start, expected_headings)
        ]
        np.testing.assert_allclose(sim.headings, expected_headings, rtol=0, atol=1e-9)
        np.testing.assert_allclose(sim.positions, expected, rtol=0, atol=1e-9)

    def test_tick_integrates_sampled_angles(self):
        start = fixed_grid()
        sim = make_simulation(positions=start, trail_length=1)

        sim.tick(1.0)

        config = NoiseFieldConfig(seed=42, scale=0.01)
        expected = []
        for x, y in start:
            angle = sample(config, (x, y))
            expected.append([
                (x + math.cos(angle) * 2.0) % WIDTH,
                (y + math.sin(angle) * 2.0) % HEIGHT,
            ])
        np.testing.assert_allclose(sim.positions, expected, rtol=0, atol=1e-9)
        self.assertEqual(sim.step_count, 1)

    def test_direct_assignment_sets_heading_to_field_angle(self):
        sim = make_simulation()
        before = sim.positions.copy()
        sim.tick(0.5)
        np.testing.assert_array_equal(sim.headings, sim.field.sample_many(before))

    def test_turn_rate_limits_heading_change(self):
        sim = make_simulation(turn_rate=0.5)
        before = sim.headings.copy()
        sim.tick(1.0)
        change = np.abs(wrap_angle(sim.headings - before))
        self.assertTrue(np.all(change <= 0.5 + 1e-12))

    def test_zero_turn_rate_keeps_heading(self):
        sim = make_simulation(turn_rate=0.0)
        before = sim.headings.copy()
        sim.tick(1.0)
        np.testing.assert_allclose(sim.headings, np.mod(before, 2 * math.pi))

    def test_trail_records_each_tick(self):
        sim = make_simulation(positions=[[100.0, 100.0]], speed=1.0)
        for _ in range(3):
            sim.tick(1.0)
        trail = sim.particles[0].trail
        self.assertEqual(len(trail), 4)
        self.assertEqual(trail[-1], sim.particles[0].position)
        self.assertEqual(trail[0], (100.0, 100.0))

    def test_failed_tick_keeps_previous_state(self):
        sim = make_simulation(speed=1e308)
        positions = sim.positions.copy()
        headings = sim.headings.copy()
        with np.errstate(all='ignore'):
            with self.assertRaises(SimulationError):
                sim.tick(10.0)
        np.testing.assert_array_equal(sim.positions, positions)
        np.testing.assert_array_equal(sim.headings, headings)
        self.assertEqual(sim.step_count, 0)

    def test_bad_dt_degrades_locally(self):
        sim = make_simulation()
        before = sim.positions.copy()
        sim.tick(float('nan'))
        self.assertEqual(sim.step_count, 0)
        sim.tick(-1.0)
        np.testing.assert_array_equal(sim.positions, before)
        self.assertEqual(sim.step_count, 1)

    def test_positions_view_is_read_only(self):
        sim = make_simulation()
        with self.assertRaises(ValueError):
            sim.positions[0, 0] = 1.0

    def test_snapshot_is_independent(self):
        sim = make_simulation()
        state = sim.snapshot()
        state.positions[:] = -1.0
        self.assertTrue(np.all(sim.positions >= 0))
        self.assertEqual(state.trails.shape, (300, 4, 2))
        self.assertEqual(state.config, sim.config)


class TestReconfigure(unittest.TestCase):
    def test_reconfigure_does_not_move_particles(self):
        sim = make_simulation()
        sim.tick(1.0)
        positions = sim.positions.copy()
        headings = sim.headings.copy()
        sim.reconfigure(new_seed=7, new_scale_delta=0.02)
        np.testing.assert_array_equal(sim.positions, positions)
        np.testing.assert_array_equal(sim.headings, headings)

    def test_new_field_applies_from_next_tick(self):
        sim = make_simulation()
        config = sim.reconfigure(new_seed=1234)
        self.assertEqual(config, NoiseFieldConfig(seed=1234, scale=0.01))
        before = sim.positions.copy()
        sim.tick(1.0)
        np.testing.assert_array_equal(sim.headings, NoiseField(config).sample_many(before))

    def test_scale_clamped_to_floor(self):
        sim = make_simulation(noise_scale=0.02, min_scale=0.001)
        config = sim.reconfigure(new_scale_delta=-10.0)
        self.assertEqual(config.scale, 0.001)
        self.assertEqual(sim.config.scale, 0.001)

    def test_scale_clamped_to_ceiling(self):
        sim = make_simulation(max_scale=0.5)
        self.assertEqual(sim.reconfigure(new_scale_delta=3.0).scale, 0.5)
        self.assertEqual(sim.reconfigure(new_scale=0.25).scale, 0.25)

    def test_additive_step(self):
        sim = make_simulation(noise_scale=0.01)
        self.assertAlmostEqual(sim.reconfigure(new_scale_delta=0.005).scale, 0.015)

    def test_non_integral_seed_is_ignored(self):
        sim = make_simulation()
        self.assertEqual(sim.reconfigure(new_seed=3.7).seed, 42)
        self.assertEqual(sim.reconfigure(new_seed="7").seed, 42)
        self.assertEqual(sim.reconfigure(new_seed=5.0).seed, 5)
        self.assertEqual(sim.reconfigure(new_seed=np.int64(9)).seed, 9)

    def test_non_finite_requests_are_ignored(self):
        sim = make_simulation()
        before = sim.config
        self.assertEqual(sim.reconfigure(new_scale_delta=float('nan')), before)
        self.assertEqual(sim.reconfigure(new_scale=float('inf')), before)

    def test_invalid_start_scale_is_clamped(self):
        sim = make_simulation(noise_scale=-1.0, min_scale=0.002)
        self.assertEqual(sim.config.scale, 0.002)


class TestPopulationAndViewport(unittest.TestCase):
    def test_reset_particles(self):
        sim = make_simulation()
        before = sim.positions.copy()
        sim.reset_particles()
        self.assertFalse(np.array_equal(sim.positions, before))
        self.assertTrue(np.all(sim.positions < [WIDTH, HEIGHT]))

    def test_resize_viewport_rebounds_particles(self):
        sim = make_simulation()
        sim.resize_viewport(300, 200)
        self.assertTrue(np.all(sim.positions < [300, 200]))
        sim.tick(1.0)
        self.assertTrue(np.all(sim.positions < [300, 200]))
        sim.resize_viewport(0, 100)
        self.assertEqual((sim.width, sim.height), (300.0, 200.0))

    def test_set_particle_count(self):
        sim = make_simulation()
        sim.set_particle_count(350)
        sim.tick(1.0)
        self.assertEqual(sim.positions.shape, (350, 2))
        sim.set_particle_count(0)
        sim.tick(1.0)
        self.assertEqual(sim.positions.shape, (0, 2))

    def test_respawn_uses_simulation_viewport(self):
        params = {"seed": 8, "particle_count": 500, "boundary_policy": "respawn", "speed": 50.0}
        particles = ParticleSystem(params, 1200, 800)
        sim = Simulation(particles, params, 300, 200)
        self.assertEqual((particles.width, particles.height), (300.0, 200.0))
        self.assertTrue(np.all(sim.positions < [300, 200]))
        for _ in range(5):
            sim.tick(1.0)
            self.assertEqual(int(outside_mask(sim.positions, 300, 200).sum()), 0)

    def test_out_of_bounds_start_positions_are_rebounded(self):
        sim = make_simulation(positions=[[-10.0, 900.0]])
        np.testing.assert_allclose(sim.positions, [[1190.0, 100.0]])


class TestConfiguration(unittest.TestCase):
    def test_rejects_unknown_boundary_policy(self):
        with self.assertRaises(ValueError):
            make_simulation(boundary_policy="bounce")

    def test_rejects_inverted_scale_bounds(self):
        with self.assertRaises(ValueError):
            make_simulation(min_scale=0.5, max_scale=0.1)

    def test_rejects_negative_turn_rate(self):
        with self.assertRaises(ValueError):
            make_simulation(turn_rate=-1.0)

    def test_noise_seed_overrides_master_seed(self):
        sim = make_simulation(noise_seed=99)
        self.assertEqual(sim.config.seed, 99)


if __name__ == '__main__':
    unittest.main()
