"""Tests for random_source."""

import jax.numpy as jnp
from vpbs.vpbs_lib import goldilocks
from vpbs.vpbs_lib import random_source
import numpy as np

from absl.testing import absltest
from absl.testing import parameterized


class ShapeGeneratorTest(parameterized.TestCase):

  @parameterized.parameters((10,), (3, 4), (2, 2, 2, 2), (0, 5))
  def test_valid_shape(self, *shape):
    result = random_source._shape_generator(lambda: 1, shape)
    self.assertEqual(result.shape, shape)

  def test_invalid_shape(self):
    with self.assertRaises(ValueError):
      random_source._shape_generator(lambda: 1, (-1, 1))


class AllRngsTest(parameterized.TestCase):

  @parameterized.parameters(*random_source.ALL_RNGS)
  def test_sk_uniform_is_binary(self, rng_class):
    data = goldilocks.to_int(rng_class().sk_uniform(shape=(100,)))
    self.assertEmpty(set(data) - {0, 1})

  @parameterized.parameters(*random_source.ALL_RNGS)
  def test_shapes_and_types(self, rng_class):
    rng = rng_class()
    self.assertEqual(rng.uniform((4, 5)).shape, (4, 5))
    self.assertEqual(rng.uniform((4, 5)).dtype, jnp.uint64)
    self.assertEqual(rng.rounded_normal((4, 5)).dtype, jnp.int64)
    self.assertEqual(rng.rounded_normal((3,), dtype=jnp.int32).dtype, jnp.int32)


@parameterized.parameters(
    random_source.SystemRandomSource(),
    random_source.PseudorandomSource(),
)
class FieldRandomSourceTest(parameterized.TestCase):
  """Sources that sample the whole field by default."""

  def test_uniform_is_canonical(self, rng: random_source.RandomSource):
    values = np.asarray(rng.uniform((1000,)))
    self.assertTrue(np.all(values < np.uint64(goldilocks.MODULUS)))
    # 1000 draws from 2^64 values all landing below 2^63 has odds 2^-1000.
    self.assertTrue(np.any(values >= np.uint64(2**63)))

  def test_uniform_respects_bounds(self, rng: random_source.RandomSource):
    bounded = type(rng)(uniform_bounds=(5, 9))
    values = np.asarray(bounded.uniform((1000,)))
    self.assertTrue(np.all((values >= 5) & (values <= 9)))
    self.assertEqual(set(values.tolist()), {5, 6, 7, 8, 9})


class PseudorandomSourceTest(absltest.TestCase):

  def test_same_seed_same_samples(self):
    a = random_source.PseudorandomSource(normal_std=100, seed=42)
    b = random_source.PseudorandomSource(normal_std=100, seed=42)
    np.testing.assert_array_equal(a.uniform((50,)), b.uniform((50,)))
    np.testing.assert_array_equal(
        a.rounded_normal((50,)), b.rounded_normal((50,))
    )
    np.testing.assert_array_equal(a.sk_uniform((50,)), b.sk_uniform((50,)))

  def test_normal_spread(self):
    rng = random_source.PseudorandomSource(normal_std=2**20, seed=1)
    samples = np.asarray(rng.rounded_normal((10000,)), dtype=np.float64)
    self.assertLess(abs(samples.mean()), 2**16)
    self.assertBetween(samples.std(), 0.9 * 2**20, 1.1 * 2**20)

  def test_zero_std_is_noiseless(self):
    rng = random_source.PseudorandomSource(normal_std=0, seed=1)
    self.assertTrue(jnp.all(rng.rounded_normal((100,)) == 0))

  def test_relative_noise_std(self):
    self.assertEqual(
        random_source.relative_noise_std(0.5), 0.5 * goldilocks.MODULUS
    )


class DeterministicRngTest(absltest.TestCase):

  def test_cycle_rng(self):
    rng = random_source.CycleRng(const_normal_noise=10)
    np.testing.assert_array_equal(
        rng.uniform((12,)), [1, 1, 0, 0, 0, 1, 1, 1, 1, 0, 1, 1]
    )
    self.assertTrue(jnp.all(rng.rounded_normal((10,)) == 10))

  def test_normal_only_rng(self):
    rng = random_source.NormalOnlyRng(normal_std=5, seed=3)
    self.assertTrue(jnp.all(rng.uniform((10, 10)) == 0))
    self.assertTrue(jnp.any(rng.rounded_normal((100,)) != 0))

  def test_constant_uniform_rng(self):
    rng = random_source.ConstantUniformRng(const_uniform=7)
    self.assertTrue(jnp.all(rng.uniform((10, 10)) == 7))

  def test_zero_rng(self):
    rng = random_source.ZeroRng()
    self.assertTrue(jnp.all(rng.uniform((10,)) == 0))
    self.assertTrue(jnp.all(rng.rounded_normal((10,)) == 0))
    self.assertTrue(jnp.all(rng.sk_uniform((10,)) == 0))


if __name__ == '__main__':
  absltest.main()
