"""Tests for ggsw and key_switch."""

import jax.numpy as jnp
from vpbs.vpbs_lib import errors
from vpbs.vpbs_lib import ggsw
from vpbs.vpbs_lib import glwe
from vpbs.vpbs_lib import goldilocks
from vpbs.vpbs_lib import key_switch
from vpbs.vpbs_lib import parameters
from vpbs.vpbs_lib import polynomial
from vpbs.vpbs_lib import random_source
from vpbs.vpbs_lib import test_utils
import numpy as np

from absl.testing import absltest
from absl.testing import parameterized

P = goldilocks.MODULUS


def _params(glwe_dimension=1, log_base=8, level_count=8):
  return parameters.SchemeParameters(
      lwe_dimension=1,
      glwe_dimension=glwe_dimension,
      polynomial_modulus_degree=8,
      log_base=log_base,
      level_count=level_count,
  )


def _monomial(degree, n=8):
  return jnp.zeros((n,), dtype=jnp.uint64).at[degree].set(jnp.uint64(1))


class ExternalProductTest(parameterized.TestCase):

  @parameterized.product(
      glwe_dimension=(1, 2),
      control=('zero', 'one', 'x_cubed', 'minus_one'),
  )
  def test_exact_with_full_precision(self, glwe_dimension, control):
    params = _params(glwe_dimension=glwe_dimension)
    prg = random_source.PseudorandomSource(normal_std=0, seed=glwe_dimension)
    sk = glwe.key_gen(params, prg)
    x = {
        'zero': jnp.zeros((8,), dtype=jnp.uint64),
        'one': _monomial(0),
        'x_cubed': _monomial(3),
        'minus_one': goldilocks.neg(_monomial(0)),
    }[control]
    ggsw_ct = ggsw.encrypt(x, sk, params, prg).check(params)
    plaintext = prg.uniform(shape=(8,))
    glwe_ct = glwe.encrypt(plaintext, sk, prg)

    product = ggsw.external_product(ggsw_ct, glwe_ct, params)
    np.testing.assert_array_equal(
        glwe.decrypt(product, sk), polynomial.mul(x, plaintext)
    )

  @parameterized.parameters((8, 4), (16, 2), (4, 8))
  def test_rounding_error_is_bounded(self, log_base, level_count):
    params = _params(log_base=log_base, level_count=level_count)
    prg = random_source.PseudorandomSource(normal_std=0, seed=log_base)
    sk = glwe.key_gen(params, prg)
    ggsw_ct = ggsw.encrypt_constant(1, sk, params, prg)
    plaintext = prg.uniform(shape=(8,))
    glwe_ct = glwe.encrypt(plaintext, sk, prg)

    product = ggsw.external_product(ggsw_ct, glwe_ct, params)
    _, max_error = test_utils.error_stats(
        glwe.decrypt(product, sk), plaintext
    )
    # Each polynomial of the input drops a remainder of at most 2^(s - 1),
    # and the binary key multiplies k of them by at most N coefficients.
    shift = 64 - log_base * level_count
    bound = (1 + params.glwe_dimension * 8) * (1 << (shift - 1))
    self.assertLessEqual(max_error, bound)

  def test_noise_grows_with_ggsw_noise(self):
    params = _params()
    prg = random_source.PseudorandomSource(normal_std=0, seed=3)
    sk = glwe.key_gen(params, prg)
    plaintext = prg.uniform(shape=(8,))
    glwe_ct = glwe.encrypt(plaintext, sk, prg)
    noisy_prg = random_source.PseudorandomSource(normal_std=2**10, seed=4)
    ggsw_ct = ggsw.encrypt_constant(1, sk, params, noisy_prg)

    product = ggsw.external_product(ggsw_ct, glwe_ct, params)
    avg_error, max_error = test_utils.error_stats(
        glwe.decrypt(product, sk), plaintext
    )
    self.assertGreater(avg_error, 0)
    # K * ELL noise terms, each scaled by a digit of magnitude <= B/2.
    self.assertLess(max_error, 2 * 8 * 128 * 8 * 2**10 * 8)

  @parameterized.parameters(0, 1)
  def test_cmux(self, bit):
    params = _params(glwe_dimension=2)
    prg = random_source.PseudorandomSource(normal_std=0, seed=bit)
    sk = glwe.key_gen(params, prg)
    control = ggsw.encrypt_constant(bit, sk, params, prg)
    a = prg.uniform(shape=(8,))
    b = prg.uniform(shape=(8,))
    selected = ggsw.cmux(
        control,
        glwe.encrypt(a, sk, prg),
        glwe.encrypt(b, sk, prg),
        params,
    )
    np.testing.assert_array_equal(glwe.decrypt(selected, sk), b if bit else a)

  def test_zero_ggsw_annihilates(self):
    params = _params()
    prg = random_source.PseudorandomSource(seed=5)
    glwe_ct = glwe.GlweCiphertext(message=prg.uniform(shape=params.glwe_shape))
    product = ggsw.external_product(ggsw.zero(params), glwe_ct, params)
    np.testing.assert_array_equal(
        product.message, jnp.zeros(params.glwe_shape, dtype=jnp.uint64)
    )

  def test_glevs_view(self):
    params = _params(glwe_dimension=2, log_base=16, level_count=4)
    ggsw_ct = ggsw.zero(params)
    self.assertLen(ggsw_ct.glevs, 3)
    self.assertLen(ggsw_ct.glevs[0].glwes, 4)
    self.assertEqual(ggsw_ct.glevs[0].check(params).message.shape, (4, 3, 8))
    self.assertEqual(ggsw_ct.flatten().shape, (3 * 4 * 3 * 8,))

  def test_rejects_mismatched_shapes(self):
    params = _params()
    glwe_ct = glwe.GlweCiphertext(
        message=jnp.zeros((3, 8), dtype=jnp.uint64)
    )
    with self.assertRaises(errors.MalformedInputError):
      ggsw.external_product(ggsw.zero(params), glwe_ct, params)


class KeySwitchTest(parameterized.TestCase):

  @parameterized.parameters(1, 2)
  def test_switches_to_partial_key(self, glwe_dimension):
    params = _params(glwe_dimension=glwe_dimension)
    prg = random_source.PseudorandomSource(normal_std=0, seed=7)
    from_key = glwe.key_gen(params, prg)
    to_key = glwe.partial_key(params, prg)
    ksk = key_switch.compute_ksk(to_key, from_key, params, prg)
    plaintext = prg.uniform(shape=(8,))
    ciphertext = glwe.encrypt(plaintext, from_key, prg)

    switched = key_switch.key_switch(ksk, ciphertext, params)
    np.testing.assert_array_equal(glwe.decrypt(switched, to_key), plaintext)
    self.assertEqual(ksk.flatten().shape, (np.prod(params.ggsw_shape),))

  def test_rejects_incompatible_keys(self):
    prg = random_source.PseudorandomSource(seed=8)
    to_key = glwe.key_gen(_params(glwe_dimension=1), prg)
    from_key = glwe.key_gen(_params(glwe_dimension=2), prg)
    with self.assertRaises(errors.MalformedInputError):
      key_switch.compute_ksk(to_key, from_key, _params(), prg)


if __name__ == '__main__':
  absltest.main()
