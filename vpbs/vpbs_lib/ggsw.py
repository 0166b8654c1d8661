"""Gadget ciphertexts (Glev and GGSW) and the external product.

A Glev encryption of a polynomial x is the list of ELL GLWE encryptions of
x * g_1, ..., x * g_ELL, where g_i = 2^(64 - i * LOGB) plays the role of
q / B^i. A GGSW encryption of x holds one Glev per GLWE key component:
component j < k encrypts -x * s_j and the last component encrypts x.

The external product of GGSW(x) with a GLWE ciphertext c decomposes every
polynomial of c into signed digits and takes the digit-weighted sum of the
GGSW rows, producing a GLWE encryption of x * phase(c).
"""

import dataclasses
import functools

import jax
import jax.numpy as jnp
from vpbs.vpbs_lib import decomposition
from vpbs.vpbs_lib import glwe
from vpbs.vpbs_lib import goldilocks
from vpbs.vpbs_lib import ntt
from vpbs.vpbs_lib import parameters
from vpbs.vpbs_lib import polynomial
from vpbs.vpbs_lib import random_source


@dataclasses.dataclass
class GlevCiphertext:
  """ELL GLWE ciphertexts of the same polynomial at decreasing scales."""

  # shape (ELL, K, N), level-major
  message: jnp.ndarray

  def check(self, params: parameters.SchemeParameters) -> 'GlevCiphertext':
    parameters.check_shape(
        'Glev ciphertext', self.message.shape, params.glev_shape
    )
    return self

  @property
  def glwes(self):
    return [glwe.GlweCiphertext(message=row) for row in self.message]


@dataclasses.dataclass
class GgswCiphertext:
  """K Glev ciphertexts, one per GLWE key component."""

  # shape (K, ELL, K, N)
  message: jnp.ndarray

  def check(self, params: parameters.SchemeParameters) -> 'GgswCiphertext':
    parameters.check_shape(
        'GGSW ciphertext', self.message.shape, params.ggsw_shape
    )
    return self

  @property
  def glevs(self):
    return [GlevCiphertext(message=row) for row in self.message]

  def flatten(self) -> jnp.ndarray:
    """All coefficients in nesting order: Glev, level, polynomial, degree."""
    return self.message.reshape(-1)


def zero(params: parameters.SchemeParameters) -> GgswCiphertext:
  """The all-zero GGSW-shaped ciphertext."""
  return GgswCiphertext(message=jnp.zeros(params.ggsw_shape, dtype=jnp.uint64))


# Encrypts one plaintext row per (component, level), vectorized over both.
_batched_glwe_encrypt = jax.vmap(
    jax.vmap(glwe.jit_encrypt, in_axes=(0, None, 0, 0)),
    in_axes=(0, None, 0, 0),
)


def encrypt_gadget_matrix(
    plaintexts: jnp.ndarray,
    sk: glwe.GlweSecretKey,
    params: parameters.SchemeParameters,
    prg: random_source.RandomSource,
) -> GgswCiphertext:
  """Encrypt K plaintext polynomials, each as a Glev.

  Args:
    plaintexts: a (K, N) array; row j is the polynomial encrypted by Glev j.
    sk: the GLWE key to encrypt under.
    params: the scheme parameters.
    prg: the source of masks and noise.

  Returns:
    A GGSW-shaped ciphertext whose [j, i] entry encrypts plaintexts[j] * g_i.
  """
  parameters.check_shape(
      'gadget plaintexts', plaintexts.shape, params.glwe_shape
  )
  gadget = decomposition.gadget_array(params.log_base, params.level_count)
  scaled = goldilocks.mul(plaintexts[:, None, :], gadget[None, :, None])
  ai_samples = prg.uniform(
      shape=(
          params.glwe_size,
          params.level_count,
          params.glwe_dimension,
          params.polynomial_modulus_degree,
      )
  )
  error_samples = prg.rounded_normal(
      shape=(
          params.glwe_size,
          params.level_count,
          params.polynomial_modulus_degree,
      )
  )
  return GgswCiphertext(
      message=_batched_glwe_encrypt(scaled, sk.data, ai_samples, error_samples)
  )


def encrypt(
    x: jnp.ndarray,
    sk: glwe.GlweSecretKey,
    params: parameters.SchemeParameters,
    prg: random_source.RandomSource,
) -> GgswCiphertext:
  """GGSW-encrypt the polynomial x under sk."""
  parameters.check_shape(
      'GGSW plaintext', x.shape, (params.polynomial_modulus_degree,)
  )
  key_terms = goldilocks.neg(polynomial.mul(x[None, :], sk.data))
  plaintexts = jnp.append(key_terms, x[None, :], axis=0)
  return encrypt_gadget_matrix(plaintexts, sk, params, prg)


def encrypt_constant(
    value: int,
    sk: glwe.GlweSecretKey,
    params: parameters.SchemeParameters,
    prg: random_source.RandomSource,
) -> GgswCiphertext:
  """GGSW-encrypt the constant polynomial `value`."""
  x = jnp.zeros((params.polynomial_modulus_degree,), dtype=jnp.uint64)
  x = x.at[0].set(goldilocks.from_int(value))
  return encrypt(x, sk, params, prg)


@functools.partial(jax.jit, static_argnames=('log_base', 'level_count'))
def jit_external_product(
    ggsw_message: jnp.ndarray,
    glwe_message: jnp.ndarray,
    log_base: int,
    level_count: int,
) -> jnp.ndarray:
  """The external product on raw arrays.

  Args:
    ggsw_message: the (K, ELL, K, N) GGSW ciphertext.
    glwe_message: the (K, N) GLWE ciphertext.
    log_base: log2 of the decomposition base.
    level_count: the number of digits.

  Returns:
    The (K, N) GLWE ciphertext sum_{j,i} digit_{j,i}(c_j) * GGSW[j][i].
  """
  digits = decomposition.decompose_glwe(glwe_message, log_base, level_count)
  digit_evals = ntt.forward(digits)
  ggsw_evals = ntt.forward(ggsw_message)
  products = goldilocks.mul(digit_evals[:, :, None, :], ggsw_evals)
  k_size, ell, _, n = products.shape
  flat = products.reshape((k_size * ell, k_size, n))
  return ntt.backward(goldilocks.reduce_sum(flat, axis=0))


def external_product(
    ggsw_ct: GgswCiphertext,
    glwe_ct: glwe.GlweCiphertext,
    params: parameters.SchemeParameters,
) -> glwe.GlweCiphertext:
  ggsw_ct.check(params)
  glwe_ct.check(params)
  return glwe.GlweCiphertext(
      message=jit_external_product(
          ggsw_ct.message,
          glwe_ct.message,
          log_base=params.log_base,
          level_count=params.level_count,
      )
  )


def cmux(
    control: GgswCiphertext,
    eq_zero: glwe.GlweCiphertext,
    neq_zero: glwe.GlweCiphertext,
    params: parameters.SchemeParameters,
) -> glwe.GlweCiphertext:
  """eq_zero if control encrypts 0, neq_zero if it encrypts 1."""
  difference = glwe.sub(neq_zero, eq_zero)
  return glwe.add(eq_zero, external_product(control, difference, params))
