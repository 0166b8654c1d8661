"""GLWE encryption scheme over Z_p[X] / (X^N + 1)."""

import dataclasses
from typing import Union

import jax
import jax.numpy as jnp
from vpbs.vpbs_lib import errors
from vpbs.vpbs_lib import goldilocks
from vpbs.vpbs_lib import lwe
from vpbs.vpbs_lib import parameters
from vpbs.vpbs_lib import polynomial
from vpbs.vpbs_lib import random_source


@dataclasses.dataclass
class GlweCiphertext:
  """A GLWE ciphertext.

  A GLWE ciphertext is a list of K = k+1 polynomials in Z_p[X] / (X^N + 1),
  where the last polynomial (the body) is a dot product of the first k (the
  masks) with the secret key, plus the plaintext and noise.
  """

  # the polynomials, packed so each row corresponds to one polynomial, and each
  # column corresponds to a coefficient of the same degree.  The first column is
  # the lowest degree.
  message: jnp.ndarray

  @property
  def glwe_dimension(self) -> int:
    return self.message.shape[0] - 1

  @property
  def polynomial_modulus_degree(self) -> int:
    return self.message.shape[-1]

  def check(self, params: parameters.SchemeParameters) -> 'GlweCiphertext':
    parameters.check_shape(
        'GLWE ciphertext', self.message.shape, params.glwe_shape
    )
    return self


@dataclasses.dataclass
class GlweSecretKey:
  """A secret key for the GLWE encryption scheme."""

  # the number of mask polynomials k, equal to len(GlweCiphertext) - 1
  glwe_dimension: int

  # the power of two N in the polynomial modulus x^N + 1
  polynomial_modulus_degree: int

  # the binary polynomials (s_1, ..., s_k) used as a dot product multiplicand
  # when encrypting.
  data: jnp.ndarray

  def __post_init__(self) -> None:
    parameters.check_shape(
        'GLWE secret key',
        self.data.shape,
        (self.glwe_dimension, self.polynomial_modulus_degree),
    )


def key_gen(
    params: parameters.SchemeParameters, prg: random_source.RandomSource
) -> GlweSecretKey:
  """Generate a GLWE key of k polynomials with uniform binary coefficients."""
  return GlweSecretKey(
      glwe_dimension=params.glwe_dimension,
      polynomial_modulus_degree=params.polynomial_modulus_degree,
      data=prg.sk_uniform(
          shape=(params.glwe_dimension, params.polynomial_modulus_degree)
      ),
  )


def partial_key(
    params: parameters.SchemeParameters, prg: random_source.RandomSource
) -> GlweSecretKey:
  """A GLWE key whose first n coefficient slots double as an LWE key.

  Slot i is coefficient i % N of polynomial i // N. The first
  `params.lwe_dimension` slots hold independent uniform bits and every other
  slot is zero, so that `flatten_partial_key` recovers the LWE key exactly.
  """
  num_slots = params.glwe_dimension * params.polynomial_modulus_degree
  bits = prg.sk_uniform(shape=(params.lwe_dimension,))
  flat = jnp.zeros((num_slots,), dtype=jnp.uint64)
  flat = flat.at[: params.lwe_dimension].set(bits)
  return GlweSecretKey(
      glwe_dimension=params.glwe_dimension,
      polynomial_modulus_degree=params.polynomial_modulus_degree,
      data=flat.reshape(
          (params.glwe_dimension, params.polynomial_modulus_degree)
      ),
  )


def flatten_partial_key(
    sk: GlweSecretKey, lwe_dimension: int
) -> lwe.LweSecretKey:
  """Extract the LWE key packed into the leading slots of a partial key."""
  num_slots = sk.glwe_dimension * sk.polynomial_modulus_degree
  if lwe_dimension > num_slots:
    raise errors.MalformedInputError(
        f'A GLWE key with {num_slots} slots cannot hold an LWE key of '
        f'dimension {lwe_dimension}.'
    )
  return lwe.LweSecretKey(
      lwe_dimension=lwe_dimension,
      key_data=sk.data.reshape(-1)[:lwe_dimension],
  )


def encrypt(
    plaintext: jnp.ndarray,
    sk: GlweSecretKey,
    prg: random_source.RandomSource,
) -> GlweCiphertext:
  """Encrypt an (already encoded) plaintext polynomial."""
  parameters.check_shape(
      'GLWE plaintext', plaintext.shape, (sk.polynomial_modulus_degree,)
  )
  ai_samples = prg.uniform(
      shape=(sk.glwe_dimension, sk.polynomial_modulus_degree)
  )
  error_sample = prg.rounded_normal(shape=(sk.polynomial_modulus_degree,))
  return GlweCiphertext(
      message=jit_encrypt(plaintext, sk.data, ai_samples, error_sample)
  )


@jax.jit
def jit_encrypt(
    plaintext: jnp.ndarray,
    key_data: jnp.ndarray,
    ai_samples: jnp.ndarray,
    error_sample: jnp.ndarray,
) -> jnp.ndarray:
  """Encrypt a GLWE plaintext with pre-computed randomness."""
  clean_product = goldilocks.add(
      polynomial.dot_product(ai_samples, key_data), plaintext
  )
  body = goldilocks.add(clean_product, goldilocks.from_signed(error_sample))
  return jnp.append(ai_samples, body[None, :], axis=0)


def decrypt(ciphertext: GlweCiphertext, sk: GlweSecretKey) -> jnp.ndarray:
  """Return the noisy plaintext body - sum_i mask_i * key_i."""
  expected = (sk.glwe_dimension + 1, sk.polynomial_modulus_degree)
  if ciphertext.message.shape != expected:
    raise errors.MalformedInputError(
        f'GLWE ciphertext of shape {ciphertext.message.shape} cannot be '
        f'decrypted with a key of shape {sk.data.shape}.'
    )
  return jit_decrypt(ciphertext.message, sk.data)


@jax.jit
def jit_decrypt(message: jnp.ndarray, key_data: jnp.ndarray) -> jnp.ndarray:
  return goldilocks.sub(
      message[-1], polynomial.dot_product(message[:-1], key_data)
  )


def trivial(
    plaintext: jnp.ndarray, params: parameters.SchemeParameters
) -> GlweCiphertext:
  """The noiseless encryption of a plaintext with all-zero masks."""
  parameters.check_shape(
      'GLWE plaintext', plaintext.shape, (params.polynomial_modulus_degree,)
  )
  masks = jnp.zeros(
      (params.glwe_dimension, params.polynomial_modulus_degree),
      dtype=jnp.uint64,
  )
  return GlweCiphertext(
      message=jnp.append(masks, plaintext[None, :].astype(jnp.uint64), axis=0)
  )


def add(a: GlweCiphertext, b: GlweCiphertext) -> GlweCiphertext:
  _check_compatible(a, b)
  return GlweCiphertext(message=polynomial.add(a.message, b.message))


def sub(a: GlweCiphertext, b: GlweCiphertext) -> GlweCiphertext:
  _check_compatible(a, b)
  return GlweCiphertext(message=polynomial.sub(a.message, b.message))


def rotate(
    ciphertext: GlweCiphertext, shift: Union[int, jnp.ndarray]
) -> GlweCiphertext:
  """Multiply every polynomial by X^shift, which rotates the plaintext."""
  return GlweCiphertext(message=polynomial.rotate(ciphertext.message, shift))


def _check_compatible(a: GlweCiphertext, b: GlweCiphertext) -> None:
  if a.message.shape != b.message.shape:
    raise errors.MalformedInputError(
        f'GLWE ciphertexts of shapes {a.message.shape} and {b.message.shape} '
        'cannot be combined.'
    )
