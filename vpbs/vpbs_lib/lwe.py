"""LWE encryption scheme over the Goldilocks field."""

import dataclasses
import functools
from typing import Union

import jax
import jax.numpy as jnp
from vpbs.vpbs_lib import errors
from vpbs.vpbs_lib import goldilocks
from vpbs.vpbs_lib import parameters
from vpbs.vpbs_lib import random_source


@dataclasses.dataclass
class LweSecretKey:
  """A secret key for the LWE encryption scheme."""

  # the length of the sampled key_data vector s,
  # equal to len(LweCiphertext) - 1.
  lwe_dimension: int

  # the values (s_1, ..., s_{lwe_dimension}) used as a dot product
  # multiplicand when encrypting.
  key_data: jnp.ndarray

  def __post_init__(self) -> None:
    parameters.check_shape(
        'LWE secret key', self.key_data.shape, (self.lwe_dimension,)
    )


@dataclasses.dataclass
class LweCiphertext:
  """An LWE ciphertext (a_1, ..., a_n, b) of n + 1 field elements."""

  # the number n of mask coordinates
  lwe_dimension: int

  # the mask followed by the body
  message: jnp.ndarray

  def __post_init__(self) -> None:
    parameters.check_shape(
        'LWE ciphertext', self.message.shape, (self.lwe_dimension + 1,)
    )

  @property
  def mask(self) -> jnp.ndarray:
    return self.message[:-1]

  @property
  def body(self) -> jnp.ndarray:
    return self.message[-1]


def gen_key(
    params: parameters.SchemeParameters, prg: random_source.RandomSource
) -> LweSecretKey:
  """Generate a binary LWE secret key."""
  return LweSecretKey(
      lwe_dimension=params.lwe_dimension,
      key_data=prg.sk_uniform(shape=(params.lwe_dimension,)),
  )


def encrypt(
    plaintext: Union[int, jnp.ndarray],
    sk: LweSecretKey,
    prg: random_source.RandomSource,
) -> LweCiphertext:
  """Encrypt an (already encoded) LWE plaintext."""
  if isinstance(plaintext, int):
    plaintext = goldilocks.from_int(plaintext)
  ai_samples = prg.uniform(shape=(sk.lwe_dimension,))
  error_sample = prg.rounded_normal()
  return LweCiphertext(
      lwe_dimension=sk.lwe_dimension,
      message=jit_encrypt(plaintext, sk.key_data, ai_samples, error_sample),
  )


@jax.jit
def jit_encrypt(
    plaintext: jnp.ndarray,
    key_data: jnp.ndarray,
    ai_samples: jnp.ndarray,
    error_sample: jnp.ndarray,
) -> jnp.ndarray:
  """Encrypt an LWE plaintext with pre-computed randomness."""
  dot_prod = goldilocks.reduce_sum(goldilocks.mul(ai_samples, key_data))
  body = goldilocks.add(
      goldilocks.add(dot_prod, plaintext), goldilocks.from_signed(error_sample)
  )
  return jnp.append(ai_samples, jnp.array([body], dtype=jnp.uint64))


def decrypt(ciphertext: LweCiphertext, sk: LweSecretKey) -> jnp.ndarray:
  """Return the noisy plaintext body - <mask, key>."""
  if ciphertext.lwe_dimension != sk.lwe_dimension:
    raise errors.MalformedInputError(
        f'Ciphertext of dimension {ciphertext.lwe_dimension} cannot be '
        f'decrypted with a key of dimension {sk.lwe_dimension}.'
    )
  dot_prod = goldilocks.reduce_sum(
      goldilocks.mul(ciphertext.mask, sk.key_data)
  )
  return goldilocks.sub(ciphertext.body, dot_prod)


def multiply_constant(
    ciphertext: LweCiphertext, constant: Union[int, jnp.ndarray]
) -> LweCiphertext:
  """Scale every coordinate, which scales the plaintext by the same amount."""
  if isinstance(constant, int):
    constant = goldilocks.from_int(constant)
  return LweCiphertext(
      lwe_dimension=ciphertext.lwe_dimension,
      message=goldilocks.mul(ciphertext.message, constant),
  )


def add(a: LweCiphertext, b: LweCiphertext) -> LweCiphertext:
  if a.lwe_dimension != b.lwe_dimension:
    raise errors.MalformedInputError(
        f'Cannot add LWE ciphertexts of dimensions {a.lwe_dimension} and '
        f'{b.lwe_dimension}.'
    )
  return LweCiphertext(
      lwe_dimension=a.lwe_dimension,
      message=goldilocks.add(a.message, b.message),
  )


def weighted_sum(
    ct_1: LweCiphertext,
    ct_2: LweCiphertext,
    weight_1: int,
    weight_2: int,
) -> LweCiphertext:
  """w_1 * ct_1 + w_2 * ct_2, an encryption of w_1 * m_1 + w_2 * m_2."""
  return add(
      multiply_constant(ct_1, weight_1), multiply_constant(ct_2, weight_2)
  )


@functools.partial(jax.jit, static_argnames='log_mod_degree')
def jit_mod_switch(x: jnp.ndarray, log_mod_degree: int) -> jnp.ndarray:
  """Round x * 2N / 2^64 to the nearest integer, modulo 2N."""
  shift = goldilocks.BITS - log_mod_degree - 2
  rounded = ((x >> shift) + 1) >> 1
  return (rounded % (2 << log_mod_degree)).astype(jnp.int64)


def mod_switch(
    ciphertext: LweCiphertext, params: parameters.SchemeParameters
) -> jnp.ndarray:
  """Rescale every coordinate into [0, 2N), a valid rotation amount."""
  return jit_mod_switch(ciphertext.message, params.log_mod_degree)
