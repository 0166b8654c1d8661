"""Signed gadget decomposition of field elements.

A field element y is centered into (-p/2, p/2], rounded to its top
ELL * LOGB bits, and split into ELL balanced base-B digits d_1, ..., d_ELL
(most significant first) so that

    y = sum_i d_i * g_i + r   (mod p),   g_i = 2^(64 - i * LOGB)

with |r| <= 2^(64 - ELL * LOGB - 1). Digits lie in [-B/2, B/2), except the
most significant one, which absorbs the final carry and lies in [-B/2, B/2].
When ELL * LOGB = 64 the remainder is always zero.
"""

import functools
from typing import List, Tuple

import jax
import jax.numpy as jnp
import numpy as np
from vpbs.vpbs_lib import goldilocks


def gadget_values(log_base: int, level_count: int) -> List[int]:
  """g_i = 2^(64 - i * log_base) mod p for i = 1..level_count."""
  return [
      pow(2, goldilocks.BITS - i * log_base, goldilocks.MODULUS)
      for i in range(1, level_count + 1)
  ]


def gadget_array(log_base: int, level_count: int) -> jnp.ndarray:
  return jnp.asarray(
      np.array(gadget_values(log_base, level_count), dtype=np.uint64)
  )


def remainder_bits(log_base: int, level_count: int) -> int:
  """The number of low bits dropped by rounding before decomposition."""
  return goldilocks.BITS - log_base * level_count


def signed_digits(
    value: int, log_base: int, level_count: int
) -> Tuple[List[int], int]:
  """Decompose one canonical field element given as a Python int.

  Args:
    value: a canonical field element.
    log_base: log2 of the decomposition base.
    level_count: the number of digits.

  Returns:
    The signed digits, most significant first, and the signed rounding
    remainder r such that value = sum_i d_i * g_i + r (mod p).
  """
  p = goldilocks.MODULUS
  centered = value - p if value > (p - 1) // 2 else value
  shift = remainder_bits(log_base, level_count)
  if shift > 0:
    rounded = (centered >> shift) + ((centered >> (shift - 1)) & 1)
  else:
    rounded = centered
  remainder = centered - (rounded << shift)

  base = 1 << log_base
  half = base >> 1
  digits = []
  for _ in range(level_count):
    digit = rounded & (base - 1)
    if digit >= half:
      digit -= base
    digits.append(digit)
    rounded = (rounded - digit) >> log_base
  digits[-1] += rounded * base
  return digits[::-1], remainder


@functools.partial(jax.jit, static_argnames=('log_base', 'level_count'))
def signed_decomposition(
    x: jnp.ndarray, log_base: int, level_count: int
) -> jnp.ndarray:
  """Decompose every element of x; digits are int64.

  Args:
    x: canonical field elements of any shape (..., N).
    log_base: log2 of the decomposition base.
    level_count: the number of digits.

  Returns:
    An int64 array of shape (..., level_count, N), most significant digit
    first along the new axis.
  """
  rounded = goldilocks.centered(x)
  shift = remainder_bits(log_base, level_count)
  if shift > 0:
    rounded = (rounded >> shift) + ((rounded >> (shift - 1)) & 1)

  base = 1 << log_base
  half = base >> 1
  digits = []
  for _ in range(level_count):
    digit = rounded & (base - 1)
    digit = jnp.where(digit >= half, digit - base, digit)
    digits.append(digit)
    rounded = (rounded - digit) >> log_base
  digits[-1] = digits[-1] + rounded * base
  return jnp.stack(digits[::-1], axis=-2)


def decompose_glwe(
    glwe_message: jnp.ndarray, log_base: int, level_count: int
) -> jnp.ndarray:
  """Decompose a (K, N) GLWE ciphertext into (K, ELL, N) field digits."""
  digits = signed_decomposition(glwe_message, log_base, level_count)
  return goldilocks.from_signed(digits)
