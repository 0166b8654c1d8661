"""Arithmetic in the Goldilocks prime field on uint64 JAX arrays.

The field modulus is p = 2^64 - 2^32 + 1. Elements are stored canonically as
uint64 values in [0, p). Because 2^64 = 2^32 - 1 (mod p), the 128-bit product
of two elements can be reduced with a few 64-bit additions and subtractions,
so every operation in this module is exact and can be traced by jax.jit.

Python integers are used for host-side constants (twiddle factors, gadget
values, circuit witnesses); `from_int` and `to_int` convert between the two
representations.
"""

from typing import Any

import jax
import jax.numpy as jnp
import numpy as np

jax.config.update('jax_enable_x64', True)

# p = 2^64 - 2^32 + 1
MODULUS = 0xFFFFFFFF00000001

# Number of bits in a machine word holding one element.
BITS = 64

# 2^64 mod p
EPSILON = 0xFFFFFFFF

# A generator of the multiplicative group of the field.
MULTIPLICATIVE_GENERATOR = 7

# p - 1 = 2^32 * (2^32 - 1)
TWO_ADICITY = 32

_P = np.uint64(MODULUS)
_EPSILON = np.uint64(EPSILON)
_LOW_MASK = np.uint64(0xFFFFFFFF)
_HALF = np.uint64((MODULUS - 1) // 2)


def inverse(value: int) -> int:
  """The multiplicative inverse of a nonzero Python int modulo p."""
  if value % MODULUS == 0:
    raise ZeroDivisionError('0 has no inverse in the Goldilocks field.')
  return pow(value, MODULUS - 2, MODULUS)


def from_int(values: Any) -> jnp.ndarray:
  """Reduce (nested) Python ints, possibly negative, to canonical uint64."""
  reduced = np.array(values, dtype=object) % MODULUS
  return jnp.asarray(np.array(reduced, dtype=np.uint64))


def to_int(values: jnp.ndarray) -> Any:
  """Convert canonical uint64 elements to (nested lists of) Python ints."""
  return np.asarray(values, dtype=np.uint64).tolist()


def to_signed_int(values: jnp.ndarray) -> Any:
  """Like to_int, but with the centered representatives of `centered`."""
  return np.asarray(centered(jnp.asarray(values, dtype=jnp.uint64))).tolist()


def canonical(x: jnp.ndarray) -> jnp.ndarray:
  """Map a uint64 value in [0, 2^64) to its canonical representative."""
  return jnp.where(x >= _P, x - _P, x)


@jax.named_call
def add(a: jnp.ndarray, b: jnp.ndarray) -> jnp.ndarray:
  total = a + b
  # the sum wrapped past 2^64, and 2^64 = EPSILON (mod p)
  total = jnp.where(total < a, total + _EPSILON, total)
  return canonical(total)


@jax.named_call
def sub(a: jnp.ndarray, b: jnp.ndarray) -> jnp.ndarray:
  diff = a - b
  return jnp.where(a < b, diff - _EPSILON, diff)


@jax.named_call
def neg(a: jnp.ndarray) -> jnp.ndarray:
  return jnp.where(a == 0, a, _P - a)


def _mul_wide(a: jnp.ndarray, b: jnp.ndarray):
  """The 128-bit product of two uint64 arrays as (low, high) words."""
  a_lo = a & _LOW_MASK
  a_hi = a >> 32
  b_lo = b & _LOW_MASK
  b_hi = b >> 32

  lo_lo = a_lo * b_lo
  lo_hi = a_lo * b_hi
  hi_lo = a_hi * b_lo
  hi_hi = a_hi * b_hi

  middle = (lo_lo >> 32) + (lo_hi & _LOW_MASK) + (hi_lo & _LOW_MASK)
  low = (lo_lo & _LOW_MASK) | ((middle & _LOW_MASK) << 32)
  high = hi_hi + (lo_hi >> 32) + (hi_lo >> 32) + (middle >> 32)
  return low, high


def reduce128(low: jnp.ndarray, high: jnp.ndarray) -> jnp.ndarray:
  """Reduce low + high * 2^64 modulo p.

  Writing high = h1 * 2^32 + h0, we have 2^64 = EPSILON and 2^96 = -1, so the
  value is congruent to low - h1 + h0 * EPSILON.
  """
  high_hi = high >> 32
  high_lo = high & _EPSILON

  t0 = low - high_hi
  t0 = jnp.where(low < high_hi, t0 - _EPSILON, t0)
  t1 = high_lo * _EPSILON
  t2 = t0 + t1
  t2 = jnp.where(t2 < t1, t2 + _EPSILON, t2)
  return canonical(t2)


@jax.named_call
def mul(a: jnp.ndarray, b: jnp.ndarray) -> jnp.ndarray:
  low, high = _mul_wide(a, b)
  return reduce128(low, high)


@jax.named_call
def reduce_sum(x: jnp.ndarray, axis: int = -1) -> jnp.ndarray:
  """Sum canonical elements along an axis without intermediate overflow.

  The 32-bit halves are summed separately; each partial sum stays below 2^64
  for fewer than 2^32 terms. The high half carries a factor of 2^32, which is
  split into the low and high words of a 128-bit value before reduction.
  """
  low_sum = jnp.sum(x & _LOW_MASK, axis=axis, dtype=jnp.uint64)
  high_sum = jnp.sum(x >> 32, axis=axis, dtype=jnp.uint64)

  low = (high_sum & _LOW_MASK) << 32
  high = high_sum >> 32
  total_low = low + low_sum
  high = jnp.where(total_low < low, high + np.uint64(1), high)
  return reduce128(total_low, high)


def centered(x: jnp.ndarray) -> jnp.ndarray:
  """The signed representative of each element in (-p/2, p/2], as int64."""
  wrapped = jax.lax.bitcast_convert_type(x - _P, jnp.int64)
  direct = jax.lax.bitcast_convert_type(x, jnp.int64)
  return jnp.where(x > _HALF, wrapped, direct)


def from_signed(x: jnp.ndarray) -> jnp.ndarray:
  """Map int64 values to canonical field elements."""
  unsigned = jax.lax.bitcast_convert_type(x.astype(jnp.int64), jnp.uint64)
  # a negative x is stored as 2^64 + x, and 2^64 = EPSILON (mod p)
  return jnp.where(x < 0, unsigned - _EPSILON, canonical(unsigned))


def power(base: jnp.ndarray, exponent: int) -> jnp.ndarray:
  """base^exponent by square and multiply, for a non-negative Python int."""
  if exponent < 0:
    raise ValueError(f'Exponent {exponent} must be non-negative.')
  result = jnp.ones_like(base)
  square = base
  while exponent:
    if exponent & 1:
      result = mul(result, square)
    square = mul(square, square)
    exponent >>= 1
  return result
