"""Negacyclic number-theoretic transform over the Goldilocks field.

Polynomials in Z_p[X] / (X^N + 1) are mapped to their evaluations at the odd
powers of a primitive 2N-th root of unity psi. The forward transform is an
iterative Cooley-Tukey network taking natural-order coefficients to
bit-reversed evaluations; the inverse is a Gentleman-Sande network mapping
them back. Pointwise products in the evaluation domain are negacyclic
products in the coefficient domain.

The twiddle tables are exact Python ints (so that circuits can embed them as
constants) and are mirrored as uint64 arrays for the JAX kernels.
"""

import dataclasses
import functools
from typing import List

import jax
import jax.numpy as jnp
import numpy as np
from vpbs.vpbs_lib import goldilocks


def bit_reversal(value: int, num_bits: int) -> int:
  result = 0
  for _ in range(num_bits):
    result = (result << 1) | (value & 1)
    value >>= 1
  return result


def is_power_of_two(n: int) -> bool:
  return n > 0 and n & (n - 1) == 0


def primitive_root_of_unity(order: int) -> int:
  """A primitive root of unity of the given power-of-two order."""
  if not is_power_of_two(order):
    raise ValueError(f'Root of unity order {order} is not a power of two.')
  if (goldilocks.MODULUS - 1) % order:
    raise ValueError(f'The field has no root of unity of order {order}.')
  return pow(
      goldilocks.MULTIPLICATIVE_GENERATOR,
      (goldilocks.MODULUS - 1) // order,
      goldilocks.MODULUS,
  )


@dataclasses.dataclass(frozen=True)
class NttContext:
  """Precomputed twiddle factors for one polynomial degree."""

  # the degree N of the ring modulus polynomial X^N + 1
  degree: int

  # psi^bitrev(i) for i in [0, N), psi a primitive 2N-th root of unity
  psis_bitrev: List[int] = dataclasses.field(init=False)

  # psi^-bitrev(i) for i in [0, N)
  psis_inv_bitrev: List[int] = dataclasses.field(init=False)

  # N^-1 mod p
  degree_inv: int = dataclasses.field(init=False)

  def __post_init__(self) -> None:
    if not is_power_of_two(self.degree):
      raise ValueError(f'Degree {self.degree} is not a power of two.')
    log_degree = self.degree.bit_length() - 1
    psi = primitive_root_of_unity(2 * self.degree)
    psi_inv = goldilocks.inverse(psi)
    p = goldilocks.MODULUS
    object.__setattr__(
        self,
        'psis_bitrev',
        [pow(psi, bit_reversal(i, log_degree), p) for i in range(self.degree)],
    )
    object.__setattr__(
        self,
        'psis_inv_bitrev',
        [
            pow(psi_inv, bit_reversal(i, log_degree), p)
            for i in range(self.degree)
        ],
    )
    object.__setattr__(self, 'degree_inv', goldilocks.inverse(self.degree))

  @property
  def psis(self) -> jnp.ndarray:
    return jnp.asarray(np.array(self.psis_bitrev, dtype=np.uint64))

  @property
  def psis_inv(self) -> jnp.ndarray:
    return jnp.asarray(np.array(self.psis_inv_bitrev, dtype=np.uint64))


@functools.lru_cache(maxsize=None)
def get_context(degree: int) -> NttContext:
  return NttContext(degree)


@jax.jit
def jit_forward(coeffs: jnp.ndarray, psis: jnp.ndarray) -> jnp.ndarray:
  """Forward transform along the last axis; batch axes are preserved."""
  n = coeffs.shape[-1]
  batch_shape = coeffs.shape[:-1]
  a = coeffs
  t = n
  m = 1
  while m < n:
    t //= 2
    blocks = a.reshape(batch_shape + (m, 2, t))
    twiddles = psis[m : 2 * m][:, None]
    u = blocks[..., 0, :]
    v = goldilocks.mul(blocks[..., 1, :], twiddles)
    a = jnp.stack(
        [goldilocks.add(u, v), goldilocks.sub(u, v)], axis=-2
    ).reshape(batch_shape + (n,))
    m *= 2
  return a


@jax.jit
def jit_backward(
    evals: jnp.ndarray, psis_inv: jnp.ndarray, degree_inv: jnp.ndarray
) -> jnp.ndarray:
  """Inverse transform along the last axis; batch axes are preserved."""
  n = evals.shape[-1]
  batch_shape = evals.shape[:-1]
  a = evals
  t = 1
  m = n
  while m > 1:
    h = m // 2
    blocks = a.reshape(batch_shape + (h, 2, t))
    twiddles = psis_inv[h:m][:, None]
    u = blocks[..., 0, :]
    v = blocks[..., 1, :]
    a = jnp.stack(
        [goldilocks.add(u, v), goldilocks.mul(goldilocks.sub(u, v), twiddles)],
        axis=-2,
    ).reshape(batch_shape + (n,))
    t *= 2
    m = h
  return goldilocks.mul(a, degree_inv)


def forward(coeffs: jnp.ndarray) -> jnp.ndarray:
  context = get_context(coeffs.shape[-1])
  return jit_forward(coeffs, context.psis)


def backward(evals: jnp.ndarray) -> jnp.ndarray:
  context = get_context(evals.shape[-1])
  return jit_backward(
      evals, context.psis_inv, np.uint64(context.degree_inv)
  )
