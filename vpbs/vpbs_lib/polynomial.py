"""Ring operations on polynomials in Z_p[X] / (X^N + 1).

A ring element is a uint64 array whose last axis holds the N coefficients,
lowest degree first. Leading axes are treated as a batch, so the same
functions operate on single polynomials, GLWE ciphertexts and larger stacks.
"""

from typing import Union

import jax
import jax.numpy as jnp
from vpbs.vpbs_lib import goldilocks
from vpbs.vpbs_lib import ntt

add = goldilocks.add
sub = goldilocks.sub
neg = goldilocks.neg


def scalar_mul(
    poly: jnp.ndarray, scalar: Union[int, jnp.ndarray]
) -> jnp.ndarray:
  if isinstance(scalar, int):
    scalar = goldilocks.from_int(scalar)
  return goldilocks.mul(poly, scalar)


@jax.named_call
def rotate(poly: jnp.ndarray, shift: Union[int, jnp.ndarray]) -> jnp.ndarray:
  """Multiply by the monomial X^shift.

  The shift is taken modulo 2N. Coefficients that wrap past degree N come
  back negated, so rotate(p, s + N) == -rotate(p, s).

  Args:
    poly: coefficients along the last axis.
    shift: the monomial degree, a Python int or an integer JAX scalar.

  Returns:
    The rotated polynomial(s), same shape as poly.
  """
  n = poly.shape[-1]
  shift = shift % (2 * n)
  source = (jnp.arange(n) - shift) % (2 * n)
  values = jnp.take(poly, source % n, axis=-1)
  return jnp.where(source >= n, goldilocks.neg(values), values)


@jax.named_call
def mul(a: jnp.ndarray, b: jnp.ndarray) -> jnp.ndarray:
  """Negacyclic product via the NTT; leading axes broadcast."""
  return ntt.backward(goldilocks.mul(ntt.forward(a), ntt.forward(b)))


@jax.named_call
def dot_product(a: jnp.ndarray, b: jnp.ndarray) -> jnp.ndarray:
  """Sum over axis -2 of the pairwise ring products of a and b.

  Summation happens in the evaluation domain, so only one inverse transform
  is needed.
  """
  products = goldilocks.mul(ntt.forward(a), ntt.forward(b))
  return ntt.backward(goldilocks.reduce_sum(products, axis=-2))


def schoolbook_mul(a: jnp.ndarray, b: jnp.ndarray) -> jnp.ndarray:
  """Negacyclic product by direct convolution; used to check `mul`."""
  n = a.shape[-1]
  result = jnp.zeros(jnp.broadcast_shapes(a.shape, b.shape), dtype=jnp.uint64)
  for i in range(n):
    term = rotate(b, i)
    result = goldilocks.add(result, goldilocks.mul(term, a[..., i : i + 1]))
  return result
