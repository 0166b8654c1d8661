"""Sources of randomness for key generation and encryption.

Uniform samples are canonical Goldilocks field elements, rounded normal
samples are signed integers (callers map them into the field), and secret-key
samples are uniform bits. Deterministic sources are provided for tests and
for reproducible noise-free runs.
"""

import abc
import itertools
import random
from typing import Any, Callable, Optional, Tuple

import jax.numpy as jnp
import numpy as np
from vpbs.vpbs_lib import goldilocks

FIELD_BOUNDS = (0, goldilocks.MODULUS - 1)


def _shape_generator(
    generator: Callable[[], Any], shape: Tuple[int, ...], dtype=np.uint64
) -> np.ndarray:
  """Fill an array of the given shape by calling `generator` per element."""
  if any(dim < 0 for dim in shape):
    raise ValueError(f'Invalid shape {shape}.')
  size = int(np.prod(shape, dtype=np.int64))
  return np.array([generator() for _ in range(size)], dtype=dtype).reshape(
      shape
  )


def relative_noise_std(sigma: float) -> float:
  """Convert a noise level relative to p into an absolute standard deviation."""
  return sigma * goldilocks.MODULUS


class RandomSource(abc.ABC):
  """An interface for the random samples needed by the scheme."""

  @abc.abstractmethod
  def uniform(
      self, shape: Tuple[int, ...] = (), dtype=jnp.uint64
  ) -> jnp.ndarray:
    """Samples drawn uniformly from the configured (inclusive) bounds."""

  @abc.abstractmethod
  def rounded_normal(
      self, shape: Tuple[int, ...] = (), dtype=jnp.int64
  ) -> jnp.ndarray:
    """Samples from a centered normal distribution, rounded to integers."""

  @abc.abstractmethod
  def sk_uniform(
      self, shape: Tuple[int, ...] = (), dtype=jnp.uint64
  ) -> jnp.ndarray:
    """Uniform bits, used for secret keys."""


class SystemRandomSource(RandomSource):
  """Samples from the operating system's entropy source."""

  def __init__(
      self,
      uniform_bounds: Tuple[int, int] = FIELD_BOUNDS,
      normal_std: float = 1.0,
  ):
    self.uniform_bounds = uniform_bounds
    self.normal_std = normal_std
    self.system_random = random.SystemRandom()

  def uniform(self, shape=(), dtype=jnp.uint64):
    low, high = self.uniform_bounds
    values = _shape_generator(
        lambda: self.system_random.randint(low, high), shape
    )
    return jnp.asarray(values).astype(dtype)

  def rounded_normal(self, shape=(), dtype=jnp.int64):
    values = _shape_generator(
        lambda: round(self.system_random.gauss(0, self.normal_std)),
        shape,
        dtype=np.int64,
    )
    return jnp.asarray(values).astype(dtype)

  def sk_uniform(self, shape=(), dtype=jnp.uint64):
    values = _shape_generator(lambda: self.system_random.randint(0, 1), shape)
    return jnp.asarray(values).astype(dtype)


class PseudorandomSource(RandomSource):
  """A seedable numpy generator; runs with the same seed are identical."""

  def __init__(
      self,
      uniform_bounds: Tuple[int, int] = FIELD_BOUNDS,
      normal_std: float = 1.0,
      seed: Optional[int] = None,
  ):
    self.uniform_bounds = uniform_bounds
    self.normal_std = normal_std
    self.generator = np.random.default_rng(seed)

  def uniform(self, shape=(), dtype=jnp.uint64):
    low, high = self.uniform_bounds
    values = self.generator.integers(
        low, high, size=shape, dtype=np.uint64, endpoint=True
    )
    return jnp.asarray(values).astype(dtype)

  def rounded_normal(self, shape=(), dtype=jnp.int64):
    values = np.rint(self.generator.normal(0.0, self.normal_std, size=shape))
    return jnp.asarray(values.astype(np.int64)).astype(dtype)

  def sk_uniform(self, shape=(), dtype=jnp.uint64):
    values = self.generator.integers(
        0, 1, size=shape, dtype=np.uint64, endpoint=True
    )
    return jnp.asarray(values).astype(dtype)


class CycleRng(RandomSource):
  """Cycles through a fixed pattern of uniform values; constant noise."""

  PATTERN = (1, 1, 0, 0, 0, 1, 1, 1, 1, 0)

  def __init__(self, const_normal_noise: int = 0):
    self.const_normal_noise = const_normal_noise

  def _cycle(self, shape, dtype):
    size = int(np.prod(shape, dtype=np.int64))
    values = list(itertools.islice(itertools.cycle(self.PATTERN), size))
    return jnp.asarray(np.array(values, dtype=np.uint64).reshape(shape)).astype(
        dtype
    )

  def uniform(self, shape=(), dtype=jnp.uint64):
    return self._cycle(shape, dtype)

  def rounded_normal(self, shape=(), dtype=jnp.int64):
    return jnp.full(shape, self.const_normal_noise, dtype=dtype)

  def sk_uniform(self, shape=(), dtype=jnp.uint64):
    return self._cycle(shape, dtype)


class NormalOnlyRng(PseudorandomSource):
  """Uniform samples are always zero; the noise is still random."""

  def uniform(self, shape=(), dtype=jnp.uint64):
    return jnp.zeros(shape, dtype=dtype)


class ConstantUniformRng(PseudorandomSource):
  """Uniform samples are a fixed constant; the noise is still random."""

  def __init__(self, const_uniform: int = 1, **kwargs):
    super().__init__(**kwargs)
    self.const_uniform = const_uniform

  def uniform(self, shape=(), dtype=jnp.uint64):
    return jnp.full(shape, self.const_uniform, dtype=dtype)


class ZeroRng(RandomSource):
  """Every sample is zero, including secret keys."""

  def uniform(self, shape=(), dtype=jnp.uint64):
    return jnp.zeros(shape, dtype=dtype)

  def rounded_normal(self, shape=(), dtype=jnp.int64):
    return jnp.zeros(shape, dtype=dtype)

  def sk_uniform(self, shape=(), dtype=jnp.uint64):
    return jnp.zeros(shape, dtype=dtype)


ALL_RNGS = [
    SystemRandomSource,
    PseudorandomSource,
    CycleRng,
    NormalOnlyRng,
    ConstantUniformRng,
    ZeroRng,
]
