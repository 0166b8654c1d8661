"""Class encapsulating params for verifiable programmable bootstrapping."""

import dataclasses
import math
from typing import Sequence, Tuple

from vpbs.vpbs_lib import errors
from vpbs.vpbs_lib import goldilocks


@dataclasses.dataclass(frozen=True)
class SchemeParameters:
  """Dimensions shared by every object of one bootstrap instance."""

  # The dimension n of the LWE secret key vector.
  # Note an encryption is (a_1, a_2, ..., a_n, b),
  # so an LweCiphertext has length lwe_dimension + 1
  lwe_dimension: int

  # the number k of mask polynomials in a GLWE ciphertext; a GLWE
  # ciphertext holds K = k + 1 polynomials.
  glwe_dimension: int

  # dimension of N in the polynomial modulus x^N + 1
  polynomial_modulus_degree: int

  # the log of the gadget decomposition base B
  log_base: int

  # the number of signed base-B digits ELL used by the gadget decomposition
  level_count: int

  # the log of polynomial_modulus_degree
  log_mod_degree: int = dataclasses.field(init=False)

  def __post_init__(self) -> None:
    if self.lwe_dimension < 1:
      raise ValueError('LWE dimension must be >= 1.')
    if self.glwe_dimension < 1:
      raise ValueError('GLWE dimension must be >= 1.')
    degree = self.polynomial_modulus_degree
    if degree < 2 or degree & (degree - 1):
      raise ValueError(f'Polynomial degree {degree} is not a power of two.')
    if degree > 2**30:
      raise ValueError(f'Polynomial degree {degree} exceeds 2^30.')
    if (goldilocks.MODULUS - 1) % (2 * degree):
      raise ValueError(f'No negacyclic NTT exists for degree {degree}.')
    if not 1 <= self.log_base <= 31:
      raise ValueError(f'Log base {self.log_base} must be in [1, 31].')
    if self.level_count < 1:
      raise ValueError('Level count must be >= 1.')
    if self.log_base * self.level_count > goldilocks.BITS:
      raise ValueError(
          f'Decomposition precision {self.log_base * self.level_count} '
          f'exceeds {goldilocks.BITS} bits.'
      )
    if self.lwe_dimension > self.glwe_dimension * degree:
      raise ValueError(
          f'LWE dimension {self.lwe_dimension} does not fit in a GLWE key of '
          f'{self.glwe_dimension} polynomials of degree {degree}.'
      )
    object.__setattr__(self, 'log_mod_degree', int(round(math.log2(degree))))

  @property
  def glwe_size(self) -> int:
    """K = k + 1, the number of polynomials in a GLWE ciphertext."""
    return self.glwe_dimension + 1

  @property
  def decomposition_base(self) -> int:
    return 1 << self.log_base

  @property
  def lwe_shape(self) -> Tuple[int, ...]:
    return (self.lwe_dimension + 1,)

  @property
  def glwe_shape(self) -> Tuple[int, ...]:
    return (self.glwe_size, self.polynomial_modulus_degree)

  @property
  def glev_shape(self) -> Tuple[int, ...]:
    return (self.level_count,) + self.glwe_shape

  @property
  def ggsw_shape(self) -> Tuple[int, ...]:
    return (self.glwe_size,) + self.glev_shape

  @property
  def bsk_shape(self) -> Tuple[int, ...]:
    return (self.lwe_dimension,) + self.ggsw_shape


def check_shape(name: str, shape: Sequence[int], expected: Sequence[int]):
  """Raise MalformedInputError unless `shape` equals `expected`."""
  if tuple(shape) != tuple(expected):
    raise errors.MalformedInputError(
        f'{name} has shape {tuple(shape)}, expected {tuple(expected)}.'
    )
