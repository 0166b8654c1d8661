"""Logic for encoding and decoding a cleartext as a Goldilocks plaintext."""

import dataclasses
from typing import Union

import jax.numpy as jnp
import numpy as np
from vpbs.vpbs_lib import goldilocks


def log2_ceil(value: int) -> int:
  return max(0, (value - 1).bit_length())


def get_delta(message_space_size: int) -> int:
  """The scaling factor p >> ceil(log2(message_space_size))."""
  return goldilocks.MODULUS >> log2_ceil(message_space_size)


@dataclasses.dataclass(frozen=True)
class EncodingParameters:
  """How cleartexts are scaled into the top bits of a field element.

  A cleartext m is encoded as m * delta, leaving the low bits for noise and
  `padding_bit_length` bits on top, so that the negacyclic wrap of blind
  rotation has room to land without corrupting the message.
  """

  # the number of distinct cleartext values, e.g. 2 for a boolean message
  plaintext_modulus: int

  # the number of bits to use for padding above the message
  padding_bit_length: int = 1

  # the scaling factor applied to cleartexts
  delta: int = dataclasses.field(init=False)

  def __post_init__(self) -> None:
    if self.plaintext_modulus < 2:
      raise ValueError('Plaintext modulus must be >= 2.')
    if self.padding_bit_length < 0:
      raise ValueError('Padding bit length must be >= 0.')
    object.__setattr__(self, 'delta', get_delta(self.encoded_space_size))

  @property
  def encoded_space_size(self) -> int:
    """The number of slots the encoded values occupy, padding included."""
    return self.plaintext_modulus << self.padding_bit_length


def encode(
    message: Union[int, jnp.ndarray], params: EncodingParameters
) -> jnp.ndarray:
  """Encode a cleartext or array of cleartexts as field elements m * delta."""
  cleartext = np.array(message, dtype=object) % params.encoded_space_size
  return goldilocks.from_int(cleartext * params.delta)


def decode(
    plaintext: jnp.ndarray, params: EncodingParameters
) -> jnp.ndarray:
  """Round a (noisy) plaintext back to a cleartext.

  The result is taken modulo the encoded space, so a value that landed in the
  padding region is returned as is rather than reduced to the message space.
  """
  signed = np.array(goldilocks.to_signed_int(plaintext), dtype=object)
  delta = params.delta
  rounded = (signed + delta // 2) // delta
  return jnp.asarray(
      np.array(rounded % params.encoded_space_size, dtype=np.int64)
  )
