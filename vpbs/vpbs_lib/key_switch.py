"""GLWE key switching with a GGSW-shaped key-switching key."""

import dataclasses

import jax.numpy as jnp
from vpbs.vpbs_lib import errors
from vpbs.vpbs_lib import ggsw
from vpbs.vpbs_lib import glwe
from vpbs.vpbs_lib import goldilocks
from vpbs.vpbs_lib import parameters
from vpbs.vpbs_lib import random_source


@dataclasses.dataclass
class KeySwitchingKey:
  """A public key that moves a GLWE ciphertext from one key to another.

  Component j < k of the gadget matrix is a Glev, under the destination key,
  of -s_j where s_j is the j-th polynomial of the source key; the last
  component is a Glev of the constant 1. The external product of this key
  with a ciphertext under the source key is therefore an encryption of the
  same plaintext under the destination key.
  """

  # the (K, ELL, K, N) gadget matrix
  ciphertext: ggsw.GgswCiphertext

  @property
  def message(self) -> jnp.ndarray:
    return self.ciphertext.message

  def flatten(self) -> jnp.ndarray:
    return self.ciphertext.flatten()


def compute_ksk(
    to_key: glwe.GlweSecretKey,
    from_key: glwe.GlweSecretKey,
    params: parameters.SchemeParameters,
    prg: random_source.RandomSource,
) -> KeySwitchingKey:
  """Build the key switching key from `from_key` to `to_key`.

  Args:
    to_key: the destination key, usually the partial key whose leading slots
      are the LWE key.
    from_key: the key the accumulator is encrypted under during blind
      rotation.
    params: the scheme parameters.
    prg: the source of masks and noise.

  Returns:
    The key switching key.
  """
  if to_key.data.shape != from_key.data.shape:
    raise errors.MalformedInputError(
        f'Keys of shapes {to_key.data.shape} and {from_key.data.shape} are '
        'not compatible.'
    )
  one = jnp.zeros((params.polynomial_modulus_degree,), dtype=jnp.uint64)
  one = one.at[0].set(jnp.uint64(1))
  plaintexts = jnp.append(
      goldilocks.neg(from_key.data), one[None, :], axis=0
  )
  return KeySwitchingKey(
      ciphertext=ggsw.encrypt_gadget_matrix(plaintexts, to_key, params, prg)
  )


def key_switch(
    ksk: KeySwitchingKey,
    ciphertext: glwe.GlweCiphertext,
    params: parameters.SchemeParameters,
) -> glwe.GlweCiphertext:
  return ggsw.external_product(ksk.ciphertext, ciphertext, params)
