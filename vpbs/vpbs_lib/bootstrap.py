"""Programmable bootstrapping by blind rotation.

The bootstrap threads one GLWE accumulator through n + 2 steps:

  0. the test vector, as a trivial GLWE ciphertext, is rotated by the
     negated (mod-switched) LWE body;
  1..n. the accumulator is rotated by the i-th mask coordinate, and a CMUX
     keyed by the GGSW encryption of the i-th LWE key bit selects between
     the rotated and unrotated accumulators;
  n+1. the accumulator is key-switched to the partial key, whose leading
     slots are the LWE key.

The resulting GLWE ciphertext encrypts X^(-m) * testv, so its constant
coefficient is testv[m] for a message index m < N.
"""

import dataclasses
import functools
from typing import Callable, Optional

import jax
import jax.numpy as jnp
from vpbs.vpbs_lib import ggsw
from vpbs.vpbs_lib import glwe
from vpbs.vpbs_lib import goldilocks
from vpbs.vpbs_lib import key_switch
from vpbs.vpbs_lib import lwe
from vpbs.vpbs_lib import parameters
from vpbs.vpbs_lib import polynomial
from vpbs.vpbs_lib import random_source


@dataclasses.dataclass
class BootstrappingKey:
  """An array with row j a GGSW encryption of bit j of an LWE secret key."""

  # shape (n, K, ELL, K, N)
  encrypted_lwe_sk_bits: jnp.ndarray

  def check(self, params: parameters.SchemeParameters) -> 'BootstrappingKey':
    parameters.check_shape(
        'Bootstrapping key', self.encrypted_lwe_sk_bits.shape, params.bsk_shape
    )
    return self

  def __len__(self) -> int:
    return self.encrypted_lwe_sk_bits.shape[0]

  def __getitem__(self, index: int) -> ggsw.GgswCiphertext:
    return ggsw.GgswCiphertext(message=self.encrypted_lwe_sk_bits[index])


def compute_bsk(
    lwe_sk: lwe.LweSecretKey,
    glwe_sk: glwe.GlweSecretKey,
    params: parameters.SchemeParameters,
    prg: random_source.RandomSource,
) -> BootstrappingKey:
  """Generate a bootstrapping key for the given LWE secret key.

  A bootstrapping key is a list of n GGSW ciphertexts, each encrypting one
  coordinate of the LWE secret key under the GLWE secret key.

  Args:
    lwe_sk: the input LWE secret key, to be encrypted by the GLWE key
    glwe_sk: the GLWE secret key used during blind rotation
    params: the scheme parameters
    prg: the random source

  Returns:
    A bootstrapping key.
  """
  parameters.check_shape(
      'LWE secret key', lwe_sk.key_data.shape, (params.lwe_dimension,)
  )
  bits = [int(bit) for bit in goldilocks.to_int(lwe_sk.key_data)]
  ggsws = [
      ggsw.encrypt_constant(bit, glwe_sk, params, prg).message for bit in bits
  ]
  return BootstrappingKey(encrypted_lwe_sk_bits=jnp.stack(ggsws))


def bootstrap_step(
    accumulator: glwe.GlweCiphertext,
    gadget_ct: ggsw.GgswCiphertext,
    mask_element: jnp.ndarray,
    counter: int,
    params: parameters.SchemeParameters,
) -> glwe.GlweCiphertext:
  """One step of the bootstrap, selected by the step counter in [1, n + 2].

  Args:
    accumulator: the incoming accumulator.
    gadget_ct: the bootstrapping key row for this step, or the key switching
      key gadget matrix on the last step. Ignored on the first step.
    mask_element: the (weighted) LWE coordinate for this step; the body on
      the first step, unused on the last.
    counter: the 1-based step counter.
    params: the scheme parameters.

  Returns:
    The outgoing accumulator.
  """
  first_step = counter == 1
  last_step = counter == params.lwe_dimension + 2
  if first_step:
    mask_element = goldilocks.neg(mask_element)
  shift = lwe.jit_mod_switch(mask_element, params.log_mod_degree)
  shifted = glwe.rotate(accumulator, shift)
  if first_step:
    return shifted
  if last_step:
    return ggsw.external_product(gadget_ct, accumulator, params)
  return ggsw.cmux(gadget_ct, accumulator, shifted, params)


@functools.partial(jax.jit, static_argnames=('log_base', 'level_count'))
def jit_blind_rotate(
    accumulator: jnp.ndarray,
    shifts: jnp.ndarray,
    bsk: jnp.ndarray,
    log_base: int,
    level_count: int,
) -> jnp.ndarray:
  """Apply one CMUX per bootstrapping key row to an initialized accumulator."""

  def one_cmux(j, acc):
    shifted = polynomial.rotate(acc, shifts[j])
    difference = polynomial.sub(shifted, acc)
    return polynomial.add(
        acc,
        ggsw.jit_external_product(
            bsk[j], difference, log_base=log_base, level_count=level_count
        ),
    )

  return jax.lax.fori_loop(0, bsk.shape[0], one_cmux, accumulator)


def programmable_bootstrap(
    ct_1: lwe.LweCiphertext,
    ct_2: lwe.LweCiphertext,
    weight_1: int,
    weight_2: int,
    test_vector: jnp.ndarray,
    bsk: BootstrappingKey,
    ksk: key_switch.KeySwitchingKey,
    params: parameters.SchemeParameters,
    callback: Optional[Callable[..., None]] = None,
) -> glwe.GlweCiphertext:
  """Evaluate the test vector at w_1 * m_1 + w_2 * m_2 without decrypting.

  Args:
    ct_1: the first LWE ciphertext.
    ct_2: the second LWE ciphertext.
    weight_1: the weight applied to ct_1.
    weight_2: the weight applied to ct_2.
    test_vector: the function table, as a ring element.
    bsk: the bootstrapping key.
    ksk: the key switching key.
    params: the scheme parameters.
    callback: an optional callback for tests, called with a step name, the
      accumulator after that step and the step index.

  Returns:
    A GLWE ciphertext under the partial key whose constant coefficient
    encrypts the test vector at the combined message.
  """
  parameters.check_shape('LWE ciphertext', ct_1.message.shape, params.lwe_shape)
  parameters.check_shape('LWE ciphertext', ct_2.message.shape, params.lwe_shape)
  bsk.check(params)
  ksk.ciphertext.check(params)

  combined = lwe.weighted_sum(ct_1, ct_2, weight_1, weight_2)
  zero_ggsw = ggsw.zero(params)
  accumulator = bootstrap_step(
      glwe.trivial(test_vector, params),
      zero_ggsw,
      combined.body,
      counter=1,
      params=params,
  )
  if callback:
    callback('rotated', accumulator, step=0)

  if callback:
    for i in range(params.lwe_dimension):
      accumulator = bootstrap_step(
          accumulator, bsk[i], combined.mask[i], counter=i + 2, params=params
      )
      callback('cmux', accumulator, step=i + 1)
  else:
    shifts = lwe.jit_mod_switch(combined.mask, params.log_mod_degree)
    accumulator = glwe.GlweCiphertext(
        message=jit_blind_rotate(
            accumulator.message,
            shifts,
            bsk.encrypted_lwe_sk_bits,
            log_base=params.log_base,
            level_count=params.level_count,
        )
    )

  accumulator = key_switch.key_switch(ksk, accumulator, params)
  if callback:
    callback('key_switched', accumulator, step=params.lwe_dimension + 1)
  return accumulator


def initial_accumulator(
    test_vector: jnp.ndarray, params: parameters.SchemeParameters
) -> jnp.ndarray:
  """The zero-padded test vector, flattened: the public initial accumulator."""
  return glwe.trivial(test_vector, params).message.reshape(-1)
