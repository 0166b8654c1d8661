"""Test utilities."""

import math
from typing import List, Optional, Tuple

import jax.numpy as jnp
import numpy as np
from vpbs.vpbs_lib import encoding
from vpbs.vpbs_lib import glwe
from vpbs.vpbs_lib import goldilocks
from vpbs.vpbs_lib import lwe
from vpbs.vpbs_lib import parameters
from vpbs.vpbs_lib import random_source

# N = 8, exact decomposition (LOGB * ELL = 64), one LWE coordinate.
SMALL_SCHEME_PARAMS = parameters.SchemeParameters(
    lwe_dimension=1,
    glwe_dimension=1,
    polynomial_modulus_degree=8,
    log_base=8,
    level_count=8,
)

# Lossy decomposition, used where noise growth is exercised.
NOISY_SCHEME_PARAMS = parameters.SchemeParameters(
    lwe_dimension=4,
    glwe_dimension=1,
    polynomial_modulus_degree=32,
    log_base=8,
    level_count=4,
)

DEFAULT_ENCODING_PARAMS = encoding.EncodingParameters(plaintext_modulus=2)


def index_source(
    params: parameters.SchemeParameters, seed: int
) -> random_source.PseudorandomSource:
  """Samples rotation indices in [0, 2N) for `encrypt_index`."""
  return random_source.PseudorandomSource(
      uniform_bounds=(0, 2 * params.polynomial_modulus_degree - 1),
      normal_std=0,
      seed=seed,
  )


def encrypt_index(
    index: int,
    lwe_sk: lwe.LweSecretKey,
    params: parameters.SchemeParameters,
    prg: random_source.RandomSource,
) -> lwe.LweCiphertext:
  """A noiseless LWE encryption of a rotation index.

  Every coordinate is a multiple of 2^(64 - log N - 1), one step of the
  modulus switch, so blind rotation by the ciphertext has no rounding error
  and lands exactly on `index`. `prg` supplies the mask indices.
  """
  step = goldilocks.from_int(
      1 << (goldilocks.BITS - params.log_mod_degree - 1)
  )
  mask = goldilocks.mul(prg.uniform(shape=(params.lwe_dimension,)), step)
  plaintext = goldilocks.mul(goldilocks.from_int(index), step)
  return lwe.LweCiphertext(
      lwe_dimension=params.lwe_dimension,
      message=lwe.jit_encrypt(
          plaintext, lwe_sk.key_data, mask, jnp.zeros((), dtype=jnp.int64)
      ),
  )


def extract_noise(
    plaintext: jnp.ndarray, encoding_params: encoding.EncodingParameters
) -> np.ndarray:
  """Signed distance of each plaintext from the nearest encoded value."""
  signed = np.array(goldilocks.to_signed_int(plaintext), dtype=object)
  delta = encoding_params.delta
  nearest = (signed + delta // 2) // delta * delta
  return np.array(signed - nearest, dtype=object)


def error_stats(
    actual: jnp.ndarray, expected: jnp.ndarray
) -> Tuple[float, int]:
  """Average and maximum absolute centered difference of two plaintexts."""
  difference = goldilocks.sub(
      jnp.asarray(actual, dtype=jnp.uint64),
      jnp.asarray(expected, dtype=jnp.uint64),
  )
  signed = np.array(goldilocks.to_signed_int(difference), dtype=object)
  errors = [abs(x) for x in signed.reshape(-1)]
  return sum(errors) / len(errors), max(errors)


class MidBootstrapDecrypter:
  """A helper for decrypting intermediate encrypted values during bootstrap.

  Pass a reference to MidBootstrapDecrypter.decrypt to `programmable_bootstrap`
  or `verified_pbs` as the `callback` argument. Every step before the key
  switch is decrypted with the blind rotation key, the key switched output
  with the partial key.
  """

  def __init__(
      self,
      scheme_params: parameters.SchemeParameters,
      encoding_params: encoding.EncodingParameters,
      glwe_key: glwe.GlweSecretKey,
      partial_key: glwe.GlweSecretKey,
  ):
    self.scheme_params = scheme_params
    self.encoding_params = encoding_params
    self.glwe_key = glwe_key
    self.partial_key = partial_key
    # (name, step, decoded constant coefficient, average noise, max noise)
    self.records: List[Tuple[str, Optional[int], int, float, int]] = []

  def _noise_and_bits(self, noise) -> str:
    # Noise may be zero, in which case treat its log as 1.
    abs_bits = math.log2(max(1, abs(noise)))
    return f'{noise} ({abs_bits:.1f} bits)'

  def decrypt(
      self,
      name: str,
      value: glwe.GlweCiphertext,
      step: Optional[int] = None,
  ) -> None:
    """Decrypt an intermediate accumulator and record its noise."""
    key = self.partial_key if name == 'key_switched' else self.glwe_key
    plaintext = glwe.decrypt(value, key)
    noise = [abs(x) for x in extract_noise(plaintext, self.encoding_params)]
    avg_noise = sum(noise) / len(noise)
    max_noise = max(noise)
    cleartext = int(encoding.decode(plaintext[0], self.encoding_params))
    self.records.append((name, step, cleartext, avg_noise, max_noise))
    print(
        f'{name} (step {step}): cleartext = {cleartext}, '
        f'avg noise = {avg_noise:.1f}, '
        f'max noise = {self._noise_and_bits(max_noise)}'
    )

  @property
  def final_cleartext(self) -> Optional[int]:
    if not self.records:
      return None
    return self.records[-1][2]
