"""JSON interchange for keys, ciphertexts and test vectors.

Every object is written as nested lists of canonical integers, following the
nesting of the arrays: a ring element is N ints, a GLWE ciphertext K ring
elements, a Glev ELL GLWE ciphertexts, a GGSW K Glevs and a bootstrapping key
n GGSWs. An LWE ciphertext is its n mask coordinates followed by its body.

Loading checks every array against the shape implied by the scheme
parameters and raises MalformedInputError on a mismatch; nothing is padded or
truncated.
"""

import dataclasses
import json
import os
from typing import Any, Dict, List, Sequence, Tuple

import jax.numpy as jnp
import numpy as np
from vpbs.vpbs_lib import bootstrap
from vpbs.vpbs_lib import errors
from vpbs.vpbs_lib import ggsw
from vpbs.vpbs_lib import glwe
from vpbs.vpbs_lib import goldilocks
from vpbs.vpbs_lib import key_switch
from vpbs.vpbs_lib import lwe
from vpbs.vpbs_lib import parameters

INPUTS_FILENAME = 'bootstrap_inputs.json'
SECRETS_FILENAME = 'secrets.json'
OUTPUTS_FILENAME = 'bootstrap_outputs.json'
PROOF_FILENAME = 'bootstrap_proof.json'


def array_to_json(array: jnp.ndarray) -> Any:
  return goldilocks.to_int(array)


def array_from_json(
    data: Any, shape: Tuple[int, ...], name: str
) -> jnp.ndarray:
  """Parse nested lists of ints into a uint64 array of the expected shape."""
  try:
    values = np.array(data, dtype=object)
  except ValueError as e:
    raise errors.MalformedInputError(f'{name} is not a regular array.') from e
  parameters.check_shape(name, values.shape, shape)
  for value in values.reshape(-1):
    if not isinstance(value, int) or not 0 <= value < goldilocks.MODULUS:
      raise errors.MalformedInputError(
          f'{name} holds {value!r}, which is not a canonical field element.'
      )
  return jnp.asarray(np.array(values, dtype=np.uint64))


def lwe_from_json(
    data: Any, params: parameters.SchemeParameters
) -> lwe.LweCiphertext:
  return lwe.LweCiphertext(
      lwe_dimension=params.lwe_dimension,
      message=array_from_json(data, params.lwe_shape, 'LWE ciphertext'),
  )


def glwe_from_json(
    data: Any, params: parameters.SchemeParameters
) -> glwe.GlweCiphertext:
  return glwe.GlweCiphertext(
      message=array_from_json(data, params.glwe_shape, 'GLWE ciphertext')
  )


def ggsw_from_json(
    data: Any, params: parameters.SchemeParameters
) -> ggsw.GgswCiphertext:
  return ggsw.GgswCiphertext(
      message=array_from_json(data, params.ggsw_shape, 'GGSW ciphertext')
  )


def bsk_from_json(
    data: Any, params: parameters.SchemeParameters
) -> bootstrap.BootstrappingKey:
  return bootstrap.BootstrappingKey(
      encrypted_lwe_sk_bits=array_from_json(
          data, params.bsk_shape, 'Bootstrapping key'
      )
  )


def ksk_from_json(
    data: Any, params: parameters.SchemeParameters
) -> key_switch.KeySwitchingKey:
  return key_switch.KeySwitchingKey(ciphertext=ggsw_from_json(data, params))


def test_vector_from_json(
    data: Any, params: parameters.SchemeParameters
) -> jnp.ndarray:
  return array_from_json(
      data, (params.polynomial_modulus_degree,), 'Test vector'
  )


@dataclasses.dataclass
class BootstrapInputs:
  """The public inputs of one verified bootstrap."""

  ct_1: lwe.LweCiphertext
  ct_2: lwe.LweCiphertext
  weights: Tuple[int, int]
  test_vector: jnp.ndarray
  bsk: bootstrap.BootstrappingKey
  ksk: key_switch.KeySwitchingKey

  def to_json(self) -> Dict[str, Any]:
    return {
        'ct': array_to_json(self.ct_1.message),
        'ct_2': array_to_json(self.ct_2.message),
        'weights': list(self.weights),
        'testv': array_to_json(self.test_vector),
        'bsk': array_to_json(self.bsk.encrypted_lwe_sk_bits),
        'ksk': array_to_json(self.ksk.message),
    }

  @classmethod
  def from_json(
      cls, data: Dict[str, Any], params: parameters.SchemeParameters
  ) -> 'BootstrapInputs':
    _check_keys(data, ('ct', 'ct_2', 'weights', 'testv', 'bsk', 'ksk'))
    weights = data['weights']
    if len(weights) != 2 or not all(isinstance(w, int) for w in weights):
      raise errors.MalformedInputError(
          f'Expected two integer weights, got {weights!r}.'
      )
    return cls(
        ct_1=lwe_from_json(data['ct'], params),
        ct_2=lwe_from_json(data['ct_2'], params),
        weights=(weights[0], weights[1]),
        test_vector=test_vector_from_json(data['testv'], params),
        bsk=bsk_from_json(data['bsk'], params),
        ksk=ksk_from_json(data['ksk'], params),
    )


@dataclasses.dataclass
class Secrets:
  """The client-side secrets: the cleartexts and the output decryption key."""

  messages: List[int]
  partial_key: glwe.GlweSecretKey

  def to_json(self) -> Dict[str, Any]:
    return {
        'm': list(self.messages),
        's_to': array_to_json(self.partial_key.data),
    }

  @classmethod
  def from_json(
      cls, data: Dict[str, Any], params: parameters.SchemeParameters
  ) -> 'Secrets':
    _check_keys(data, ('m', 's_to'))
    key_data = array_from_json(
        data['s_to'],
        (params.glwe_dimension, params.polynomial_modulus_degree),
        'Partial key',
    )
    return cls(
        messages=[int(m) for m in data['m']],
        partial_key=glwe.GlweSecretKey(
            glwe_dimension=params.glwe_dimension,
            polynomial_modulus_degree=params.polynomial_modulus_degree,
            data=key_data,
        ),
    )


def _check_keys(data: Dict[str, Any], keys: Sequence[str]) -> None:
  missing = [key for key in keys if key not in data]
  if missing:
    raise errors.MalformedInputError(f'Missing fields: {", ".join(missing)}.')


def write_json(directory: str, filename: str, data: Any) -> str:
  path = os.path.join(directory, filename)
  with open(path, 'w') as f:
    json.dump(data, f)
  return path


def read_json(directory: str, filename: str) -> Any:
  path = os.path.join(directory, filename)
  with open(path) as f:
    return json.load(f)
