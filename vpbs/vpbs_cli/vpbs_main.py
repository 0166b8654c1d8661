"""Command-line front end for verified programmable bootstrapping.

The four modes share one working directory:

  encrypt: generate keys, encrypt two messages and write
           bootstrap_inputs.json (public) and secrets.json (client side).
  prove:   run the verified bootstrap on bootstrap_inputs.json and write
           bootstrap_outputs.json and bootstrap_proof.json.
  verify:  check the proof against the public inputs and outputs.
  decrypt: decrypt the output ciphertext with the key in secrets.json.

Example:
  vpbs --mode=encrypt --workdir=/tmp/vpbs --messages=1,0 --seed=7
  vpbs --mode=prove --workdir=/tmp/vpbs
  vpbs --mode=verify --workdir=/tmp/vpbs
  vpbs --mode=decrypt --workdir=/tmp/vpbs
"""

import logging
import os
from typing import Sequence

from absl import app
from absl import flags
from vpbs.vpbs_lib import bootstrap
from vpbs.vpbs_lib import encoding
from vpbs.vpbs_lib import glwe
from vpbs.vpbs_lib import key_switch
from vpbs.vpbs_lib import lwe
from vpbs.vpbs_lib import parameters
from vpbs.vpbs_lib import random_source
from vpbs.vpbs_lib import serialization
from vpbs.vpbs_lib import test_polynomial
from vpbs.vpbs_zkp import ivc
from vpbs.vpbs_zkp import prover
from vpbs.vpbs_zkp import verify

_MODE = flags.DEFINE_enum(
    'mode', None, ['encrypt', 'prove', 'verify', 'decrypt'], 'What to run.'
)
_WORKDIR = flags.DEFINE_string(
    'workdir', '.', 'Directory holding the JSON inputs and outputs.'
)
_LWE_DIMENSION = flags.DEFINE_integer('lwe_dimension', 728, 'LWE dimension n.')
_POLY_DEGREE = flags.DEFINE_integer(
    'poly_degree', 1024, 'Degree N of the ring modulus X^N + 1.'
)
_GLWE_SIZE = flags.DEFINE_integer(
    'glwe_size', 2, 'Number K of polynomials in a GLWE ciphertext.'
)
_LOG_BASE = flags.DEFINE_integer('log_base', 5, 'log2 of the gadget base.')
_LEVEL_COUNT = flags.DEFINE_integer(
    'level_count', 4, 'Number of gadget decomposition levels.'
)
_PLAINTEXT_MODULUS = flags.DEFINE_integer(
    'plaintext_modulus', 2, 'Size of the message space.'
)
_NOISE_STD_GLWE = flags.DEFINE_float(
    'noise_std_glwe', 4.99027217501041e-8, 'GLWE noise, relative to p.'
)
_NOISE_STD_LWE = flags.DEFINE_float(
    'noise_std_lwe', 0.0000117021618159313, 'LWE noise, relative to p.'
)
_SEED = flags.DEFINE_integer(
    'seed',
    None,
    'Seed for reproducible keys and noise; system entropy if unset.',
)
_MESSAGES = flags.DEFINE_list(
    'messages', ['1', '0'], 'The two cleartexts to encrypt.'
)
_WEIGHTS = flags.DEFINE_list(
    'weights', ['1', '2'], 'The weights of the two ciphertexts.'
)
_CIRCUIT_DEGREE_BITS = flags.DEFINE_integer(
    'circuit_degree_bits',
    None,
    'log2 of the step circuit size; the smallest that fits if unset.',
)


def _scheme_params() -> parameters.SchemeParameters:
  return parameters.SchemeParameters(
      lwe_dimension=_LWE_DIMENSION.value,
      glwe_dimension=_GLWE_SIZE.value - 1,
      polynomial_modulus_degree=_POLY_DEGREE.value,
      log_base=_LOG_BASE.value,
      level_count=_LEVEL_COUNT.value,
  )


def _encoding_params() -> encoding.EncodingParameters:
  return encoding.EncodingParameters(plaintext_modulus=_PLAINTEXT_MODULUS.value)


def _random_source(sigma: float, seed_offset: int):
  normal_std = random_source.relative_noise_std(sigma)
  if _SEED.value is None:
    return random_source.SystemRandomSource(normal_std=normal_std)
  return random_source.PseudorandomSource(
      normal_std=normal_std, seed=_SEED.value + seed_offset
  )


def _weights():
  if len(_WEIGHTS.value) != 2:
    raise app.UsageError('--weights takes exactly two integers.')
  return tuple(int(w) for w in _WEIGHTS.value)


def encrypt(workdir: str) -> None:
  """Generate keys and the public bootstrap inputs."""
  params = _scheme_params()
  encoding_params = _encoding_params()
  if len(_MESSAGES.value) != 2:
    raise app.UsageError('--messages takes exactly two integers.')
  messages = [int(m) for m in _MESSAGES.value]

  glwe_prg = _random_source(_NOISE_STD_GLWE.value, 0)
  lwe_prg = _random_source(_NOISE_STD_LWE.value, 1)

  glwe_sk = glwe.key_gen(params, glwe_prg)
  partial_key = glwe.partial_key(params, glwe_prg)
  lwe_sk = glwe.flatten_partial_key(partial_key, params.lwe_dimension)
  logging.info('Computing the bootstrapping key.')
  bsk = bootstrap.compute_bsk(lwe_sk, glwe_sk, params, glwe_prg)
  logging.info('Computing the key switching key.')
  ksk = key_switch.compute_ksk(partial_key, glwe_sk, params, glwe_prg)

  ct_1, ct_2 = (
      lwe.encrypt(encoding.encode(m, encoding_params), lwe_sk, lwe_prg)
      for m in messages
  )
  inputs = serialization.BootstrapInputs(
      ct_1=ct_1,
      ct_2=ct_2,
      weights=_weights(),
      test_vector=test_polynomial.identity_test_polynomial(
          params, encoding_params
      ),
      bsk=bsk,
      ksk=ksk,
  )
  secrets = serialization.Secrets(messages=messages, partial_key=partial_key)
  serialization.write_json(
      workdir, serialization.INPUTS_FILENAME, inputs.to_json()
  )
  serialization.write_json(
      workdir, serialization.SECRETS_FILENAME, secrets.to_json()
  )
  logging.info('Wrote inputs and secrets to %s.', workdir)


def prove(workdir: str) -> None:
  """Run the verified bootstrap on the public inputs."""
  params = _scheme_params()
  inputs = serialization.BootstrapInputs.from_json(
      serialization.read_json(workdir, serialization.INPUTS_FILENAME), params
  )
  out_ct, proof, _ = ivc.verified_pbs(
      inputs.ct_1,
      inputs.ct_2,
      inputs.weights[0],
      inputs.weights[1],
      inputs.test_vector,
      inputs.bsk,
      inputs.ksk,
      params,
      config=ivc.IvcConfig(circuit_degree_bits=_CIRCUIT_DEGREE_BITS.value),
  )
  serialization.write_json(
      workdir,
      serialization.OUTPUTS_FILENAME,
      {'out_ct': serialization.array_to_json(out_ct.message)},
  )
  serialization.write_json(
      workdir, serialization.PROOF_FILENAME, prover.proof_to_json(proof)
  )
  logging.info('Wrote the output ciphertext and proof to %s.', workdir)


def _load_output(workdir: str, params: parameters.SchemeParameters):
  outputs = serialization.read_json(workdir, serialization.OUTPUTS_FILENAME)
  return serialization.glwe_from_json(outputs['out_ct'], params)


def verify_outputs(workdir: str) -> bool:
  """Check the proof; the circuit is recompiled from the parameters."""
  params = _scheme_params()
  inputs = serialization.BootstrapInputs.from_json(
      serialization.read_json(workdir, serialization.INPUTS_FILENAME), params
  )
  out_ct = _load_output(workdir, params)
  proof = prover.proof_from_json(
      serialization.read_json(workdir, serialization.PROOF_FILENAME)
  )
  cyclic = ivc.build_cyclic_circuit(
      params,
      inputs.weights[0],
      inputs.weights[1],
      ivc.IvcConfig(circuit_degree_bits=_CIRCUIT_DEGREE_BITS.value),
  )
  report = verify.verify_pbs(
      out_ct,
      inputs.ct_1,
      inputs.ct_2,
      inputs.test_vector,
      inputs.bsk,
      inputs.ksk,
      proof,
      cyclic.circuit_data,
      params,
  )
  if report:
    print('Verification succeeded.')
  else:
    print(f'Verification failed: {", ".join(report.failed_checks)}')
  return report.accepted


def decrypt(workdir: str) -> int:
  """Decrypt and decode the constant coefficient of the output."""
  params = _scheme_params()
  secrets = serialization.Secrets.from_json(
      serialization.read_json(workdir, serialization.SECRETS_FILENAME), params
  )
  out_ct = _load_output(workdir, params)
  plaintext = glwe.decrypt(out_ct, secrets.partial_key)
  result = int(encoding.decode(plaintext[0], _encoding_params()))
  print(f'Messages {secrets.messages} decrypt to {result}.')
  return result


def main(argv: Sequence[str]) -> int:
  if len(argv) > 1:
    raise app.UsageError('Too many command-line arguments.')
  if _MODE.value is None:
    raise app.UsageError('--mode is required.')
  workdir = _WORKDIR.value
  os.makedirs(workdir, exist_ok=True)
  if _MODE.value == 'encrypt':
    encrypt(workdir)
  elif _MODE.value == 'prove':
    prove(workdir)
  elif _MODE.value == 'verify':
    return 0 if verify_outputs(workdir) else 1
  else:
    decrypt(workdir)
  return 0


def run() -> None:
  app.run(main)


if __name__ == '__main__':
  run()
