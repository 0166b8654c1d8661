"""Verified programmable bootstrapping by incrementally verifiable computation.

`verified_pbs` runs the n + 2 steps of the bootstrap as a chain of proofs of
one cyclic step circuit. Each proof verifies its predecessor, so the final
proof alone attests to the whole bootstrap:

  * step 0 verifies a dummy base proof, whose public inputs carry the
    initial accumulator (the test vector as a trivial GLWE ciphertext), and
    consumes the bodies of the two input ciphertexts;
  * steps 1..n each consume one bootstrapping key row and one mask
    coordinate of each input ciphertext;
  * step n + 1 consumes the key switching key.
"""

import dataclasses
import logging
from typing import Callable, Optional, Tuple

from vpbs.vpbs_lib import bootstrap
from vpbs.vpbs_lib import errors
from vpbs.vpbs_lib import ggsw
from vpbs.vpbs_lib import glwe
from vpbs.vpbs_lib import goldilocks
from vpbs.vpbs_lib import key_switch
from vpbs.vpbs_lib import lwe
from vpbs.vpbs_lib import parameters
from vpbs.vpbs_zkp import circuit
from vpbs.vpbs_zkp import prover
from vpbs.vpbs_zkp import step_circuit

PublicInputLayout = step_circuit.PublicInputLayout


@dataclasses.dataclass(frozen=True)
class IvcConfig:
  # log2 of the step circuit's row count; None picks the smallest that fits
  circuit_degree_bits: Optional[int] = None


@dataclasses.dataclass
class CyclicCircuit:
  circuit_data: circuit.CircuitData
  targets: step_circuit.StepTargets
  layout: PublicInputLayout


def build_cyclic_circuit(
    params: parameters.SchemeParameters,
    weight_1: int,
    weight_2: int,
    config: Optional[IvcConfig] = None,
) -> CyclicCircuit:
  """Compile the step circuit; deterministic in its arguments.

  Raises:
    BackendFailure: if `config.circuit_degree_bits` is too small.
  """
  config = config or IvcConfig()
  circuit_config = circuit.CircuitConfig(degree_bits=config.circuit_degree_bits)
  layout = PublicInputLayout(params)
  common = circuit.common_data_for_recursion(
      circuit_config, layout.num_public_inputs
  )
  builder = circuit.CircuitBuilder(circuit_config)
  targets = step_circuit.build_step_circuit(
      builder, params, weight_1, weight_2, common
  )
  return CyclicCircuit(
      circuit_data=builder.build(), targets=targets, layout=layout
  )


def _step_inputs(ct_1, ct_2, bsk, ksk, params):
  """(condition, gadget ciphertext, mask_1, mask_2, name) for every step."""
  yield (False, ggsw.zero(params), ct_1.body, ct_2.body, 'rotated')
  for i in range(params.lwe_dimension):
    yield (True, bsk[i], ct_1.mask[i], ct_2.mask[i], 'cmux')
  yield (True, ksk.ciphertext, 0, 0, 'key_switched')


def verified_pbs(
    ct_1: lwe.LweCiphertext,
    ct_2: lwe.LweCiphertext,
    weight_1: int,
    weight_2: int,
    test_vector,
    bsk: bootstrap.BootstrappingKey,
    ksk: key_switch.KeySwitchingKey,
    params: parameters.SchemeParameters,
    config: Optional[IvcConfig] = None,
    callback: Optional[Callable[..., None]] = None,
) -> Tuple[glwe.GlweCiphertext, prover.ProofWithPublicInputs,
           circuit.CircuitData]:
  """Bootstrap w_1 * ct_1 + w_2 * ct_2 through `test_vector`, with a proof.

  Args:
    ct_1: the first LWE ciphertext.
    ct_2: the second LWE ciphertext.
    weight_1: the weight applied to ct_1.
    weight_2: the weight applied to ct_2.
    test_vector: the (N,) function table.
    bsk: the bootstrapping key.
    ksk: the key switching key.
    params: the scheme parameters.
    config: circuit sizing.
    callback: an optional debug callback, called like the callback of
      `bootstrap.programmable_bootstrap` with each step's accumulator.

  Returns:
    The output GLWE ciphertext under the partial key, the final proof and
    the circuit data needed to verify it.

  Raises:
    MalformedInputError: if an input does not match `params`.
    BackendFailure: if a step cannot be proved.
  """
  parameters.check_shape('LWE ciphertext', ct_1.message.shape, params.lwe_shape)
  parameters.check_shape('LWE ciphertext', ct_2.message.shape, params.lwe_shape)
  parameters.check_shape(
      'Test vector', test_vector.shape, (params.polynomial_modulus_degree,)
  )
  bsk.check(params)
  ksk.ciphertext.check(params)

  logging.info(
      'Verified PBS: n=%d, K=%d, N=%d, log_base=%d, level_count=%d, '
      'weights=(%d, %d).',
      params.lwe_dimension,
      params.glwe_size,
      params.polynomial_modulus_degree,
      params.log_base,
      params.level_count,
      weight_1,
      weight_2,
  )
  cyclic = build_cyclic_circuit(params, weight_1, weight_2, config)
  circuit_data = cyclic.circuit_data
  targets = cyclic.targets
  layout = cyclic.layout

  initial = goldilocks.to_int(
      bootstrap.initial_accumulator(test_vector, params)
  )
  proof = prover.cyclic_base_proof(
      circuit_data.common, circuit_data.verifier_only, dict(enumerate(initial))
  )

  num_steps = params.lwe_dimension + 2
  for step, (condition, gadget_ct, mask_1, mask_2, name) in enumerate(
      _step_inputs(ct_1, ct_2, bsk, ksk, params)
  ):
    witness = prover.PartialWitness()
    witness.set_bool_target(targets.condition, condition)
    witness.set_proof_with_pis_target(targets.inner_proof, proof)
    witness.set_verifier_data_target(
        targets.verifier_data, circuit_data.verifier_only
    )
    targets.gadget_ct.assign(witness, gadget_ct.message)
    witness.set_target(targets.mask_1, int(mask_1))
    witness.set_target(targets.mask_2, int(mask_2))
    try:
      proof = prover.prove(circuit_data, witness)
    except errors.BackendFailure:
      logging.error('Proving step %d of %d failed.', step + 1, num_steps)
      raise
    logging.info('Proved step %d of %d.', step + 1, num_steps)
    if callback:
      callback(name, _latest_accumulator(proof, layout, params), step=step)

  return _latest_accumulator(proof, layout, params), proof, circuit_data


def _latest_accumulator(
    proof: prover.ProofWithPublicInputs,
    layout: PublicInputLayout,
    params: parameters.SchemeParameters,
) -> glwe.GlweCiphertext:
  values = proof.public_inputs[layout.latest_accumulator]
  return glwe.GlweCiphertext(
      message=goldilocks.from_int(list(values)).reshape(params.glwe_shape)
  )
