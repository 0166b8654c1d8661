"""Verification of a verified programmable bootstrap.

The verifier holds the public inputs of the bootstrap (the two ciphertexts,
the test vector, the bootstrapping and key switching keys), the claimed
output and the final proof. It never re-runs the bootstrap. All checks are
evaluated, and the bootstrap is accepted only if every one passes.
"""

import dataclasses
import logging
from typing import List, Sequence, Tuple

import jax.numpy as jnp
from vpbs.vpbs_lib import bootstrap
from vpbs.vpbs_lib import errors
from vpbs.vpbs_lib import ggsw
from vpbs.vpbs_lib import glwe
from vpbs.vpbs_lib import goldilocks
from vpbs.vpbs_lib import key_switch
from vpbs.vpbs_lib import lwe
from vpbs.vpbs_lib import parameters
from vpbs.vpbs_zkp import circuit
from vpbs.vpbs_zkp import poseidon
from vpbs.vpbs_zkp import prover
from vpbs.vpbs_zkp import step_circuit

INITIAL_ACCUMULATOR = 'initial_accumulator'
COUNTER = 'counter'
OUTPUT_CIPHERTEXT = 'output_ciphertext'
PROOF = 'proof'
VERIFIER_DATA = 'verifier_data'
HASH_CHAINS = 'hash_chains'

ALL_CHECKS = (
    INITIAL_ACCUMULATOR,
    COUNTER,
    OUTPUT_CIPHERTEXT,
    PROOF,
    VERIFIER_DATA,
    HASH_CHAINS,
)


@dataclasses.dataclass(frozen=True)
class VerificationReport:
  """The outcome of `verify_pbs`; truthy iff every check passed."""

  failed_checks: Tuple[str, ...]

  @property
  def accepted(self) -> bool:
    return not self.failed_checks

  def __bool__(self) -> bool:
    return self.accepted

  def raise_if_rejected(self) -> None:
    if self.failed_checks:
      raise errors.ProtocolViolation(self.failed_checks)


def _chain(data: Sequence[jnp.ndarray]) -> List[int]:
  digest = list(poseidon.ZERO_HASH)
  for item in data:
    values = goldilocks.to_int(jnp.asarray(item, dtype=jnp.uint64).reshape(-1))
    digest = poseidon.chain_hash(digest, values)
  return digest


def expected_hash_chains(
    ct_1: lwe.LweCiphertext,
    ct_2: lwe.LweCiphertext,
    bsk: bootstrap.BootstrappingKey,
    ksk: key_switch.KeySwitchingKey,
    params: parameters.SchemeParameters,
) -> Tuple[List[int], List[int], List[int]]:
  """The three running hashes a complete bootstrap must end with.

  The gadget chain absorbs the zero GGSW of the first step, every
  bootstrapping key row and the key switching key. Each ciphertext chain
  absorbs its body, its mask coordinates and a final zero.
  """
  gadget_data = (
      [ggsw.zero(params).flatten()]
      + [bsk[i].flatten() for i in range(params.lwe_dimension)]
      + [ksk.flatten()]
  )

  def lwe_data(ct: lwe.LweCiphertext):
    zero = jnp.zeros((1,), dtype=jnp.uint64)
    return [ct.body] + [ct.mask[i] for i in range(params.lwe_dimension)] + [
        zero
    ]

  return _chain(gadget_data), _chain(lwe_data(ct_1)), _chain(lwe_data(ct_2))


def verify_pbs(
    out_ct: glwe.GlweCiphertext,
    ct_1: lwe.LweCiphertext,
    ct_2: lwe.LweCiphertext,
    test_vector: jnp.ndarray,
    bsk: bootstrap.BootstrappingKey,
    ksk: key_switch.KeySwitchingKey,
    proof: prover.ProofWithPublicInputs,
    circuit_data: circuit.CircuitData,
    params: parameters.SchemeParameters,
) -> VerificationReport:
  """Check a verified bootstrap.

  Args:
    out_ct: the claimed output ciphertext.
    ct_1: the first input ciphertext.
    ct_2: the second input ciphertext.
    test_vector: the function table.
    bsk: the bootstrapping key.
    ksk: the key switching key.
    proof: the final proof of the chain.
    circuit_data: the compiled step circuit.
    params: the scheme parameters.

  Returns:
    A report naming every failed check.

  Raises:
    MalformedInputError: if an input does not match `params`.
  """
  out_ct.check(params)
  parameters.check_shape('LWE ciphertext', ct_1.message.shape, params.lwe_shape)
  parameters.check_shape('LWE ciphertext', ct_2.message.shape, params.lwe_shape)
  parameters.check_shape(
      'Test vector', test_vector.shape, (params.polynomial_modulus_degree,)
  )
  bsk.check(params)
  ksk.ciphertext.check(params)

  layout = step_circuit.PublicInputLayout(params)
  public_inputs = list(proof.public_inputs)
  well_formed = len(public_inputs) == layout.num_public_inputs
  failed = []

  initial = goldilocks.to_int(
      bootstrap.initial_accumulator(test_vector, params)
  )
  if not (
      well_formed and public_inputs[layout.initial_accumulator] == initial
  ):
    failed.append(INITIAL_ACCUMULATOR)

  if not (
      well_formed
      and public_inputs[layout.counter] == params.lwe_dimension + 2
  ):
    failed.append(COUNTER)

  claimed = goldilocks.to_int(out_ct.message.reshape(-1))
  if not (
      well_formed and public_inputs[layout.latest_accumulator] == claimed
  ):
    failed.append(OUTPUT_CIPHERTEXT)

  try:
    circuit_data.verify(proof)
  except errors.InvalidProofError as e:
    logging.warning('Proof rejected: %s', e)
    failed.append(PROOF)

  try:
    prover.check_cyclic_proof_verifier_data(
        proof, circuit_data.verifier_only, circuit_data.common
    )
  except errors.InvalidProofError as e:
    logging.warning('Verifier data rejected: %s', e)
    failed.append(VERIFIER_DATA)

  bsk_hash, lwe_hash_1, lwe_hash_2 = expected_hash_chains(
      ct_1, ct_2, bsk, ksk, params
  )
  if not (
      well_formed
      and public_inputs[layout.bsk_hash] == bsk_hash
      and public_inputs[layout.lwe_hash_1] == lwe_hash_1
      and public_inputs[layout.lwe_hash_2] == lwe_hash_2
  ):
    failed.append(HASH_CHAINS)

  if failed:
    logging.warning('Bootstrap rejected; failed checks: %s', failed)
  else:
    logging.info('Bootstrap accepted.')
  return VerificationReport(failed_checks=tuple(failed))
