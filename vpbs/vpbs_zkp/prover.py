"""Witness generation and proving for circuits built by `circuit`.

Proofs produced here are transparent: a proof carries the full wire
assignment, and the proof of a cyclic circuit carries the inner proof it
verifies. Verification re-checks every gate and copy constraint of every
proof in the chain.
"""

import dataclasses
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
from vpbs.vpbs_lib import errors
from vpbs.vpbs_lib import goldilocks
from vpbs.vpbs_zkp import circuit
from vpbs.vpbs_zkp import poseidon


@dataclasses.dataclass(frozen=True)
class ProofWithPublicInputs:
  """A proof of one circuit execution, with its public inputs."""

  public_inputs: Tuple[int, ...]
  # the value of every wire, as uint64; empty for a dummy proof
  wires: np.ndarray
  # the proof verified by the cyclic recursion gate, if any
  inner_proof: Optional['ProofWithPublicInputs']
  circuit_digest: Tuple[int, ...]
  degree_bits: int
  # a base-case stand-in, accepted only where the recursion condition is 0
  is_dummy: bool = False

  def chain(self) -> List['ProofWithPublicInputs']:
    """This proof followed by its inner proofs, outermost first."""
    proofs = []
    current = self
    while current is not None:
      proofs.append(current)
      current = current.inner_proof
    return proofs


class PartialWitness:
  """Values assigned to targets before witness generation."""

  def __init__(self):
    self.target_values: Dict[circuit.Target, int] = {}
    self.inner_proof: Optional[ProofWithPublicInputs] = None

  def set_target(self, target: circuit.Target, value: int) -> None:
    value = int(value) % goldilocks.MODULUS
    previous = self.target_values.get(target)
    if previous is not None and previous != value:
      raise errors.BackendFailure(
          f'Conflicting assignments {previous} and {value} to target '
          f'{target}.'
      )
    self.target_values[target] = value

  def set_targets(
      self, targets: Sequence[circuit.Target], values: Sequence[int]
  ) -> None:
    if len(targets) != len(values):
      raise errors.MalformedInputError(
          f'Cannot assign {len(values)} values to {len(targets)} targets.'
      )
    for target, value in zip(targets, values):
      self.set_target(target, value)

  def set_bool_target(self, target: circuit.BoolTarget, value: bool) -> None:
    self.set_target(target.target, int(bool(value)))

  def set_hash_target(
      self, target: circuit.HashOutTarget, value: Sequence[int]
  ) -> None:
    self.set_targets(target.elements, value)

  def set_proof_with_pis_target(
      self,
      target: circuit.ProofWithPublicInputsTarget,
      proof: ProofWithPublicInputs,
  ) -> None:
    self.set_targets(target.public_inputs, proof.public_inputs)
    self.inner_proof = proof

  def set_verifier_data_target(
      self,
      target: circuit.VerifierCircuitTarget,
      verifier_only: circuit.VerifierOnlyCircuitData,
  ) -> None:
    self.set_hash_target(target.circuit_digest, verifier_only.circuit_digest)


class _WireValues:
  """Wire values shared across copy-constraint classes."""

  def __init__(self, representatives: Sequence[int]):
    self.representatives = representatives
    self.values: Dict[int, int] = {}

  def get(self, target: circuit.Target) -> Optional[int]:
    return self.values.get(self.representatives[target])

  def set(self, target: circuit.Target, value: int) -> None:
    root = self.representatives[target]
    previous = self.values.get(root)
    if previous is not None and previous != value:
      raise errors.BackendFailure(
          f'Unsatisfiable witness: wire {target} must equal both {previous} '
          f'and {value}.'
      )
    self.values[root] = value


class _ValueView:
  """Read-only indexing of wire values by target, for gates and hints."""

  def __init__(self, wire_values: _WireValues):
    self.wire_values = wire_values

  def __getitem__(self, target: circuit.Target) -> int:
    return self.wire_values.get(target)


def _generate_witness(
    circuit_data: circuit.CircuitData, witness: PartialWitness
) -> List[int]:
  wire_values = _WireValues(circuit_data.representatives)
  for target, value in witness.target_values.items():
    wire_values.set(target, value)

  view = _ValueView(wire_values)
  pending = [
      runner
      for runner in circuit_data.gates + circuit_data.generators
      if runner.outputs()
  ]
  while pending:
    blocked = []
    for runner in pending:
      if any(wire_values.get(t) is None for t in runner.wires()):
        blocked.append(runner)
        continue
      for target, value in zip(runner.outputs(), runner.run(view)):
        wire_values.set(target, value)
    if len(blocked) == len(pending):
      raise errors.BackendFailure(
          f'Witness generation is stuck with {len(blocked)} gates or hints '
          'missing inputs.'
      )
    pending = blocked

  values = []
  for target in range(circuit_data.num_wires):
    value = wire_values.get(target)
    if value is None:
      raise errors.BackendFailure(f'Wire {target} was never assigned.')
    values.append(value)
  return values


def prove(
    circuit_data: circuit.CircuitData, witness: PartialWitness
) -> ProofWithPublicInputs:
  """Generate the full witness and check every constraint.

  Args:
    circuit_data: the circuit to prove.
    witness: the assigned inputs, and for a cyclic circuit the inner proof.

  Returns:
    A proof whose public inputs are read off the generated witness.

  Raises:
    BackendFailure: if the witness is incomplete or unsatisfiable, or the
      inner proof does not verify.
  """
  values = _generate_witness(circuit_data, witness)
  for index, gate in enumerate(circuit_data.gates):
    if not gate.check(values):
      raise errors.BackendFailure(
          f'Unsatisfiable witness: gate {index} ({gate.describe()[0]}) fails.'
      )

  inner_proof = None
  if circuit_data.cyclic_gate is not None:
    inner_proof = witness.inner_proof
    if inner_proof is None:
      raise errors.BackendFailure(
          'A cyclic circuit needs an inner proof in the witness.'
      )
    gate = circuit_data.cyclic_gate
    if values[gate.condition] == 1:
      try:
        _check_single(circuit_data, inner_proof)
      except errors.InvalidProofError as e:
        raise errors.BackendFailure(f'Inner proof does not verify: {e}') from e
    elif not inner_proof.is_dummy:
      raise errors.BackendFailure(
          'A false recursion condition needs a dummy base proof.'
      )

  public_inputs = tuple(values[t] for t in circuit_data.public_inputs)
  logging.debug(
      'Proved circuit %s with %d public inputs.',
      circuit_data.verifier_only.circuit_digest,
      len(public_inputs),
  )
  return ProofWithPublicInputs(
      public_inputs=public_inputs,
      wires=np.array(values, dtype=np.uint64),
      inner_proof=inner_proof,
      circuit_digest=circuit_data.verifier_only.circuit_digest,
      degree_bits=circuit_data.common.degree_bits,
  )


def _check_single(
    circuit_data: circuit.CircuitData, proof: ProofWithPublicInputs
) -> None:
  # Inner proofs were checked when they were produced, so one level suffices.
  if proof.is_dummy:
    raise errors.InvalidProofError('Expected a real proof, got a dummy.')
  circuit_data.verify_single(proof, depth=1)


def cyclic_base_proof(
    common: circuit.CommonCircuitData,
    verifier_only: circuit.VerifierOnlyCircuitData,
    initial_public_inputs: Dict[int, int],
) -> ProofWithPublicInputs:
  """A dummy proof standing in for the step before the first.

  Args:
    common: the common data of the cyclic circuit.
    verifier_only: the verifier data of the cyclic circuit.
    initial_public_inputs: public input values by index; the remaining
      public inputs are zero, except the trailing verifier data.

  Returns:
    A dummy proof, to be verified with a false condition.
  """
  num_digest = poseidon.NUM_HASH_OUT_ELTS
  num_free = common.num_public_inputs - num_digest
  public_inputs = [0] * num_free
  for index, value in initial_public_inputs.items():
    if not 0 <= index < num_free:
      raise errors.MalformedInputError(
          f'Public input index {index} is outside [0, {num_free}).'
      )
    public_inputs[index] = int(value) % goldilocks.MODULUS
  public_inputs.extend(verifier_only.circuit_digest)
  return ProofWithPublicInputs(
      public_inputs=tuple(public_inputs),
      wires=np.zeros((0,), dtype=np.uint64),
      inner_proof=None,
      circuit_digest=verifier_only.circuit_digest,
      degree_bits=common.degree_bits,
      is_dummy=True,
  )


def check_cyclic_proof_verifier_data(
    proof: ProofWithPublicInputs,
    verifier_only: circuit.VerifierOnlyCircuitData,
    common: circuit.CommonCircuitData,
) -> None:
  """Check that the verifier data a cyclic proof commits to is the circuit's.

  Raises:
    InvalidProofError: on a mismatch.
  """
  if len(proof.public_inputs) != common.num_public_inputs:
    raise errors.InvalidProofError(
        f'Proof has {len(proof.public_inputs)} public inputs, expected '
        f'{common.num_public_inputs}.'
    )
  committed = tuple(proof.public_inputs[-poseidon.NUM_HASH_OUT_ELTS :])
  if committed != tuple(verifier_only.circuit_digest):
    raise errors.InvalidProofError(
        'Proof commits to verifier data of a different circuit.'
    )


def proof_to_json(proof: ProofWithPublicInputs) -> Dict[str, Any]:
  """A JSON-compatible encoding of the proof chain, outermost first."""
  return {
      'proofs': [
          {
              'public_inputs': list(p.public_inputs),
              'wires': goldilocks.to_int(p.wires),
              'circuit_digest': list(p.circuit_digest),
              'degree_bits': p.degree_bits,
              'is_dummy': p.is_dummy,
          }
          for p in proof.chain()
      ]
  }


def proof_from_json(data: Dict[str, Any]) -> ProofWithPublicInputs:
  """Inverse of `proof_to_json`."""
  try:
    layers = data['proofs']
  except (KeyError, TypeError) as e:
    raise errors.MalformedInputError('Not a serialized proof.') from e
  proof = None
  for layer in reversed(layers):
    try:
      proof = ProofWithPublicInputs(
          public_inputs=tuple(int(v) for v in layer['public_inputs']),
          wires=np.array(
              [int(v) for v in layer['wires']], dtype=np.uint64
          ).reshape(-1),
          inner_proof=proof,
          circuit_digest=tuple(int(v) for v in layer['circuit_digest']),
          degree_bits=int(layer['degree_bits']),
          is_dummy=bool(layer['is_dummy']),
      )
    except (KeyError, TypeError, ValueError, OverflowError) as e:
      raise errors.MalformedInputError('Malformed proof layer.') from e
  if proof is None:
    raise errors.MalformedInputError('A serialized proof has no layers.')
  return proof
