"""An arithmetic-circuit builder over the Goldilocks field.

The builder follows the shape of plonky2's API: wires are addressed by
integer targets, gates constrain the values on their wires, copy constraints
connect wires that must be equal, and generators compute witness hints
(values that are checked by gates but not derived from them, such as bit
decompositions and inverses).

Supported gates:
  * ConstantGate: a wire holds a fixed value.
  * ArithmeticGate: out = c0 * m0 * m1 + c1 * addend.
  * PoseidonGate: twelve output wires are the Poseidon permutation of twelve
    input wires.
  * CyclicRecursionGate: when a boolean condition wire is 1, a proof of the
    circuit itself, whose public inputs sit on the gate's wires, verifies;
    when it is 0, that proof must be a dummy base proof.

`CircuitBuilder.build` freezes the structure into a `CircuitData`, whose
digest (four field elements) identifies the circuit; proofs are produced by
`prover.prove` and checked by `CircuitData.verify`.
"""

import dataclasses
import hashlib
import json
import logging
import math
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from vpbs.vpbs_lib import errors
from vpbs.vpbs_lib import goldilocks
from vpbs.vpbs_zkp import poseidon

Target = int


@dataclasses.dataclass(frozen=True)
class BoolTarget:
  """A target constrained to hold 0 or 1."""

  target: Target


@dataclasses.dataclass(frozen=True)
class HashOutTarget:
  elements: Tuple[Target, ...]


@dataclasses.dataclass(frozen=True)
class VerifierCircuitTarget:
  """Public-input targets holding the digest of the verifying circuit."""

  circuit_digest: HashOutTarget


@dataclasses.dataclass(frozen=True)
class ProofWithPublicInputsTarget:
  """Targets holding the public inputs of a recursively verified proof."""

  public_inputs: Tuple[Target, ...]


@dataclasses.dataclass(frozen=True)
class CircuitConfig:
  # log2 of the number of gate rows, or None for the smallest that fits
  degree_bits: Optional[int] = None


@dataclasses.dataclass(frozen=True)
class CommonCircuitData:
  """Data shared by a circuit and the proofs it verifies recursively."""

  # None until the circuit is built, when left to the builder
  degree_bits: Optional[int]
  num_public_inputs: int


@dataclasses.dataclass(frozen=True)
class VerifierOnlyCircuitData:
  circuit_digest: Tuple[int, ...]


def common_data_for_recursion(
    config: CircuitConfig, num_public_inputs: int
) -> CommonCircuitData:
  """The common data a cyclic circuit must have to verify its own proofs."""
  return CommonCircuitData(
      degree_bits=config.degree_bits, num_public_inputs=num_public_inputs
  )


@dataclasses.dataclass(frozen=True)
class ConstantGate:
  target: Target
  value: int

  def wires(self) -> Tuple[Target, ...]:
    return ()

  def outputs(self) -> Tuple[Target, ...]:
    return (self.target,)

  def run(self, values: Sequence[int]) -> List[int]:
    del values
    return [self.value]

  def check(self, values: Sequence[int]) -> bool:
    return values[self.target] == self.value

  def describe(self):
    return ('constant', self.target, self.value)


@dataclasses.dataclass(frozen=True)
class ArithmeticGate:
  const_0: int
  const_1: int
  multiplicand_0: Target
  multiplicand_1: Target
  addend: Target
  output: Target

  def wires(self) -> Tuple[Target, ...]:
    return (self.multiplicand_0, self.multiplicand_1, self.addend)

  def outputs(self) -> Tuple[Target, ...]:
    return (self.output,)

  def _evaluate(self, values: Sequence[int]) -> int:
    return (
        self.const_0 * values[self.multiplicand_0] * values[self.multiplicand_1]
        + self.const_1 * values[self.addend]
    ) % goldilocks.MODULUS

  def run(self, values: Sequence[int]) -> List[int]:
    return [self._evaluate(values)]

  def check(self, values: Sequence[int]) -> bool:
    return values[self.output] == self._evaluate(values)

  def describe(self):
    return (
        'arithmetic',
        self.const_0,
        self.const_1,
        self.multiplicand_0,
        self.multiplicand_1,
        self.addend,
        self.output,
    )


@dataclasses.dataclass(frozen=True)
class PoseidonGate:
  inputs: Tuple[Target, ...]
  output_targets: Tuple[Target, ...]

  def wires(self) -> Tuple[Target, ...]:
    return self.inputs

  def outputs(self) -> Tuple[Target, ...]:
    return self.output_targets

  def run(self, values: Sequence[int]) -> List[int]:
    return poseidon.permute([values[t] for t in self.inputs])

  def check(self, values: Sequence[int]) -> bool:
    return [values[t] for t in self.output_targets] == self.run(values)

  def describe(self):
    return ('poseidon', self.inputs, self.output_targets)


@dataclasses.dataclass(frozen=True)
class CyclicRecursionGate:
  """Recursive verification of a proof of the same circuit.

  The inner proof travels beside the witness; the gate itself only pins the
  condition to a boolean and exposes the inner public inputs as wires.
  """

  condition: Target
  inner_public_inputs: Tuple[Target, ...]
  verifier_data: Tuple[Target, ...]

  def wires(self) -> Tuple[Target, ...]:
    return (self.condition,) + self.inner_public_inputs + self.verifier_data

  def outputs(self) -> Tuple[Target, ...]:
    return ()

  def run(self, values: Sequence[int]) -> List[int]:
    del values
    return []

  def check(self, values: Sequence[int]) -> bool:
    return values[self.condition] in (0, 1)

  def describe(self):
    return (
        'cyclic_recursion',
        self.condition,
        self.inner_public_inputs,
        self.verifier_data,
    )


@dataclasses.dataclass(frozen=True)
class SimpleGenerator:
  """Computes `outputs` from `dependencies` once all of them are known."""

  dependencies: Tuple[Target, ...]
  output_targets: Tuple[Target, ...]
  fn: Callable[[List[int]], Sequence[int]]

  def wires(self) -> Tuple[Target, ...]:
    return self.dependencies

  def outputs(self) -> Tuple[Target, ...]:
    return self.output_targets

  def run(self, values: Sequence[int]) -> List[int]:
    outputs = self.fn([values[t] for t in self.dependencies])
    return [v % goldilocks.MODULUS for v in outputs]


def _find(parents: List[int], x: int) -> int:
  root = x
  while parents[root] != root:
    root = parents[root]
  while parents[x] != root:
    parents[x], x = root, parents[x]
  return root


class CircuitBuilder:
  """Accumulates gates, copy constraints, public inputs and hints."""

  def __init__(self, config: Optional[CircuitConfig] = None):
    self.config = config or CircuitConfig()
    self.num_wires = 0
    self.gates = []
    self.copy_constraints: List[Tuple[Target, Target]] = []
    self.generators: List[SimpleGenerator] = []
    self.public_inputs: List[Target] = []
    self.verifier_data: Optional[VerifierCircuitTarget] = None
    self.cyclic_gate: Optional[CyclicRecursionGate] = None
    self.cyclic_common: Optional[CommonCircuitData] = None
    self._constants: Dict[int, Target] = {}

  # Targets and public inputs.

  def add_virtual_target(self) -> Target:
    target = self.num_wires
    self.num_wires += 1
    return target

  def add_virtual_targets(self, count: int) -> List[Target]:
    return [self.add_virtual_target() for _ in range(count)]

  def add_virtual_bool_target_safe(self) -> BoolTarget:
    b = BoolTarget(self.add_virtual_target())
    self.assert_bool(b)
    return b

  def add_virtual_hash(self) -> HashOutTarget:
    return HashOutTarget(
        tuple(self.add_virtual_targets(poseidon.NUM_HASH_OUT_ELTS))
    )

  def register_public_input(self, target: Target) -> None:
    self.public_inputs.append(target)

  def register_public_inputs(self, targets: Sequence[Target]) -> None:
    for target in targets:
      self.register_public_input(target)

  def add_virtual_public_input(self) -> Target:
    target = self.add_virtual_target()
    self.register_public_input(target)
    return target

  def num_public_inputs(self) -> int:
    return len(self.public_inputs)

  def num_gates(self) -> int:
    return len(self.gates)

  # Constants and arithmetic.

  def constant(self, value: int) -> Target:
    value %= goldilocks.MODULUS
    if value not in self._constants:
      target = self.add_virtual_target()
      self.gates.append(ConstantGate(target, value))
      self._constants[value] = target
    return self._constants[value]

  def zero(self) -> Target:
    return self.constant(0)

  def one(self) -> Target:
    return self.constant(1)

  def constant_bool(self, value: bool) -> BoolTarget:
    return BoolTarget(self.one() if value else self.zero())

  def arithmetic(
      self,
      const_0: int,
      const_1: int,
      multiplicand_0: Target,
      multiplicand_1: Target,
      addend: Target,
  ) -> Target:
    """Returns const_0 * multiplicand_0 * multiplicand_1 + const_1 * addend."""
    output = self.add_virtual_target()
    self.gates.append(
        ArithmeticGate(
            const_0 % goldilocks.MODULUS,
            const_1 % goldilocks.MODULUS,
            multiplicand_0,
            multiplicand_1,
            addend,
            output,
        )
    )
    return output

  def add(self, x: Target, y: Target) -> Target:
    return self.arithmetic(1, 1, x, self.one(), y)

  def sub(self, x: Target, y: Target) -> Target:
    return self.arithmetic(1, -1, x, self.one(), y)

  def mul(self, x: Target, y: Target) -> Target:
    return self.arithmetic(1, 0, x, y, self.zero())

  def mul_add(self, x: Target, y: Target, z: Target) -> Target:
    return self.arithmetic(1, 1, x, y, z)

  def mul_const(self, c: int, x: Target) -> Target:
    return self.arithmetic(c, 0, x, self.one(), self.zero())

  def mul_const_add(self, c: int, x: Target, y: Target) -> Target:
    """c * x + y."""
    return self.arithmetic(c, 1, x, self.one(), y)

  def neg(self, x: Target) -> Target:
    return self.mul_const(-1, x)

  def select(self, b: BoolTarget, x: Target, y: Target) -> Target:
    """x if b else y."""
    tmp = self.arithmetic(-1, 1, b.target, y, y)
    return self.arithmetic(1, 1, b.target, x, tmp)

  def assert_bool(self, b: BoolTarget) -> None:
    # b * b - b == 0
    self.assert_zero(self.arithmetic(1, -1, b.target, b.target, b.target))

  def is_equal(self, x: Target, y: Target) -> BoolTarget:
    """A boolean equal to 1 iff x == y, using an inverse hint."""
    equal = self.add_virtual_target()
    inv = self.add_virtual_target()

    def equality_hint(deps: List[int]) -> List[int]:
      diff = (deps[0] - deps[1]) % goldilocks.MODULUS
      if diff == 0:
        return [1, 0]
      return [0, goldilocks.inverse(diff)]

    self.add_simple_generator((x, y), (equal, inv), equality_hint)
    diff = self.sub(x, y)
    # diff * inv == 1 - equal
    self.connect(self.mul(diff, inv), self.sub(self.one(), equal))
    # diff * equal == 0
    self.connect(self.mul(diff, equal), self.zero())
    return BoolTarget(equal)

  def connect(self, x: Target, y: Target) -> None:
    self.copy_constraints.append((x, y))

  def assert_zero(self, x: Target) -> None:
    self.connect(x, self.zero())

  def connect_hashes(self, x: HashOutTarget, y: HashOutTarget) -> None:
    for a, b in zip(x.elements, y.elements):
      self.connect(a, b)

  def add_simple_generator(
      self,
      dependencies: Sequence[Target],
      outputs: Sequence[Target],
      fn: Callable[[List[int]], Sequence[int]],
  ) -> None:
    self.generators.append(
        SimpleGenerator(tuple(dependencies), tuple(outputs), fn)
    )

  # Bits and ranges.

  def split_le(self, x: Target, num_bits: int) -> List[BoolTarget]:
    """Little-endian bits of x, constrained to recompose to x.

    For num_bits = 64 the bits are those of some representative of x below
    2^64, which is unique unless x < 2^32 - 1.
    """
    bits = [self.add_virtual_bool_target_safe() for _ in range(num_bits)]

    def split_hint(deps: List[int]) -> List[int]:
      return [(deps[0] >> i) & 1 for i in range(num_bits)]

    self.add_simple_generator(
        (x,), tuple(b.target for b in bits), split_hint
    )
    acc = self.zero()
    for b in reversed(bits):
      acc = self.mul_const_add(2, acc, b.target)
    self.connect(acc, x)
    return bits

  def range_check(self, x: Target, num_bits: int) -> None:
    """Constrain x to lie in [0, 2^num_bits)."""
    self.split_le(x, num_bits)

  # Hashing.

  def hash_n_to_hash_no_pad(self, inputs: Sequence[Target]) -> HashOutTarget:
    state = [self.zero()] * poseidon.SPONGE_WIDTH
    inputs = list(inputs)
    for start in range(0, len(inputs), poseidon.SPONGE_RATE):
      chunk = inputs[start : start + poseidon.SPONGE_RATE]
      state[: len(chunk)] = chunk
      outputs = tuple(self.add_virtual_targets(poseidon.SPONGE_WIDTH))
      self.gates.append(PoseidonGate(tuple(state), outputs))
      state = list(outputs)
    return HashOutTarget(tuple(state[: poseidon.NUM_HASH_OUT_ELTS]))

  # Recursion.

  def add_verifier_data_public_inputs(self) -> VerifierCircuitTarget:
    if self.verifier_data is not None:
      raise ValueError('Verifier data public inputs were already added.')
    digest = HashOutTarget(
        tuple(
            self.add_virtual_public_input()
            for _ in range(poseidon.NUM_HASH_OUT_ELTS)
        )
    )
    self.verifier_data = VerifierCircuitTarget(circuit_digest=digest)
    return self.verifier_data

  def add_virtual_proof_with_pis(
      self, common_data: CommonCircuitData
  ) -> ProofWithPublicInputsTarget:
    return ProofWithPublicInputsTarget(
        public_inputs=tuple(
            self.add_virtual_targets(common_data.num_public_inputs)
        )
    )

  def conditionally_verify_cyclic_proof_or_dummy(
      self,
      condition: BoolTarget,
      proof: ProofWithPublicInputsTarget,
      common_data: CommonCircuitData,
  ) -> None:
    """Verify `proof` if condition is 1, else accept a dummy base proof.

    The inner proof's last public inputs are bound to this circuit's own
    verifier data, so the inner proof must come from the same circuit.
    """
    if self.verifier_data is None:
      raise ValueError(
          'add_verifier_data_public_inputs must be called before adding '
          'cyclic recursion.'
      )
    if self.cyclic_gate is not None:
      raise ValueError('A circuit can verify at most one cyclic proof.')
    num_digest = poseidon.NUM_HASH_OUT_ELTS
    inner_digest = proof.public_inputs[-num_digest:]
    for inner, outer in zip(
        inner_digest, self.verifier_data.circuit_digest.elements
    ):
      self.connect(inner, outer)
    self.cyclic_gate = CyclicRecursionGate(
        condition=condition.target,
        inner_public_inputs=proof.public_inputs,
        verifier_data=self.verifier_data.circuit_digest.elements,
    )
    self.gates.append(self.cyclic_gate)
    self.cyclic_common = common_data

  def build(self) -> 'CircuitData':
    """Freeze the circuit.

    Raises:
      BackendFailure: if the configured size is too small for the gates, or
        the circuit does not match the common data it verifies recursively.
    """
    num_gates = max(2, len(self.gates))
    needed_bits = math.ceil(math.log2(num_gates))
    degree_bits = self.config.degree_bits
    if degree_bits is None and self.cyclic_common is not None:
      degree_bits = self.cyclic_common.degree_bits
    if degree_bits is None:
      degree_bits = needed_bits
    if needed_bits > degree_bits:
      raise errors.BackendFailure(
          f'Undersized circuit: {len(self.gates)} gates do not fit in '
          f'2^{degree_bits} rows.'
      )
    common = CommonCircuitData(
        degree_bits=degree_bits, num_public_inputs=len(self.public_inputs)
    )
    if self.cyclic_common is not None:
      if self.cyclic_common.num_public_inputs != common.num_public_inputs:
        raise errors.BackendFailure(
            'The circuit has '
            f'{common.num_public_inputs} public inputs, but verifies proofs '
            f'with {self.cyclic_common.num_public_inputs}.'
        )
      expected_bits = self.cyclic_common.degree_bits
      if expected_bits is not None and expected_bits != degree_bits:
        raise errors.BackendFailure(
            f'The circuit has degree 2^{degree_bits}, but verifies proofs of '
            f'degree 2^{expected_bits}.'
        )

    parents = list(range(self.num_wires))
    for x, y in self.copy_constraints:
      rx, ry = _find(parents, x), _find(parents, y)
      if rx != ry:
        parents[max(rx, ry)] = min(rx, ry)
    representatives = [_find(parents, w) for w in range(self.num_wires)]

    digest = _circuit_digest(
        self.num_wires,
        self.gates,
        self.copy_constraints,
        self.public_inputs,
        common,
    )
    logging.info(
        'Built circuit: %d gates, %d wires, %d public inputs, degree 2^%d.',
        len(self.gates),
        self.num_wires,
        len(self.public_inputs),
        degree_bits,
    )
    return CircuitData(
        num_wires=self.num_wires,
        gates=tuple(self.gates),
        copy_constraints=tuple(self.copy_constraints),
        generators=tuple(self.generators),
        public_inputs=tuple(self.public_inputs),
        representatives=tuple(representatives),
        cyclic_gate=self.cyclic_gate,
        verifier_only=VerifierOnlyCircuitData(circuit_digest=digest),
        common=common,
    )


def _circuit_digest(
    num_wires: int,
    gates,
    copy_constraints: Sequence[Tuple[Target, Target]],
    public_inputs: Sequence[Target],
    common: CommonCircuitData,
) -> Tuple[int, ...]:
  """Four field elements derived from SHA-256 of the circuit structure."""
  hasher = hashlib.sha256()
  header = [num_wires, common.degree_bits, common.num_public_inputs]
  hasher.update(json.dumps(header).encode())
  for gate in gates:
    hasher.update(json.dumps(gate.describe()).encode())
  hasher.update(json.dumps(list(copy_constraints)).encode())
  hasher.update(json.dumps(list(public_inputs)).encode())
  raw = hasher.digest()
  return tuple(
      int.from_bytes(raw[8 * i : 8 * (i + 1)], 'little') % goldilocks.MODULUS
      for i in range(poseidon.NUM_HASH_OUT_ELTS)
  )


@dataclasses.dataclass(frozen=True)
class CircuitData:
  """A built circuit: its structure, verifier data and common data."""

  num_wires: int
  gates: Tuple
  copy_constraints: Tuple[Tuple[Target, Target], ...]
  generators: Tuple[SimpleGenerator, ...]
  public_inputs: Tuple[Target, ...]
  # the canonical wire of each wire's copy-constraint class
  representatives: Tuple[int, ...]
  cyclic_gate: Optional[CyclicRecursionGate]
  verifier_only: VerifierOnlyCircuitData
  common: CommonCircuitData

  def verify(self, proof) -> None:
    """Check a proof of this circuit, following its chain of inner proofs.

    Args:
      proof: a `prover.ProofWithPublicInputs`.

    Raises:
      InvalidProofError: if any proof in the chain fails to verify.
    """
    if proof.is_dummy:
      raise errors.InvalidProofError('A dummy proof is not a proof.')
    current = proof
    depth = 0
    while current is not None:
      self.verify_single(current, depth)
      current = self._inner_proof(current, depth)
      depth += 1

  def verify_single(self, proof, depth: int = 0) -> None:
    """Check one proof of the chain, without following its inner proof."""
    if tuple(proof.circuit_digest) != self.verifier_only.circuit_digest:
      raise errors.InvalidProofError(
          f'Proof at depth {depth} is for a different circuit.'
      )
    if proof.degree_bits != self.common.degree_bits:
      raise errors.InvalidProofError(
          f'Proof at depth {depth} has degree 2^{proof.degree_bits}, '
          f'expected 2^{self.common.degree_bits}.'
      )
    if len(proof.public_inputs) != len(self.public_inputs):
      raise errors.InvalidProofError(
          f'Proof at depth {depth} has {len(proof.public_inputs)} public '
          f'inputs, expected {len(self.public_inputs)}.'
      )
    values = [int(v) for v in proof.wires]
    if len(values) != self.num_wires:
      raise errors.InvalidProofError(
          f'Proof at depth {depth} has {len(values)} wires, expected '
          f'{self.num_wires}.'
      )
    if any(not 0 <= v < goldilocks.MODULUS for v in values):
      raise errors.InvalidProofError(
          f'Proof at depth {depth} holds non-canonical wire values.'
      )
    for index, gate in enumerate(self.gates):
      if not gate.check(values):
        raise errors.InvalidProofError(
            f'Proof at depth {depth} violates gate {index}: {gate.describe()}.'
        )
    for x, y in self.copy_constraints:
      if values[x] != values[y]:
        raise errors.InvalidProofError(
            f'Proof at depth {depth} violates the copy constraint '
            f'({x}, {y}).'
        )
    for index, (target, value) in enumerate(
        zip(self.public_inputs, proof.public_inputs)
    ):
      if values[target] != value:
        raise errors.InvalidProofError(
            f'Proof at depth {depth} misreports public input {index}.'
        )

  def _inner_proof(self, proof, depth: int):
    """The next proof of the chain to verify, or None at the base case."""
    if self.cyclic_gate is None:
      return None
    inner = proof.inner_proof
    if inner is None:
      raise errors.InvalidProofError(
          f'Proof at depth {depth} carries no inner proof.'
      )
    gate = self.cyclic_gate
    expected_pis = [proof.wires[t] for t in gate.inner_public_inputs]
    if [int(v) for v in expected_pis] != list(inner.public_inputs):
      raise errors.InvalidProofError(
          f'Inner proof at depth {depth + 1} does not match the public '
          'inputs it is verified against.'
      )
    if int(proof.wires[gate.condition]) == 1:
      if inner.is_dummy:
        raise errors.InvalidProofError(
            f'Proof at depth {depth} verifies a dummy proof with a true '
            'condition.'
        )
      return inner
    if not inner.is_dummy:
      raise errors.InvalidProofError(
          f'Proof at depth {depth} has a false condition but a real inner '
          'proof.'
      )
    return None
