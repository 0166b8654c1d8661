"""One bootstrap step as a cyclic circuit.

A proof of step t attests that the accumulator it publishes is the result of
applying steps 1..t (see `bootstrap.bootstrap_step`) to the initial
accumulator it publishes, and that the running hashes it publishes commit to
every gadget ciphertext and mask coordinate used along the way.

Public inputs, in order:

  [initial accumulator (K * N)] [counter] [latest accumulator (K * N)]
  [bsk hash (4)] [lwe hash 1 (4)] [lwe hash 2 (4)] [verifier data (4)]
"""

import dataclasses

from vpbs.vpbs_lib import parameters
from vpbs.vpbs_zkp import circuit
from vpbs.vpbs_zkp import gadgets
from vpbs.vpbs_zkp import poseidon


@dataclasses.dataclass(frozen=True)
class PublicInputLayout:
  """Offsets of each field of the public inputs of a step proof."""

  params: parameters.SchemeParameters

  @property
  def glwe_length(self) -> int:
    return self.params.glwe_size * self.params.polynomial_modulus_degree

  @property
  def initial_accumulator(self) -> slice:
    return slice(0, self.glwe_length)

  @property
  def counter(self) -> int:
    return self.glwe_length

  @property
  def latest_accumulator(self) -> slice:
    start = self.glwe_length + 1
    return slice(start, start + self.glwe_length)

  def _hash(self, index: int) -> slice:
    start = 2 * self.glwe_length + 1 + index * poseidon.NUM_HASH_OUT_ELTS
    return slice(start, start + poseidon.NUM_HASH_OUT_ELTS)

  @property
  def bsk_hash(self) -> slice:
    return self._hash(0)

  @property
  def lwe_hash_1(self) -> slice:
    return self._hash(1)

  @property
  def lwe_hash_2(self) -> slice:
    return self._hash(2)

  @property
  def verifier_data(self) -> slice:
    return self._hash(3)

  @property
  def num_public_inputs(self) -> int:
    return self.verifier_data.stop


@dataclasses.dataclass
class StepTargets:
  """The wires the driver assigns for each step."""

  condition: circuit.BoolTarget
  inner_proof: circuit.ProofWithPublicInputsTarget
  verifier_data: circuit.VerifierCircuitTarget
  # the BSK row, the zero GGSW on the first step or the KSK on the last
  gadget_ct: gadgets.GgswTarget
  # the coordinates of the two input ciphertexts consumed by this step
  mask_1: circuit.Target
  mask_2: circuit.Target
  # outputs, exposed for tests
  counter: circuit.Target
  accumulator_in: gadgets.GlweTarget
  accumulator_out: gadgets.GlweTarget


def _hash_targets(
    targets, layout_slice: slice
) -> circuit.HashOutTarget:
  return circuit.HashOutTarget(tuple(targets[layout_slice]))


def _select_hash(
    builder: circuit.CircuitBuilder,
    condition: circuit.BoolTarget,
    x: circuit.HashOutTarget,
) -> circuit.HashOutTarget:
  """x if condition else the all-zero digest."""
  zero = builder.zero()
  return circuit.HashOutTarget(
      tuple(builder.select(condition, e, zero) for e in x.elements)
  )


def build_step_circuit(
    builder: circuit.CircuitBuilder,
    params: parameters.SchemeParameters,
    weight_1: int,
    weight_2: int,
    common: circuit.CommonCircuitData,
) -> StepTargets:
  """Add one bootstrap step, with recursive verification, to `builder`.

  Args:
    builder: an empty circuit builder.
    params: the scheme parameters.
    weight_1: the weight of the first input ciphertext, a circuit constant.
    weight_2: the weight of the second input ciphertext, a circuit constant.
    common: the common data of the circuit itself, for cyclic recursion.

  Returns:
    The targets the driver assigns at each step.
  """
  layout = PublicInputLayout(params)
  one = builder.one()

  condition = builder.add_virtual_bool_target_safe()
  inner_proof = builder.add_virtual_proof_with_pis(common)
  inner_pis = inner_proof.public_inputs
  inner_initial = gadgets.GlweTarget.from_targets(
      inner_pis[layout.initial_accumulator], params
  )
  inner_latest = gadgets.GlweTarget.from_targets(
      inner_pis[layout.latest_accumulator], params
  )

  # The initial accumulator is carried unchanged through the chain.
  initial = gadgets.GlweTarget.new_from_builder(builder, params)
  for x, y in zip(initial.flatten(), inner_initial.flatten()):
    builder.connect(x, y)
  accumulator_in = gadgets.glwe_select(
      builder, condition, inner_latest, initial
  )
  bsk_hash_in = _select_hash(
      builder, condition, _hash_targets(inner_pis, layout.bsk_hash)
  )
  lwe_hash_1_in = _select_hash(
      builder, condition, _hash_targets(inner_pis, layout.lwe_hash_1)
  )
  lwe_hash_2_in = _select_hash(
      builder, condition, _hash_targets(inner_pis, layout.lwe_hash_2)
  )
  counter = builder.mul_add(condition.target, inner_pis[layout.counter], one)

  first_step = builder.is_equal(counter, one)
  last_step = builder.is_equal(
      counter, builder.constant(params.lwe_dimension + 2)
  )

  gadget_ct = gadgets.GgswTarget.new_from_builder(builder, params)
  mask_1 = builder.add_virtual_target()
  mask_2 = builder.add_virtual_target()
  mask = builder.mul_const_add(
      weight_1, mask_1, builder.mul_const(weight_2, mask_2)
  )
  shift_source = builder.select(first_step, builder.neg(mask), mask)

  shifted = gadgets.rotate_glwe(builder, accumulator_in, shift_source, params)
  difference = shifted.sub(builder, accumulator_in)
  product_input = gadgets.glwe_select(
      builder, last_step, accumulator_in, difference
  )
  product = gadgets.external_product(builder, gadget_ct, product_input, params)
  cmux_out = accumulator_in.add(builder, product)
  accumulator_out = gadgets.glwe_select(
      builder,
      first_step,
      shifted,
      gadgets.glwe_select(builder, last_step, product, cmux_out),
  )

  bsk_hash_out = gadgets.hash_chain_update(
      builder, bsk_hash_in, gadget_ct.flatten()
  )
  lwe_hash_1_out = gadgets.hash_chain_update(builder, lwe_hash_1_in, [mask_1])
  lwe_hash_2_out = gadgets.hash_chain_update(builder, lwe_hash_2_in, [mask_2])

  initial.register(builder)
  builder.register_public_input(counter)
  accumulator_out.register(builder)
  builder.register_public_inputs(bsk_hash_out.elements)
  builder.register_public_inputs(lwe_hash_1_out.elements)
  builder.register_public_inputs(lwe_hash_2_out.elements)
  verifier_data = builder.add_verifier_data_public_inputs()
  builder.conditionally_verify_cyclic_proof_or_dummy(
      condition, inner_proof, common
  )

  return StepTargets(
      condition=condition,
      inner_proof=inner_proof,
      verifier_data=verifier_data,
      gadget_ct=gadget_ct,
      mask_1=mask_1,
      mask_2=mask_2,
      counter=counter,
      accumulator_in=accumulator_in,
      accumulator_out=accumulator_out,
  )
