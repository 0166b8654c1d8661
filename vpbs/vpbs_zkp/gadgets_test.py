"""Tests for gadgets."""

import dataclasses

from vpbs.vpbs_lib import decomposition
from vpbs.vpbs_lib import errors
from vpbs.vpbs_lib import ggsw
from vpbs.vpbs_lib import glwe
from vpbs.vpbs_lib import goldilocks
from vpbs.vpbs_lib import lwe
from vpbs.vpbs_lib import ntt
from vpbs.vpbs_lib import parameters
from vpbs.vpbs_lib import random_source
from vpbs.vpbs_zkp import circuit
from vpbs.vpbs_zkp import gadgets
from vpbs.vpbs_zkp import poseidon
from vpbs.vpbs_zkp import prover
import numpy as np

from absl.testing import absltest
from absl.testing import parameterized

P = goldilocks.MODULUS


def _params(degree=8, log_base=8, level_count=8):
  return parameters.SchemeParameters(
      lwe_dimension=1,
      glwe_dimension=1,
      polynomial_modulus_degree=degree,
      log_base=log_base,
      level_count=level_count,
  )


def _with_digit_hint(circuit_data, y, hint):
  """Swaps the hint that decomposes y for another one."""
  generators = tuple(
      dataclasses.replace(g, fn=hint) if g.dependencies == (y,) else g
      for g in circuit_data.generators
  )
  return dataclasses.replace(circuit_data, generators=generators)


def _exact_digits(value, log_base, level_count):
  """Balanced digits of the integer value itself, most significant first."""
  base = 1 << log_base
  digits = []
  for _ in range(level_count):
    digit = value % base
    if digit >= base // 2:
      digit -= base
    digits.append(digit)
    value = (value - digit) >> log_base
  digits[-1] += value * base
  return digits[::-1]


class RotateGlweTest(parameterized.TestCase):

  @classmethod
  def setUpClass(cls):
    super().setUpClass()
    cls.params = _params()
    builder = circuit.CircuitBuilder()
    cls.glwe_t = gadgets.GlweTarget.new_from_builder(builder, cls.params)
    cls.x = builder.add_virtual_target()
    gadgets.rotate_glwe(builder, cls.glwe_t, cls.x, cls.params).register(
        builder
    )
    cls.circuit_data = builder.build()
    cls.message = random_source.PseudorandomSource(seed=1).uniform(
        shape=cls.params.glwe_shape
    )

  @parameterized.named_parameters(
      ('zero', 0),
      ('one', 1),
      ('small', 2**32 - 2),
      ('below_half_step', 2**59 - 1),
      ('half_step', 2**59),
      ('one_step', 2**60),
      ('three_and_a_half_steps', 3 * 2**60 + 2**59),
      ('wraps_to_zero', P - 1),
      ('large', 0xDEADBEEF12345678),
  )
  def test_matches_native_rotation(self, value):
    witness = prover.PartialWitness()
    self.glwe_t.assign(witness, self.message)
    witness.set_target(self.x, value)
    proof = prover.prove(self.circuit_data, witness)

    shift = lwe.jit_mod_switch(
        goldilocks.from_int(value), self.params.log_mod_degree
    )
    expected = glwe.rotate(glwe.GlweCiphertext(message=self.message), shift)
    self.assertEqual(
        list(proof.public_inputs),
        goldilocks.to_int(expected.message.reshape(-1)),
    )


class DecomposeTest(parameterized.TestCase):

  @parameterized.parameters((8, 8), (8, 4), (16, 3), (4, 16))
  def test_matches_native_digits(self, log_base, level_count):
    params = _params(log_base=log_base, level_count=level_count)
    builder = circuit.CircuitBuilder()
    y = builder.add_virtual_target()
    builder.register_public_inputs(gadgets.decompose(builder, y, params))
    circuit_data = builder.build()

    values = [0, 1, P - 1, P // 2, P // 2 + 1, 2**63 + 2**31]
    values += goldilocks.to_int(
        random_source.PseudorandomSource(seed=log_base).uniform(shape=(5,))
    )
    for value in values:
      witness = prover.PartialWitness()
      witness.set_target(y, value)
      proof = prover.prove(circuit_data, witness)
      digits, _ = decomposition.signed_digits(value, log_base, level_count)
      self.assertEqual(list(proof.public_inputs), [d % P for d in digits])

  def test_rejects_wrong_digits(self):
    params = _params(log_base=8, level_count=8)
    builder = circuit.CircuitBuilder()
    y = builder.add_virtual_target()
    digits = gadgets.decompose(builder, y, params)
    circuit_data = builder.build()
    # The digits of 2^57 start with 2.
    witness = prover.PartialWitness()
    witness.set_target(y, 2**57)
    witness.set_target(digits[0], 0)
    with self.assertRaises(errors.BackendFailure):
      prover.prove(circuit_data, witness)

  @parameterized.parameters((8, 8), (16, 3), (4, 16))
  def test_rejects_shifted_digits(self, log_base, level_count):
    params = _params(log_base=log_base, level_count=level_count)
    builder = circuit.CircuitBuilder()
    y = builder.add_virtual_target()
    gadgets.decompose(builder, y, params)
    base = params.decomposition_base

    def shifted_hint(deps):
      digits, rest = decomposition.signed_digits(
          deps[0], log_base, level_count
      )
      # Same weighted sum, with the second digit out of range.
      digits[0] -= 1
      digits[1] += base
      return digits + [rest]

    circuit_data = _with_digit_hint(builder.build(), y, shifted_hint)
    witness = prover.PartialWitness()
    witness.set_target(y, 0x0123456789ABCDEF)
    with self.assertRaises(errors.BackendFailure):
      prover.prove(circuit_data, witness)

  @parameterized.parameters((8, 8), (4, 16))
  def test_rejects_digits_of_value_plus_modulus(self, log_base, level_count):
    params = _params(log_base=log_base, level_count=level_count)
    builder = circuit.CircuitBuilder()
    y = builder.add_virtual_target()
    gadgets.decompose(builder, y, params)
    # (p + 1) / 2 is also -(p - 1) / 2 mod p; both integers have digits in
    # range, the second one with a top digit of B/2.
    value = P // 2 + 1
    circuit_data = _with_digit_hint(
        builder.build(),
        y,
        lambda deps: _exact_digits(deps[0], log_base, level_count) + [0],
    )
    self.assertEqual(
        sum(
            d * g
            for d, g in zip(
                _exact_digits(value, log_base, level_count),
                decomposition.gadget_values(log_base, level_count),
            )
        ),
        value,
    )
    witness = prover.PartialWitness()
    witness.set_target(y, value)
    with self.assertRaises(errors.BackendFailure):
      prover.prove(circuit_data, witness)

  def test_rejects_binary_digits(self):
    builder = circuit.CircuitBuilder()
    y = builder.add_virtual_target()
    with self.assertRaises(ValueError):
      gadgets.decompose(builder, y, _params(log_base=1, level_count=64))


class NttGadgetTest(parameterized.TestCase):

  @parameterized.parameters(2, 4, 8)
  def test_matches_native_ntt(self, degree):
    builder = circuit.CircuitBuilder()
    coeffs = builder.add_virtual_targets(degree)
    evals = gadgets.ntt_forward(builder, coeffs)
    builder.register_public_inputs(evals)
    builder.register_public_inputs(gadgets.ntt_backward(builder, evals))
    circuit_data = builder.build()

    values = random_source.PseudorandomSource(seed=degree).uniform(
        shape=(degree,)
    )
    witness = prover.PartialWitness()
    witness.set_targets(coeffs, goldilocks.to_int(values))
    proof = prover.prove(circuit_data, witness)
    self.assertEqual(
        list(proof.public_inputs),
        goldilocks.to_int(ntt.forward(values)) + goldilocks.to_int(values),
    )


class ExternalProductGadgetTest(parameterized.TestCase):

  @parameterized.parameters((8, 8), (16, 2))
  def test_matches_native_external_product(self, log_base, level_count):
    params = _params(degree=4, log_base=log_base, level_count=level_count)
    builder = circuit.CircuitBuilder()
    ggsw_t = gadgets.GgswTarget.new_from_builder(builder, params)
    glwe_t = gadgets.GlweTarget.new_from_builder(builder, params)
    gadgets.external_product(builder, ggsw_t, glwe_t, params).register(builder)
    circuit_data = builder.build()

    prg = random_source.PseudorandomSource(seed=log_base)
    ggsw_ct = ggsw.GgswCiphertext(message=prg.uniform(shape=params.ggsw_shape))
    glwe_ct = glwe.GlweCiphertext(message=prg.uniform(shape=params.glwe_shape))
    witness = prover.PartialWitness()
    ggsw_t.assign(witness, ggsw_ct.message)
    glwe_t.assign(witness, glwe_ct.message)
    proof = prover.prove(circuit_data, witness)
    circuit_data.verify(proof)

    expected = ggsw.external_product(ggsw_ct, glwe_ct, params)
    self.assertEqual(
        list(proof.public_inputs),
        goldilocks.to_int(expected.message.reshape(-1)),
    )


class SmallGadgetsTest(parameterized.TestCase):

  @parameterized.parameters(True, False)
  def test_glwe_select(self, flag):
    params = _params(degree=2)
    builder = circuit.CircuitBuilder()
    b = builder.add_virtual_bool_target_safe()
    x = gadgets.GlweTarget.new_from_builder(builder, params)
    y = gadgets.GlweTarget.new_from_builder(builder, params)
    gadgets.glwe_select(builder, b, x, y).register(builder)
    circuit_data = builder.build()

    witness = prover.PartialWitness()
    witness.set_bool_target(b, flag)
    x.assign(witness, np.array([[1, 2], [3, 4]], dtype=np.uint64))
    y.assign(witness, np.array([[5, 6], [7, 8]], dtype=np.uint64))
    proof = prover.prove(circuit_data, witness)
    self.assertEqual(
        list(proof.public_inputs), [1, 2, 3, 4] if flag else [5, 6, 7, 8]
    )

  def test_glwe_add_sub(self):
    params = _params(degree=2)
    builder = circuit.CircuitBuilder()
    x = gadgets.GlweTarget.new_from_builder(builder, params)
    y = gadgets.GlweTarget.new_from_builder(builder, params)
    x.add(builder, y).register(builder)
    x.sub(builder, y).register(builder)
    circuit_data = builder.build()

    witness = prover.PartialWitness()
    x.assign(witness, np.array([[1, 2], [3, P - 1]], dtype=np.uint64))
    y.assign(witness, np.array([[5, 6], [7, 1]], dtype=np.uint64))
    proof = prover.prove(circuit_data, witness)
    self.assertEqual(
        list(proof.public_inputs),
        [6, 8, 10, 0] + [P - 4, P - 4, P - 4, P - 2],
    )

  def test_hash_chain_update(self):
    builder = circuit.CircuitBuilder()
    digest = builder.add_virtual_hash()
    data = builder.add_virtual_targets(10)
    out = gadgets.hash_chain_update(builder, digest, data)
    builder.register_public_inputs(out.elements)
    circuit_data = builder.build()

    witness = prover.PartialWitness()
    witness.set_hash_target(digest, [1, 2, 3, 4])
    witness.set_targets(data, list(range(10)))
    proof = prover.prove(circuit_data, witness)
    self.assertEqual(
        list(proof.public_inputs),
        poseidon.chain_hash([1, 2, 3, 4], list(range(10))),
    )

  def test_wire_array_shapes(self):
    params = _params()
    builder = circuit.CircuitBuilder()
    targets = builder.add_virtual_targets(2 * 8)
    glwe_t = gadgets.GlweTarget.from_targets(targets, params)
    self.assertEqual(glwe_t.targets.shape, (2, 8))
    self.assertEqual(glwe_t.flatten(), targets)
    with self.assertRaises(errors.MalformedInputError):
      gadgets.GgswTarget.from_targets(targets, params)
    with self.assertRaises(errors.MalformedInputError):
      glwe_t.assign(prover.PartialWitness(), np.zeros((8,), dtype=np.uint64))


if __name__ == '__main__':
  absltest.main()
