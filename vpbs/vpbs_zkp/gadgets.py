"""Circuit gadgets mirroring the native GLWE operations.

Ciphertexts in the circuit are arrays of wire ids with the same shapes as
their concrete counterparts, so that assigning a concrete ciphertext to its
wires is a flatten on both sides. Every gadget here computes exactly what the
native function of the same name computes, for canonical inputs.
"""

import dataclasses
from typing import List, Sequence

import numpy as np
from vpbs.vpbs_lib import decomposition
from vpbs.vpbs_lib import goldilocks
from vpbs.vpbs_lib import ntt
from vpbs.vpbs_lib import parameters
from vpbs.vpbs_zkp import circuit
from vpbs.vpbs_zkp import prover


@dataclasses.dataclass
class _WireArray:
  """An array of wire ids."""

  targets: np.ndarray

  @classmethod
  def _shape(cls, params: parameters.SchemeParameters):
    raise NotImplementedError

  @classmethod
  def new_from_builder(
      cls, builder: circuit.CircuitBuilder, params: parameters.SchemeParameters
  ):
    shape = cls._shape(params)
    size = int(np.prod(shape))
    targets = np.array(builder.add_virtual_targets(size), dtype=np.int64)
    return cls(targets.reshape(shape))

  @classmethod
  def from_targets(
      cls,
      targets: Sequence[circuit.Target],
      params: parameters.SchemeParameters,
  ):
    flat = np.array(list(targets), dtype=np.int64)
    shape = cls._shape(params)
    parameters.check_shape(cls.__name__, flat.shape, (int(np.prod(shape)),))
    return cls(flat.reshape(shape))

  def flatten(self) -> List[circuit.Target]:
    return [int(t) for t in self.targets.reshape(-1)]

  def register(self, builder: circuit.CircuitBuilder) -> None:
    builder.register_public_inputs(self.flatten())

  def assign(self, witness: prover.PartialWitness, value) -> None:
    """Set the wires to a concrete array of the same shape."""
    value = np.asarray(value, dtype=np.uint64)
    parameters.check_shape(type(self).__name__, value.shape, self.targets.shape)
    witness.set_targets(self.flatten(), goldilocks.to_int(value.reshape(-1)))


class GlweTarget(_WireArray):
  """Wires of a (K, N) GLWE ciphertext."""

  @classmethod
  def _shape(cls, params):
    return params.glwe_shape

  def add(self, builder: circuit.CircuitBuilder, other: 'GlweTarget'):
    return GlweTarget(_elementwise(builder.add, self.targets, other.targets))

  def sub(self, builder: circuit.CircuitBuilder, other: 'GlweTarget'):
    return GlweTarget(_elementwise(builder.sub, self.targets, other.targets))


class GgswTarget(_WireArray):
  """Wires of a (K, ELL, K, N) GGSW ciphertext."""

  @classmethod
  def _shape(cls, params):
    return params.ggsw_shape


def _elementwise(op, x: np.ndarray, y: np.ndarray) -> np.ndarray:
  if x.shape != y.shape:
    raise ValueError(f'Cannot combine wire arrays {x.shape} and {y.shape}.')
  flat = [op(int(a), int(b)) for a, b in zip(x.reshape(-1), y.reshape(-1))]
  return np.array(flat, dtype=np.int64).reshape(x.shape)


def glwe_select(
    builder: circuit.CircuitBuilder,
    b: circuit.BoolTarget,
    x: GlweTarget,
    y: GlweTarget,
) -> GlweTarget:
  """x if b else y, coefficient by coefficient."""
  return GlweTarget(
      _elementwise(
          lambda u, v: builder.select(b, u, v), x.targets, y.targets
      )
  )


def _conditional_rotate(
    builder: circuit.CircuitBuilder,
    glwe_t: GlweTarget,
    b: circuit.BoolTarget,
    shift: int,
) -> GlweTarget:
  """glwe * X^shift if b else glwe."""
  glwe_size, n = glwe_t.targets.shape
  out = np.zeros_like(glwe_t.targets)
  for row in range(glwe_size):
    for i in range(n):
      source = (i - shift) % (2 * n)
      sign = -1 if source >= n else 1
      rotated = int(glwe_t.targets[row, source % n])
      unrotated = int(glwe_t.targets[row, i])
      # b * (sign * rotated) + (1 - b) * unrotated
      tmp = builder.arithmetic(-1, 1, b.target, unrotated, unrotated)
      out[row, i] = builder.arithmetic(sign, 1, b.target, rotated, tmp)
  return GlweTarget(out)


def rotate_glwe(
    builder: circuit.CircuitBuilder,
    glwe_t: GlweTarget,
    x: circuit.Target,
    params: parameters.SchemeParameters,
) -> GlweTarget:
  """Multiply by X^mod_switch(x), with mod_switch as in `lwe.mod_switch`.

  The mod-switched value is the log2(N) + 1 bits of x above the rounding bit,
  plus the rounding bit. Each of those bits drives one conditional rotation.
  """
  log_n = params.log_mod_degree
  bits = builder.split_le(x, goldilocks.BITS)
  first_bit = goldilocks.BITS - log_n - 1
  current = glwe_t
  for j in range(log_n + 1):
    current = _conditional_rotate(builder, current, bits[first_bit + j], 1 << j)
  return _conditional_rotate(builder, current, bits[first_bit - 1], 1)


def decompose(
    builder: circuit.CircuitBuilder,
    y: circuit.Target,
    params: parameters.SchemeParameters,
) -> List[circuit.Target]:
  """Signed digits of y, most significant first.

  The digits and rounding remainder are hinted by the prover; the circuit
  checks that sum_i d_i * g_i + r == y and that every digit and the remainder
  lie in the ranges produced by `decomposition.signed_digits`: d_i in
  [-B/2, B/2) below the top digit, the top digit in [-B/2, B/2] and r in
  [-2^(s-1), 2^(s-1)). These ranges leave one more representation for values
  within about p / 2B of +-p/2, namely the integer sum shifted by p, so the
  circuit also pins the integer sum into (-p/2, p/2). Together this makes the
  digits a function of y.

  Requires LOGB >= 2; with B = 2 a zero top digit cannot reach the pinned
  window.
  """
  log_base = params.log_base
  level_count = params.level_count
  if log_base < 2:
    raise ValueError(f'Log base {log_base} must be >= 2 in a circuit.')
  digits = builder.add_virtual_targets(level_count)
  remainder = builder.add_virtual_target()

  def decomposition_hint(deps: List[int]) -> List[int]:
    signed, rest = decomposition.signed_digits(deps[0], log_base, level_count)
    return signed + [rest]

  builder.add_simple_generator((y,), digits + [remainder], decomposition_hint)

  one = builder.one()
  half_base = params.decomposition_base // 2
  top = digits[0]
  builder.range_check(
      builder.arithmetic(1, half_base, top, one, one), log_base + 1
  )
  builder.range_check(
      builder.arithmetic(-1, half_base, top, one, one), log_base + 1
  )
  for digit in digits[1:]:
    builder.range_check(
        builder.arithmetic(1, half_base, digit, one, one), log_base
    )
  rem_bits = decomposition.remainder_bits(log_base, level_count)
  if rem_bits == 0:
    builder.assert_zero(remainder)
  else:
    builder.range_check(
        builder.arithmetic(1, 1 << (rem_bits - 1), remainder, one, one),
        rem_bits,
    )

  gadget_values = decomposition.gadget_values(log_base, level_count)
  acc = remainder
  for digit, gadget in zip(digits, gadget_values):
    acc = builder.mul_const_add(gadget, digit, acc)
  builder.connect(acc, y)

  # |y - d_0 * g_0| < g_0 / 2 here. A top digit of -B/2 needs the rest to be
  # at least 2^31 and a top digit of B/2 needs it to be at most -2^31.
  rest = builder.mul_const_add(-gadget_values[0], top, y)
  margin = builder.constant(1 << 31)
  at_min = builder.is_equal(top, builder.constant(-half_base))
  at_max = builder.is_equal(top, builder.constant(half_base))
  slack = builder.select(
      at_min,
      builder.sub(rest, margin),
      builder.select(
          at_max, builder.sub(builder.neg(rest), margin), builder.zero()
      ),
  )
  builder.range_check(slack, goldilocks.BITS - log_base)
  return digits


def ntt_forward(
    builder: circuit.CircuitBuilder, coeffs: Sequence[circuit.Target]
) -> List[circuit.Target]:
  """The forward negacyclic NTT of `ntt.forward`, with constant twiddles."""
  n = len(coeffs)
  context = ntt.get_context(n)
  p = goldilocks.MODULUS
  a = list(coeffs)
  t = n
  m = 1
  while m < n:
    t //= 2
    for i in range(m):
      j1 = 2 * i * t
      s = context.psis_bitrev[m + i]
      for j in range(j1, j1 + t):
        u, v = a[j], a[j + t]
        a[j] = builder.mul_const_add(s, v, u)
        a[j + t] = builder.mul_const_add(p - s, v, u)
    m *= 2
  return a


def ntt_backward(
    builder: circuit.CircuitBuilder, evals: Sequence[circuit.Target]
) -> List[circuit.Target]:
  """The inverse negacyclic NTT of `ntt.backward`, with constant twiddles."""
  n = len(evals)
  context = ntt.get_context(n)
  one = builder.one()
  a = list(evals)
  t = 1
  m = n
  while m > 1:
    h = m // 2
    for i in range(h):
      j1 = 2 * i * t
      s = context.psis_inv_bitrev[h + i]
      for j in range(j1, j1 + t):
        u, v = a[j], a[j + t]
        a[j] = builder.add(u, v)
        a[j + t] = builder.arithmetic(s, -s, u, one, v)
    t *= 2
    m = h
  return [builder.mul_const(context.degree_inv, x) for x in a]


def external_product(
    builder: circuit.CircuitBuilder,
    ggsw_t: GgswTarget,
    glwe_t: GlweTarget,
    params: parameters.SchemeParameters,
) -> GlweTarget:
  """The external product of `ggsw.external_product`, in the circuit."""
  glwe_size = params.glwe_size
  level_count = params.level_count
  n = params.polynomial_modulus_degree

  # digits[j][i][c]: digit i of coefficient c of polynomial j
  digits = [[[None] * n for _ in range(level_count)] for _ in range(glwe_size)]
  for j in range(glwe_size):
    for c in range(n):
      for i, digit in enumerate(
          decompose(builder, int(glwe_t.targets[j, c]), params)
      ):
        digits[j][i][c] = digit

  digit_evals = [
      [ntt_forward(builder, digits[j][i]) for i in range(level_count)]
      for j in range(glwe_size)
  ]
  ggsw_evals = [
      [
          [
              ntt_forward(builder, [int(t) for t in ggsw_t.targets[j, i, r]])
              for r in range(glwe_size)
          ]
          for i in range(level_count)
      ]
      for j in range(glwe_size)
  ]

  zero = builder.zero()
  out = np.zeros((glwe_size, n), dtype=np.int64)
  for r in range(glwe_size):
    out_evals = []
    for e in range(n):
      acc = zero
      for j in range(glwe_size):
        for i in range(level_count):
          acc = builder.mul_add(
              digit_evals[j][i][e], ggsw_evals[j][i][r][e], acc
          )
      out_evals.append(acc)
    out[r] = ntt_backward(builder, out_evals)
  return GlweTarget(out)


def hash_chain_update(
    builder: circuit.CircuitBuilder,
    digest: circuit.HashOutTarget,
    data: Sequence[circuit.Target],
) -> circuit.HashOutTarget:
  """H(digest || data), the in-circuit `poseidon.chain_hash`."""
  return builder.hash_n_to_hash_no_pad(list(digest.elements) + list(data))
