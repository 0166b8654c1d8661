"""The Poseidon permutation and sponge hash over the Goldilocks field.

The permutation has width 12 (rate 8, capacity 4), an x^7 S-box, 4 + 4 full
rounds around 22 partial rounds and the circulant-plus-diagonal MDS matrix of
plonky2. Round constants are derived deterministically from SHAKE-256 by
rejection sampling, so digests do not match plonky2's.

Field elements are Python ints in [0, p); this module is used both by the
native hash-chain recomputation and as the evaluation rule of the circuit's
Poseidon gate.
"""

import functools
import hashlib
from typing import List, Sequence

from vpbs.vpbs_lib import goldilocks

SPONGE_WIDTH = 12
SPONGE_RATE = 8
SPONGE_CAPACITY = SPONGE_WIDTH - SPONGE_RATE

# The number of field elements in a hash digest.
NUM_HASH_OUT_ELTS = 4

HALF_N_FULL_ROUNDS = 4
N_PARTIAL_ROUNDS = 22
N_ROUNDS = 2 * HALF_N_FULL_ROUNDS + N_PARTIAL_ROUNDS

MDS_MATRIX_CIRC = (17, 15, 41, 16, 2, 28, 13, 13, 39, 18, 34, 20)
MDS_MATRIX_DIAG = (8, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0)

_ROUND_CONSTANTS_SEED = b'vpbs/poseidon/goldilocks/width-12'


@functools.lru_cache(maxsize=None)
def round_constants() -> List[int]:
  """N_ROUNDS * SPONGE_WIDTH constants, uniform in the field."""
  count = N_ROUNDS * SPONGE_WIDTH
  constants = []
  stream_length = 8 * count
  while len(constants) < count:
    stream_length *= 2
    stream = hashlib.shake_256(_ROUND_CONSTANTS_SEED).digest(stream_length)
    constants = []
    for offset in range(0, len(stream), 8):
      value = int.from_bytes(stream[offset : offset + 8], 'little')
      if value < goldilocks.MODULUS:
        constants.append(value)
      if len(constants) == count:
        break
  return constants


def _sbox(x: int) -> int:
  return pow(x, 7, goldilocks.MODULUS)


def _mds_layer(state: Sequence[int]) -> List[int]:
  p = goldilocks.MODULUS
  result = []
  for r in range(SPONGE_WIDTH):
    acc = state[r] * MDS_MATRIX_DIAG[r]
    for i in range(SPONGE_WIDTH):
      acc += state[(i + r) % SPONGE_WIDTH] * MDS_MATRIX_CIRC[i]
    result.append(acc % p)
  return result


def permute(state: Sequence[int]) -> List[int]:
  """Apply the Poseidon permutation to a width-12 state."""
  if len(state) != SPONGE_WIDTH:
    raise ValueError(
        f'Poseidon state has {len(state)} elements, expected {SPONGE_WIDTH}.'
    )
  p = goldilocks.MODULUS
  constants = round_constants()
  state = [x % p for x in state]
  for r in range(N_ROUNDS):
    offset = r * SPONGE_WIDTH
    state = [
        (x + constants[offset + i]) % p for i, x in enumerate(state)
    ]
    full_round = (
        r < HALF_N_FULL_ROUNDS or r >= HALF_N_FULL_ROUNDS + N_PARTIAL_ROUNDS
    )
    if full_round:
      state = [_sbox(x) for x in state]
    else:
      state[0] = _sbox(state[0])
    state = _mds_layer(state)
  return state


def hash_no_pad(inputs: Sequence[int]) -> List[int]:
  """Overwrite-mode sponge over `inputs`, without padding.

  Each chunk of up to SPONGE_RATE inputs overwrites the front of the state,
  which is then permuted. The digest is the first NUM_HASH_OUT_ELTS elements
  of the final state; empty input hashes to zeros.
  """
  state = [0] * SPONGE_WIDTH
  inputs = list(inputs)
  for start in range(0, len(inputs), SPONGE_RATE):
    chunk = inputs[start : start + SPONGE_RATE]
    state[: len(chunk)] = chunk
    state = permute(state)
  return state[:NUM_HASH_OUT_ELTS]


ZERO_HASH = (0,) * NUM_HASH_OUT_ELTS


def chain_hash(digest: Sequence[int], data: Sequence[int]) -> List[int]:
  """One link of a hash chain: H(digest || data)."""
  return hash_no_pad(list(digest) + list(data))
