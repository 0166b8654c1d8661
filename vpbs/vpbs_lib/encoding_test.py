"""Tests for encoding."""

import hypothesis
from hypothesis import strategies
from vpbs.vpbs_lib import encoding
from vpbs.vpbs_lib import goldilocks
import numpy as np

from absl.testing import absltest
from absl.testing import parameterized

P = goldilocks.MODULUS


class EncodingTest(parameterized.TestCase):

  @parameterized.parameters((1, 0), (2, 1), (3, 2), (4, 2), (5, 3), (1024, 10))
  def test_log2_ceil(self, value, expected):
    self.assertEqual(encoding.log2_ceil(value), expected)

  def test_delta_leaves_padding_on_top(self):
    params = encoding.EncodingParameters(plaintext_modulus=2)
    self.assertEqual(params.encoded_space_size, 4)
    self.assertEqual(params.delta, P >> 2)
    no_padding = encoding.EncodingParameters(
        plaintext_modulus=2, padding_bit_length=0
    )
    self.assertEqual(no_padding.delta, P >> 1)

  @parameterized.parameters(
      dict(plaintext_modulus=1),
      dict(plaintext_modulus=2, padding_bit_length=-1),
  )
  def test_rejects_bad_parameters(self, **kwargs):
    with self.assertRaises(ValueError):
      encoding.EncodingParameters(**kwargs)

  @hypothesis.given(
      strategies.integers(min_value=0, max_value=7),
      strategies.integers(min_value=-(2**58), max_value=2**58),
  )
  @hypothesis.settings(deadline=None)
  def test_decode_removes_noise(self, message, noise):
    params = encoding.EncodingParameters(plaintext_modulus=8)
    noisy = goldilocks.add(
        encoding.encode(message, params), goldilocks.from_int(noise)
    )
    self.assertEqual(int(encoding.decode(noisy, params)), message)

  def test_padding_region_is_not_reduced(self):
    params = encoding.EncodingParameters(plaintext_modulus=2)
    plaintext = goldilocks.from_int(3 * params.delta)
    self.assertEqual(int(encoding.decode(plaintext, params)), 3)

  def test_negative_plaintexts_wrap(self):
    params = encoding.EncodingParameters(plaintext_modulus=2)
    plaintext = goldilocks.neg(encoding.encode(1, params))
    self.assertEqual(int(encoding.decode(plaintext, params)), 3)

  def test_encode_decode_arrays(self):
    params = encoding.EncodingParameters(plaintext_modulus=4)
    messages = np.array([[0, 1], [2, 3]])
    decoded = encoding.decode(encoding.encode(messages, params), params)
    np.testing.assert_array_equal(decoded, messages)


if __name__ == '__main__':
  absltest.main()
