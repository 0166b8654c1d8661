"""Tests for test_polynomial."""

from vpbs.vpbs_lib import encoding
from vpbs.vpbs_lib import goldilocks
from vpbs.vpbs_lib import parameters
from vpbs.vpbs_lib import test_polynomial
import numpy as np

from absl.testing import absltest
from absl.testing import parameterized

FOUR_VALUE_ENCODING = encoding.EncodingParameters(plaintext_modulus=4)

DEGREE_8_POLY = parameters.SchemeParameters(
    lwe_dimension=1,  # unused
    glwe_dimension=1,  # unused
    polynomial_modulus_degree=8,
    log_base=8,  # unused
    level_count=8,  # unused
)


class TestPolynomialTest(parameterized.TestCase):

  def test_manually_gen_identity_test_polynomial(self):
    encoding_params = encoding.EncodingParameters(plaintext_modulus=2)
    test_poly = test_polynomial.identity_test_polynomial(
        DEGREE_8_POLY, encoding_params
    )

    # the backwards roll by half a block wraps two zeros to the top
    expected_coeffs = [0, 0, 1, 1, 1, 1, 0, 0]
    self.assertEqual(
        goldilocks.to_int(test_poly),
        [c * encoding_params.delta for c in expected_coeffs],
    )

  def test_manually_gen_nonidentity_test_polynomial(self):
    test_poly = test_polynomial.gen_test_polynomial(
        [2, 1, 3, 0], DEGREE_8_POLY, FOUR_VALUE_ENCODING
    )

    # pyformat: disable
    expected_coeffs = [
        2,
        1, 1,
        3, 3,
        0, 0,
        -2,  # wrapped past X^N, so negated
    ]
    # pyformat: enable
    np.testing.assert_array_equal(
        test_poly,
        goldilocks.from_int(
            [c * FOUR_VALUE_ENCODING.delta for c in expected_coeffs]
        ),
    )

  @parameterized.named_parameters(
      dict(testcase_name='too_small', coeffs=[1, 2, 3]),
      dict(testcase_name='too_big', coeffs=range(8)),
  )
  def test_gen_test_polynomial_wrong_dims(self, coeffs):
    with self.assertRaises(ValueError):
      test_polynomial.gen_test_polynomial(
          coeffs, DEGREE_8_POLY, FOUR_VALUE_ENCODING
      )

  def test_message_space_must_divide_degree(self):
    with self.assertRaises(ValueError):
      test_polynomial.gen_test_polynomial(
          [0, 1, 2],
          DEGREE_8_POLY,
          encoding.EncodingParameters(plaintext_modulus=3),
      )

  @parameterized.named_parameters(
      dict(testcase_name='boolean', t=2, degree=2**5),
      dict(testcase_name='small_cleartext_space', t=2**3, degree=2**5),
      dict(testcase_name='medium_cleartext_space', t=2**6, degree=2**7),
      dict(testcase_name='one_slot_per_value', t=2**4, degree=2**4),
  )
  def test_rotation_reads_each_value(self, t, degree):
    encoding_params = encoding.EncodingParameters(plaintext_modulus=t)
    scheme_params = parameters.SchemeParameters(
        lwe_dimension=1,  # unused
        glwe_dimension=1,  # unused
        polynomial_modulus_degree=degree,
        log_base=8,  # unused
        level_count=8,  # unused
    )
    test_poly = test_polynomial.identity_test_polynomial(
        scheme_params, encoding_params
    )
    block_width = degree // t
    for m in range(t):
      # an index anywhere within half a block of m * block_width reads m
      for error in range(-(block_width // 2), (block_width + 1) // 2):
        index = m * block_width + error
        if index < 0:
          value = goldilocks.neg(test_poly[index % degree])
        else:
          value = test_poly[index]
        self.assertEqual(
            int(encoding.decode(value, encoding_params)),
            m,
            msg=f'm={m}, error={error}',
        )


if __name__ == '__main__':
  absltest.main()
