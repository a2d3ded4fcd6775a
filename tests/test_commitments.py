"""
Commitment algebra tests: commitments.py
"""
import pytest

from shielded.crypto.field import FR, CURVE_ORDER
from shielded.crypto.curve import ec_add, ec_mul, point_to_ints
from shielded.crypto.commitments import (
    G, H, D, G_PERSONAL, D_PERSONAL,
    GENESIS_ACCUMULATOR_POINT,
    public_commitment, personal_commitment,
    aggregate_opening, aggregate_opening_with_carry, reduction_term,
    initial_state_commitment,
)


class TestPersonalCommitment:
    """2-생성자 non-hiding 커밋먼트"""

    def test_genesis(self):
        assert personal_commitment(1, 1) == GENESIS_ACCUMULATOR_POINT

    def test_definition(self):
        assert personal_commitment(4, 9) == ec_add(ec_mul(G_PERSONAL, 4), ec_mul(D_PERSONAL, 9))

    def test_deterministic(self):
        assert personal_commitment(1000, 7) == personal_commitment(1000, 7)

    def test_homomorphic(self):
        """pc(m1 + m2, t1 + t2) = pc(m1, t1) + pc(m2, t2)"""
        m1, t1, m2, t2 = 1000, 7, 250, 3
        assert personal_commitment(m1 + m2, t1 + t2) == ec_add(
            personal_commitment(m1, t1), personal_commitment(m2, t2))

    def test_homomorphic_in_amount(self):
        """pc(m1 + m2, t) = pc(m1, t) + pc(m2, 0)"""
        assert personal_commitment(30 + 12, 5) == ec_add(
            personal_commitment(30, 5), personal_commitment(12, 0))

    def test_binding_to_token(self):
        assert personal_commitment(100, 1) != personal_commitment(100, 2)


class TestPublicCommitment:
    """3-생성자 hiding 커밋먼트"""

    def test_definition(self):
        assert public_commitment(1, 1, 1) == ec_add(ec_add(G, H), D)

    def test_initial_state(self):
        assert initial_state_commitment() == public_commitment(1, 1, 1)

    def test_blinding_changes_point(self):
        assert public_commitment(5, 1, 7) != public_commitment(5, 2, 7)

    def test_homomorphic(self):
        assert public_commitment(3 + 4, 10 + 20, 1 + 2) == ec_add(
            public_commitment(3, 10, 1), public_commitment(4, 20, 2))


class TestAggregation:
    """스칼라 개봉값 누적과 축소 보정항"""

    def test_aggregate(self):
        assert aggregate_opening(FR(1), FR(1)) == FR(2)

    def test_aggregate_wraps(self):
        assert aggregate_opening(FR(CURVE_ORDER - 1), FR(2)) == FR(1)

    def test_carry(self):
        assert aggregate_opening_with_carry(FR(5), FR(6)) == (FR(11), 0)
        total, carry = aggregate_opening_with_carry(FR(CURVE_ORDER - 1), FR(2))
        assert total == FR(1)
        assert carry == 1

    def test_reduction_term_restores_point(self):
        """축소된 합 + carry·p·D' = 정수 합의 커밋먼트"""
        a, b = CURVE_ORDER - 1, 2
        exact = ec_add(personal_commitment(0, a), personal_commitment(1, b))
        reduced, carry = aggregate_opening_with_carry(a, b)
        rebuilt = ec_add(personal_commitment(1, reduced), reduction_term(D_PERSONAL, carry))
        assert point_to_ints(rebuilt) == point_to_ints(exact)

    def test_reduction_term_zero(self):
        assert reduction_term(D_PERSONAL, 0) == (FR(0), FR(0))
