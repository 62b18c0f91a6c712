"""Tests de l'ordre de peeling."""

import pytest

from pedprob.config import MALE, FEMALE
from pedprob.pedigree import Pedigree, nuclear_ped, singleton
from pedprob.peeling import peeling_order


def three_generations():
    """1 × 2 → 3 ; 3 × 4 → 5, 6."""
    return Pedigree({
        1: {'father': None, 'mother': None, 'sex': MALE},
        2: {'father': None, 'mother': None, 'sex': FEMALE},
        3: {'father': 1, 'mother': 2, 'sex': MALE},
        4: {'father': None, 'mother': None, 'sex': FEMALE},
        5: {'father': 3, 'mother': 4, 'sex': MALE},
        6: {'father': 3, 'mother': 4, 'sex': FEMALE},
    })


class TestPeelingOrder:
    def test_nuclear_single_step(self):
        order = peeling_order(nuclear_ped(2))
        assert len(order) == 1
        assert order.steps[0].pivot is None
        assert order.n_individuals == 4

    def test_singleton_no_step(self):
        assert len(peeling_order(singleton())) == 0

    def test_pivot_is_connecting_member(self):
        ped = three_generations()
        order = peeling_order(ped)
        assert len(order) == 2
        first, last = order.steps
        # La première famille pelée passe par l'individu 3 (indice 2)
        assert first.pivot == ped.internal_id(3)
        assert last.pivot is None

    def test_every_family_once(self):
        ped = three_generations()
        order = peeling_order(ped)
        assert sorted(step.family_idx for step in order) == [0, 1]

    def test_loops_rejected(self):
        ped = Pedigree({
            1: {'father': None, 'mother': None, 'sex': MALE},
            2: {'father': None, 'mother': None, 'sex': FEMALE},
            3: {'father': 1, 'mother': 2, 'sex': MALE},
            4: {'father': 1, 'mother': 2, 'sex': FEMALE},
            5: {'father': 3, 'mother': 4, 'sex': MALE},
        })
        with pytest.raises(ValueError, match="boucles"):
            peeling_order(ped)
