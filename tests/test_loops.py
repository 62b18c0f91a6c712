"""Tests de la détection et de la cassure des boucles."""

import pytest

from pedprob.config import MALE, FEMALE
from pedprob.genotypes import domain_sizes
from pedprob.loops import break_loops, find_loop
from pedprob.marker import Marker
from pedprob.pedigree import Pedigree, nuclear_ped
from pedprob.peeling import peeling_order


def _ind(father=None, mother=None, sex=MALE):
    return {'father': father, 'mother': mother, 'sex': sex}


def sibling_mating():
    """1 × 2 → 3 (M), 4 (F) ; 3 × 4 → 5."""
    return Pedigree({
        1: _ind(sex=MALE), 2: _ind(sex=FEMALE),
        3: _ind(1, 2, MALE), 4: _ind(1, 2, FEMALE),
        5: _ind(3, 4, MALE),
    })


def first_cousins_child():
    """Enfant (9) de deux cousins germains (7 et 8)."""
    return Pedigree({
        1: _ind(sex=MALE), 2: _ind(sex=FEMALE),
        3: _ind(1, 2, MALE), 4: _ind(1, 2, FEMALE),
        5: _ind(sex=FEMALE), 6: _ind(sex=MALE),
        7: _ind(3, 5, MALE), 8: _ind(6, 4, FEMALE),
        9: _ind(7, 8, MALE),
    })


def double_loop():
    """Deux accouplements frère-sœur successifs."""
    return Pedigree({
        1: _ind(sex=MALE), 2: _ind(sex=FEMALE),
        3: _ind(1, 2, MALE), 4: _ind(1, 2, FEMALE),
        5: _ind(3, 4, MALE), 6: _ind(3, 4, FEMALE),
        7: _ind(5, 6, MALE),
    })


class TestFindLoop:
    def test_no_loop(self):
        assert find_loop(nuclear_ped(3)) is None

    def test_sibling_mating_cycle(self):
        ped = sibling_mating()
        cycle = find_loop(ped)
        members = {ind for ind, _, _ in cycle}
        assert members == {ped.internal_id(3), ped.internal_id(4)}

    def test_cousin_cycle(self):
        ped = first_cousins_child()
        members = {ped.ids[ind] for ind, _, _ in find_loop(ped)}
        assert members == {3, 4, 7, 8}


class TestBreakLoops:
    def test_no_loop_returns_input(self):
        ped = nuclear_ped(2)
        assert break_loops(ped) is ped

    @pytest.mark.parametrize("builder", [sibling_mating, first_cousins_child, double_loop])
    def test_result_is_acyclic(self, builder):
        ped = builder()
        broken = break_loops(ped)
        assert broken.n_loops == 0
        assert len(broken.loop_breakers) == ped.n_loops
        # Chaque copie est un fondateur du même sexe que l'original
        for copy, orig in broken.loop_breakers.items():
            assert broken.father[copy] < 0
            assert broken.sex[copy] == broken.sex[orig]
        peeling_order(broken)

    def test_copy_label(self):
        broken = break_loops(sibling_mating())
        labels = {broken.ids[c]: broken.ids[o] for c, o in broken.loop_breakers.items()}
        assert len(labels) == 1
        (copy, orig), = labels.items()
        assert copy == f"{orig}*"

    def test_prefers_small_domain(self):
        """L'individu génotypé (domaine de taille 1) est dupliqué."""
        ped = sibling_mating()
        m = Marker(genotypes={4: "1/2"})
        broken = break_loops(ped, domains=domain_sizes(ped, [m]))
        origs = [broken.ids[o] for o in broken.loop_breakers.values()]
        assert origs == [4]

    def test_explicit_breaker(self, capsys):
        ped = sibling_mating()
        broken = break_loops(ped, loop_breakers=[3], verbose=True)
        assert broken.n_loops == 0
        assert broken.get_parents(5) == ('3*', 4)
        assert "Boucle cassée en 3" in capsys.readouterr().out

    def test_explicit_founder_rejected(self):
        with pytest.raises(ValueError, match="fondateur"):
            break_loops(sibling_mating(), loop_breakers=[1])

    def test_explicit_insufficient(self):
        with pytest.raises(ValueError, match="ne cassent pas"):
            break_loops(double_loop(), loop_breakers=[3])

    def test_explicit_without_children(self):
        with pytest.raises(ValueError, match="pas d'enfant"):
            break_loops(sibling_mating(), loop_breakers=[5])

    def test_already_broken_rejected(self):
        broken = break_loops(sibling_mating())
        with pytest.raises(ValueError, match="déjà été cassées"):
            break_loops(broken)

    def test_markers_kept(self):
        m = Marker(name='M1')
        ped = sibling_mating().set_markers([m])
        assert break_loops(ped).markers == (m,)
