"""Tests du marqueur et de la lecture des génotypes observés."""

import numpy as np
import pytest

from pedprob.config import ALLELE_MISSING, AUTOSOMAL, X_LINKED, MutationModel
from pedprob.marker import Marker


class TestMarkerConstruction:
    def test_defaults(self):
        m = Marker()
        assert m.alleles == ('1', '2')
        np.testing.assert_allclose(m.afreq, [0.5, 0.5])
        assert m.chrom == AUTOSOMAL
        assert m.typed_ids() == []

    def test_alleles_from_genotypes(self):
        m = Marker(genotypes={1: "10/2", 2: "3/3"})
        assert m.alleles == ('2', '3', '10')

    def test_afreq_dict(self):
        m = Marker(afreq={'a': 0.1, 'b': 0.9})
        assert m.alleles == ('a', 'b')
        np.testing.assert_allclose(m.afreq, [0.1, 0.9])

    def test_afreq_read_only(self):
        m = Marker(afreq=[0.2, 0.8])
        with pytest.raises(ValueError):
            m.afreq[0] = 0.5

    @pytest.mark.parametrize("chrom", ["X", "x", 23, "23"])
    def test_x_chromosome(self, chrom):
        assert Marker(chrom=chrom).is_x

    def test_autosomal(self):
        assert Marker(chrom=1).chrom == AUTOSOMAL

    def test_freq_must_sum_to_one(self):
        with pytest.raises(ValueError, match="somment"):
            Marker(afreq=[0.3, 0.3])

    def test_freq_length(self):
        with pytest.raises(ValueError, match="fréquences"):
            Marker(alleles=['1', '2', '3'], afreq=[0.5, 0.5])

    def test_duplicated_alleles(self):
        with pytest.raises(ValueError, match="dupliqués"):
            Marker(alleles=['1', '1'])

    def test_unknown_allele(self):
        with pytest.raises(ValueError, match="Allèle inconnu"):
            Marker(alleles=['1', '2'], genotypes={1: "1/3"})

    def test_inbreeding_range(self):
        with pytest.raises(ValueError, match="consanguinité"):
            Marker(inbreeding=1.5)

    def test_mutation_matrix_converted(self):
        m = Marker(mutmod=[[0.9, 0.1], [0.1, 0.9]])
        assert isinstance(m.mutmod, MutationModel)

    def test_mutation_size_mismatch(self):
        with pytest.raises(ValueError, match="mutation"):
            Marker(alleles=['1', '2', '3'], mutmod=MutationModel(np.eye(2)))


class TestGenotypes:
    def test_parse_formats(self):
        m = Marker(alleles=['1', '2'], genotypes={
            'a': "1/2", 'b': "2", 'c': ('2', '1'), 'd': "1/-", 'e': "-/-", 'f': None,
        })
        assert m.genotype('a') == (0, 1)
        assert m.genotype('b') == (1, 1)
        assert m.genotype('c') == (1, 0)
        assert m.genotype('d') == (0, ALLELE_MISSING)
        # Entièrement manquants : non stockés
        assert m.typed_ids() == ['a', 'b', 'c', 'd']
        assert m.genotype('e') == (ALLELE_MISSING, ALLELE_MISSING)

    def test_nan_is_missing(self):
        m = Marker(genotypes={1: float('nan')})
        assert m.typed_ids() == []

    def test_zero_as_allele_label(self):
        """'0' est un allèle s'il fait partie des allèles du marqueur."""
        m = Marker(alleles=['0', '1'], genotypes={1: "0/1"})
        assert m.genotype(1) == (0, 1)

    def test_genotype_label(self):
        m = Marker(alleles=['A', 'B'], genotypes={1: "B/-"})
        assert m.genotype_label(1) == "B/-"
        assert m.genotype_label(2) == "-/-"

    def test_set_genotypes_is_copy_on_write(self):
        m = Marker(genotypes={1: "1/1"})
        m2 = m.set_genotypes({1: "1/2", 2: "2/2"})
        assert m.genotype(1) == (0, 0)
        assert 2 not in m.genotypes
        assert m2.genotype(1) == (0, 1)
        assert m2.genotype(2) == (1, 1)
        assert m2.afreq is m.afreq

    def test_set_genotypes_can_clear(self):
        m = Marker(genotypes={1: "1/1"})
        assert m.set_genotypes({1: None}).typed_ids() == []

    def test_repr(self):
        m = Marker(genotypes={1: "1/2"}, name="M1", chrom=X_LINKED)
        assert "M1" in repr(m)
        assert "1: 1/2" in repr(m)
