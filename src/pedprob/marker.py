"""
Marqueur génétique : allèles, fréquences, type de chromosome,
modèle de mutation et génotypes observés.

Un Marker n'est jamais modifié sur place : `set_genotypes()` retourne
un nouveau marqueur, ce qui permet d'évaluer des variantes en parallèle.
"""

import copy
import math

import numpy as np

from .config import (
    AUTOSOMAL, X_LINKED, ALLELE_MISSING, AFREQ_TOLERANCE,
    MutationModel,
)

_MISSING_TOKENS = {'', '-', '0', 'NA', 'na', 'nan', '?'}


def _normalize_chrom(chrom):
    if chrom is None:
        return AUTOSOMAL
    if str(chrom).upper() in ('X', '23'):
        return X_LINKED
    return AUTOSOMAL


def _sort_alleles(alleles):
    try:
        return sorted(alleles, key=float)
    except ValueError:
        return sorted(alleles)


def _split_genotype(value):
    """Découpe une valeur de génotype en une liste de 1 ou 2 jetons (str ou None)."""
    if value is None:
        return [None, None]
    if isinstance(value, float) and math.isnan(value):
        return [None, None]
    if isinstance(value, str):
        parts = value.strip().split('/')
    elif isinstance(value, (tuple, list, np.ndarray)):
        parts = list(value)
    else:
        parts = [value]
    if len(parts) == 1:
        parts = parts * 2
    if len(parts) != 2:
        raise ValueError(f"Génotype invalide: {value!r}")
    return [None if p is None else str(p).strip() for p in parts]


class Marker:
    """
    Marqueur avec ses génotypes observés.

    Les génotypes sont stockés par identifiant d'individu, sous forme de
    couples d'indices d'allèles (ALLELE_MISSING pour un allèle inconnu).
    """

    def __init__(self, alleles=None, afreq=None, genotypes=None, chrom=AUTOSOMAL,
                 mutmod=None, inbreeding=0.0, name=None):
        """
        Parameters
        ----------
        alleles : list, optional
            Étiquettes des allèles. Par défaut : clés de `afreq` si c'est un
            dict, sinon les allèles observés, sinon ["1", "2"].
        afreq : list ou dict, optional
            Fréquences alléliques (équifréquentes par défaut)
        genotypes : dict, optional
            {individual_id: "a/b" | "a/-" | "a" | (a, b) | None}
        chrom : str
            'autosomal' ou 'X' (23 est accepté pour X)
        mutmod : MutationModel ou array, optional
        inbreeding : float
            Coefficient de consanguinité des fondateurs
        name : str, optional
        """
        genotypes = dict(genotypes or {})

        if isinstance(afreq, dict):
            if alleles is None:
                alleles = list(afreq.keys())
            afreq = [afreq[a] for a in alleles]

        if alleles is None:
            observed = {tok for g in genotypes.values() for tok in _split_genotype(g)
                        if tok is not None and tok not in _MISSING_TOKENS}
            alleles = _sort_alleles(observed) if observed else ['1', '2']

        self.alleles = tuple(str(a) for a in alleles)
        if len(set(self.alleles)) != len(self.alleles):
            raise ValueError(f"Allèles dupliqués: {self.alleles}")
        n = len(self.alleles)
        if n == 0:
            raise ValueError("Un marqueur doit avoir au moins un allèle")

        if afreq is None:
            afreq = np.full(n, 1.0 / n)
        afreq = np.array(afreq, dtype=float)
        if afreq.shape != (n,):
            raise ValueError(f"{n} allèles mais {afreq.size} fréquences")
        if np.any(afreq < 0):
            raise ValueError("Fréquences alléliques négatives")
        if abs(afreq.sum() - 1.0) > AFREQ_TOLERANCE:
            raise ValueError(f"Les fréquences alléliques somment à {afreq.sum():.4f}, pas à 1")
        afreq.setflags(write=False)
        self.afreq = afreq

        self.chrom = _normalize_chrom(chrom)

        if mutmod is not None and not isinstance(mutmod, MutationModel):
            mutmod = MutationModel(mutmod)
        if mutmod is not None and mutmod.n_alleles != n:
            raise ValueError(f"Modèle de mutation pour {mutmod.n_alleles} allèles, "
                             f"le marqueur en a {n}")
        self.mutmod = mutmod

        if not 0.0 <= inbreeding <= 1.0:
            raise ValueError(f"Coefficient de consanguinité hors de [0, 1]: {inbreeding}")
        self.inbreeding = float(inbreeding)
        self.name = name

        self._genotypes = {}
        for ind_id, g in genotypes.items():
            self._store(ind_id, g)

    # ------------------------------------------------------------------
    def _allele_index(self, token):
        if token is None or (token in _MISSING_TOKENS and token not in self.alleles):
            return ALLELE_MISSING
        try:
            return self.alleles.index(token)
        except ValueError:
            raise ValueError(f"Allèle inconnu '{token}' (allèles: {self.alleles})") from None

    def _store(self, ind_id, value):
        a, b = (self._allele_index(tok) for tok in _split_genotype(value))
        if a == ALLELE_MISSING and b == ALLELE_MISSING:
            self._genotypes.pop(ind_id, None)
        else:
            self._genotypes[ind_id] = (a, b)

    # ------------------------------------------------------------------
    @property
    def n_alleles(self):
        return len(self.alleles)

    @property
    def is_x(self):
        return self.chrom == X_LINKED

    @property
    def genotypes(self):
        return dict(self._genotypes)

    def typed_ids(self):
        return list(self._genotypes)

    def genotype(self, ind_id):
        """Couple d'indices d'allèles, (-1, -1) si inconnu."""
        return self._genotypes.get(ind_id, (ALLELE_MISSING, ALLELE_MISSING))

    def genotype_label(self, ind_id):
        a, b = self.genotype(ind_id)
        lab = ['-' if x == ALLELE_MISSING else self.alleles[x] for x in (a, b)]
        return '/'.join(lab)

    def set_genotypes(self, genotypes):
        """Retourne un nouveau marqueur avec les génotypes donnés remplacés."""
        new = copy.copy(self)
        new._genotypes = dict(self._genotypes)
        for ind_id, g in genotypes.items():
            new._store(ind_id, g)
        return new

    def __repr__(self):
        name = f" '{self.name}'" if self.name else ''
        typed = ', '.join(f"{i}: {self.genotype_label(i)}" for i in self._genotypes)
        return (f"Marker{name}({self.chrom}, alleles={list(self.alleles)}, "
                f"afreq={np.round(self.afreq, 4).tolist()}, genotypes={{{typed}}})")
