"""
Configuration des loci : constantes, priors des fondateurs,
tables de transmission et modèles de mutation.
"""

import numpy as np

# Sexe (codage Merlin / LINKAGE)
UNKNOWN_SEX = 0
MALE = 1
FEMALE = 2

# Type de chromosome
AUTOSOMAL = 'autosomal'
X_LINKED = 'X'

# Allèle inconnu dans un génotype observé ("1/-", "-/-")
ALLELE_MISSING = -1

# Nombre de passes d'élimination de génotypes par défaut
DEFAULT_ELIMINATE_ONE = 0
DEFAULT_ELIMINATE_TWO = 99

# Tolérance sur la somme des fréquences alléliques
AFREQ_TOLERANCE = 0.001


class ImpossibleDataError(ValueError):
    """Les données (partielles) du marqueur ont une vraisemblance nulle."""


# ============================================================
# Priors des fondateurs
# ============================================================

def hw_prob(allele1, allele2, afreq, f=0.0):
    """
    Probabilité Hardy-Weinberg (avec consanguinité) d'un génotype non ordonné.

    Parameters
    ----------
    allele1, allele2 : int ou array d'int
        Indices des allèles (base 0)
    afreq : array
        Fréquences alléliques
    f : float
        Coefficient de consanguinité du fondateur

    Returns
    -------
    prob : float ou array
        a/a : f·p + (1-f)·p²  ;  a/b : (1-f)·2·pa·pb
    """
    afreq = np.asarray(afreq, dtype=float)
    a1 = np.asarray(allele1)
    a2 = np.asarray(allele2)
    pa, pb = afreq[a1], afreq[a2]
    homoz = a1 == a2
    prob = np.where(homoz, f * pa + (1 - f) * pa ** 2, (1 - f) * 2 * pa * pb)
    if prob.ndim == 0:
        return float(prob)
    return prob


def founder_genotype_prior(afreq, f=0.0):
    """
    Prior sur les génotypes ordonnés (paternel, maternel) d'un fondateur.

    Returns
    -------
    prior : array (n, n)
        prior[a, b] = (1-f)·pa·pb + f·pa·[a == b]
    """
    p = np.asarray(afreq, dtype=float)
    return (1 - f) * np.outer(p, p) + f * np.diag(p)


def compute_transmission_table(n_alleles1, n_alleles2=1, theta=0.5):
    """
    Table de transmission parent → enfant.

    Un haplotype est un couple (allèle locus 1, allèle locus 2), indexé
    a1 * n_alleles2 + a2 ; pour un seul locus (n_alleles2 = 1) l'haplotype
    est l'allèle et theta n'a pas d'effet.

    trans[parent_geno_idx, transmitted_hap] = probabilité

    parent_geno_idx = hap_pat * H + hap_mat (0 à H² - 1)
    """
    n_haps = n_alleles1 * n_alleles2
    rows = np.arange(n_haps * n_haps)
    h_pat, h_mat = rows // n_haps, rows % n_haps
    a_pat, b_pat = h_pat // n_alleles2, h_pat % n_alleles2
    a_mat, b_mat = h_mat // n_alleles2, h_mat % n_alleles2

    trans = np.zeros((n_haps * n_haps, n_haps))

    # Sans recombinaison
    np.add.at(trans, (rows, h_pat), (1.0 - theta) / 2.0)
    np.add.at(trans, (rows, h_mat), (1.0 - theta) / 2.0)

    # Avec recombinaison
    recomb1 = a_pat * n_alleles2 + b_mat  # locus 1 du pat, locus 2 du mat
    recomb2 = a_mat * n_alleles2 + b_pat  # locus 1 du mat, locus 2 du pat
    np.add.at(trans, (rows, recomb1), theta / 2.0)
    np.add.at(trans, (rows, recomb2), theta / 2.0)

    return trans


# ============================================================
# Modèle de mutation
# ============================================================

def _check_stochastic(matrix):
    mat = np.array(matrix, dtype=float)
    if mat.ndim != 2 or mat.shape[0] != mat.shape[1]:
        raise ValueError(f"Matrice de mutation non carrée: {mat.shape}")
    if np.any(mat < 0):
        raise ValueError("Matrice de mutation avec des entrées négatives")
    if not np.allclose(mat.sum(axis=1), 1.0):
        raise ValueError("Les lignes de la matrice de mutation doivent sommer à 1")
    mat.setflags(write=False)
    return mat


class MutationModel:
    """
    Modèle de mutation : matrice de transition allèle → allèle,
    éventuellement différente chez les femmes et les hommes.
    """

    def __init__(self, female, male=None):
        self.female = _check_stochastic(female)
        self.male = self.female if male is None else _check_stochastic(male)
        if self.female.shape != self.male.shape:
            raise ValueError("Matrices femme/homme de tailles différentes")

    @property
    def n_alleles(self):
        return self.female.shape[0]

    @property
    def is_trivial(self):
        ident = np.eye(self.n_alleles)
        return np.array_equal(self.female, ident) and np.array_equal(self.male, ident)

    def matrix(self, sex):
        return self.male if sex == MALE else self.female

    def __repr__(self):
        return f"MutationModel({self.n_alleles} allèles)"
