"""
Moteur de calcul de vraisemblance : Elston-Stewart par peeling des
familles nucléaires, pour un marqueur ou deux marqueurs liés.

L'état caché d'un individu est un génotype ordonné
(haplotype paternel, haplotype maternel), indexé hap_pat * H + hap_mat,
ou un haplotype unique pour un homme sur l'X. Pour un seul marqueur un
haplotype est un allèle ; pour deux marqueurs c'est un couple d'allèles.
"""

import math
import numbers

import numpy as np

from .config import (
    MALE, FEMALE, UNKNOWN_SEX,
    compute_transmission_table, founder_genotype_prior,
)
from .genotypes import diploid_compat, hemizygous_compat, fast_grid, domain_sizes
from .loops import break_loops
from .marker import Marker
from .pedigree import Pedigree
from .peeling import peeling_order as build_peeling_order


def _joint_diploid(per_locus):
    """Combine des tableaux (n_k, n_k) par locus en un vecteur sur les états ordonnés."""
    if len(per_locus) == 1:
        return per_locus[0].ravel()
    a, b = per_locus
    return np.einsum('ab,cd->acbd', a, b).ravel()


def _joint_haploid(per_locus):
    if len(per_locus) == 1:
        return per_locus[0].ravel()
    return np.outer(per_locus[0], per_locus[1]).ravel()


class _Locus:
    """Espace d'états et tables de transmission pour un ou deux marqueurs."""

    def __init__(self, ped, markers, rho=0.5):
        self.markers = markers
        self.on_x = markers[0].is_x
        self.sex = ped.sex
        if self.on_x and np.any(ped.sex == UNKNOWN_SEX):
            unknown = [ped.ids[i] for i in np.flatnonzero(ped.sex == UNKNOWN_SEX)]
            raise ValueError(f"Sexe inconnu pour un marqueur lié à l'X: {unknown}")

        sizes = [m.n_alleles for m in markers]
        n1 = sizes[0]
        n2 = sizes[1] if len(sizes) > 1 else 1
        self.n_haps = n1 * n2

        base = compute_transmission_table(n1, n2, rho)
        mut_male = self._haplotype_mutation(MALE)
        mut_female = self._haplotype_mutation(FEMALE)
        self.trans_paternal = base if mut_male is None else base @ mut_male
        self.trans_maternal = base if mut_female is None else base @ mut_female
        # Sur l'X, le père transmet son unique haplotype à ses filles
        self.trans_x_father = np.eye(self.n_haps) if mut_male is None else mut_male

        self.prior_diploid = _joint_diploid(
            [founder_genotype_prior(m.afreq, m.inbreeding) for m in markers])
        self.prior_haploid = _joint_haploid([np.asarray(m.afreq) for m in markers])

    def _haplotype_mutation(self, sex):
        # Un modèle identité équivaut à l'absence de mutation
        active = [m.mutmod is not None and not m.mutmod.is_trivial for m in self.markers]
        if not any(active):
            return None
        mats = [m.mutmod.matrix(sex) if act else np.eye(m.n_alleles)
                for m, act in zip(self.markers, active)]
        out = mats[0]
        for mat in mats[1:]:
            out = np.kron(out, mat)
        return out

    def is_haploid(self, i):
        return self.on_x and self.sex[i] == MALE

    @property
    def paternal(self):
        return self.trans_x_father if self.on_x else self.trans_paternal

    def data_weight(self, ind_id, i):
        """Compatibilité (0/1) de chaque état avec les génotypes observés."""
        if self.is_haploid(i):
            parts = [hemizygous_compat(m.genotype(ind_id), m.n_alleles) for m in self.markers]
            return _joint_haploid(parts).astype(float)
        parts = [diploid_compat(m.genotype(ind_id), m.n_alleles) for m in self.markers]
        return _joint_diploid(parts).astype(float)

    def founder_prior(self, i):
        return self.prior_haploid if self.is_haploid(i) else self.prior_diploid


# ======================================================================
# Élimination de génotypes
# ======================================================================

def _eliminate(ped, locus, states, rounds):
    """
    Retire les états qui ne peuvent contribuer dans aucune famille
    nucléaire. Ne change jamais la vraisemblance, seulement le coût.
    """
    H = locus.n_haps
    for _ in range(rounds):
        changed = False
        for fam in ped.nuclear_families:
            F, M = fam.father, fam.mother
            SF = locus.paternal[states[F]] > 0
            SM = locus.trans_maternal[states[M]] > 0
            p_ok, m_ok = SF.any(axis=0), SM.any(axis=0)
            keep_F = np.ones(len(states[F]), dtype=bool)
            keep_M = np.ones(len(states[M]), dtype=bool)

            for c in fam.children:
                s = states[c]
                if locus.is_haploid(c):
                    ok = m_ok[s]
                    s = s[ok]
                    keep_M &= SM[:, s].any(axis=1)
                else:
                    ok = p_ok[s // H] & m_ok[s % H]
                    s = s[ok]
                    keep_F &= SF[:, s // H].any(axis=1)
                    keep_M &= SM[:, s % H].any(axis=1)
                if len(s) < len(states[c]):
                    states[c] = s
                    changed = True

            if not keep_F.all():
                states[F] = states[F][keep_F]
                changed = True
            if not keep_M.all():
                states[M] = states[M][keep_M]
                changed = True

        # Copie et original partagent le même domaine
        for copy, orig in ped.loop_breakers.items():
            common = np.intersect1d(states[copy], states[orig])
            if len(common) < len(states[copy]) or len(common) < len(states[orig]):
                changed = True
            states[copy] = states[orig] = common

        if not changed:
            break
    return states


# ======================================================================
# Peeling
# ======================================================================

def _child_term(locus, F, M, c, states, w):
    """f[gF, gM] = somme sur gc de P(gc | gF, gM) · w_c(gc)."""
    H = locus.n_haps
    A_M = locus.trans_maternal[states[M]]
    if locus.is_haploid(c):
        full = np.zeros(H)
        full[states[c]] = w[c]
        return (A_M @ full)[np.newaxis, :]
    A_F = locus.paternal[states[F]]
    full = np.zeros(H * H)
    full[states[c]] = w[c]
    return A_F @ full.reshape(H, H) @ A_M.T


def _child_message(locus, F, M, c, states, w, out):
    """Message vers un enfant pivot : somme sur les génotypes des parents."""
    A_M = locus.trans_maternal[states[M]] * w[M][:, np.newaxis]
    if locus.is_haploid(c):
        return ((w[F] @ out) @ A_M)[states[c]]
    A_F = locus.paternal[states[F]] * w[F][:, np.newaxis]
    G = A_F.T @ out @ A_M
    return G.ravel()[states[c]]


def _peel(ped, order, locus, states, weights):
    w = list(weights)
    total = 1.0
    for step in order:
        F, M, pivot = step.father, step.mother, step.pivot
        out = np.ones((len(states[F]), len(states[M])))
        for c in step.children:
            if c != pivot:
                out = out * _child_term(locus, F, M, c, states, w)

        if pivot is None:
            total *= w[F] @ out @ w[M]
            if total == 0:
                return 0.0
        elif pivot == F:
            w[F] = w[F] * (out @ w[M])
        elif pivot == M:
            w[M] = w[M] * (w[F] @ out)
        else:
            w[pivot] = w[pivot] * _child_message(locus, F, M, pivot, states, w, out)

    for i in ped.isolated:
        total *= w[i].sum()
    return float(total)


def _likelihood(ped, order, markers, rho, eliminate):
    locus = _Locus(ped, markers, rho)
    n = len(ped.ids)

    full_weights = []
    for i, ind_id in enumerate(ped.ids):
        wi = locus.data_weight(ind_id, i)
        if i in ped.loop_breakers:
            wi = np.ones_like(wi)
        elif ped.father[i] < 0:
            wi = wi * locus.founder_prior(i)
        full_weights.append(wi)

    states = [np.flatnonzero(wi) for wi in full_weights]
    for copy, orig in ped.loop_breakers.items():
        states[copy] = states[orig].copy()

    if eliminate > 0:
        states = _eliminate(ped, locus, states, eliminate)
    if any(len(s) == 0 for s in states):
        return 0.0

    weights = [full_weights[i][states[i]] for i in range(n)]
    if not ped.loop_breakers:
        return _peel(ped, order, locus, states, weights)

    # Une dimension de grille par individu dupliqué ; copie et original
    # reçoivent le même génotype, la copie sans prior ni donnée
    copies = list(ped.loop_breakers)
    origs = list(dict.fromkeys(ped.loop_breakers[c] for c in copies))
    grid = fast_grid([np.arange(len(states[o])) for o in origs])

    total = 0.0
    for row in grid:
        st, wt = list(states), list(weights)
        for o, pos in zip(origs, row):
            st[o] = states[o][pos:pos + 1]
            wt[o] = weights[o][pos:pos + 1]
        for c in copies:
            st[c] = st[ped.loop_breakers[c]]
            wt[c] = np.ones(1)
        total += _peel(ped, order, locus, st, wt)
    return total


# ======================================================================
# Validation des entrées
# ======================================================================

def check_eliminate(eliminate):
    if (isinstance(eliminate, bool) or not isinstance(eliminate, numbers.Real)
            or not float(eliminate).is_integer() or eliminate < 0):
        raise ValueError(f"`eliminate` doit être un entier positif ou nul: {eliminate!r}")
    return int(eliminate)


def check_rho(rho):
    if isinstance(rho, (list, tuple)) or np.ndim(rho) > 0:
        if np.size(rho) != 1:
            raise ValueError(f"L'argument `rho` doit être de longueur 1: {rho!r}")
        if not isinstance(rho, np.ndarray):
            raise TypeError(f"L'argument `rho` doit être un nombre: {rho!r}")
    if isinstance(rho, np.ndarray):
        rho = rho.item()
    if isinstance(rho, bool) or not isinstance(rho, numbers.Real) or math.isnan(rho):
        raise TypeError(f"L'argument `rho` doit être un nombre: {rho!r}")
    if not 0 <= rho <= 0.5:
        raise ValueError(f"`rho` doit être dans [0, 0.5]: {rho}")
    return float(rho)


def resolve_marker(ped, ref, argname='marker'):
    """
    Résout un marqueur : objet Marker (vérifié contre le pedigree) ou
    référence (indice ou nom) à un marqueur attaché.
    """
    if isinstance(ref, (list, tuple)):
        if len(ref) != 1:
            raise ValueError(f"`{argname}` doit désigner un seul marqueur")
        ref = ref[0]
    if isinstance(ref, Marker):
        unknown = [i for i in ref.typed_ids() if i not in ped]
        if unknown:
            raise ValueError(f"Entrée incompatible: individus {unknown} absents du pedigree")
        return ref
    return ped.markers[ped.marker_index(ref)]


def prepare_pedigree(x, order, markers, loop_breakers=None, verbose=False):
    """Casse les boucles et construit l'ordre de peeling si nécessaire."""
    if not isinstance(x, Pedigree):
        raise TypeError("L'entrée n'est pas un Pedigree")
    if order is None:
        if x.unbroken_loops:
            x = break_loops(x, loop_breakers, domains=domain_sizes(x, markers),
                            verbose=verbose)
        order = build_peeling_order(x)
    else:
        if x.unbroken_loops:
            raise ValueError("Un ordre de peeling exige un pedigree sans boucle")
        if order.n_individuals != len(x.ids):
            raise ValueError("L'ordre de peeling a été construit pour un autre pedigree")
    return x, order


def _check_components_args(order, loop_breakers):
    # Ordre et individus à dupliquer se rapportent à un seul pedigree
    if order is not None:
        raise ValueError("`peeling_order` n'est pas accepté avec plusieurs composantes")
    if loop_breakers:
        raise ValueError("`loop_breakers` n'est pas accepté avec plusieurs composantes")


# ======================================================================
# API PUBLIQUE
# ======================================================================

def likelihood_single(x, marker, peeling_order=None, eliminate=0, loop_breakers=None):
    """
    Vraisemblance exacte des données d'un marqueur sur le pedigree.

    Parameters
    ----------
    x : Pedigree ou list of Pedigree
        Une liste est traitée composante par composante (produit) ; le
        marqueur doit alors désigner un marqueur attaché, sans
        `peeling_order` ni `loop_breakers`.
    marker : Marker, int ou str
        Marqueur, ou indice / nom d'un marqueur attaché à `x`
    peeling_order : PeelingOrder, optional
        Ordre construit par `peeling_order()` sur `x` (déjà sans boucle).
        Calculé ici, après cassure des boucles, s'il est absent.
    eliminate : int
        Nombre de passes d'élimination de génotypes
    loop_breakers : list, optional
        Individus à dupliquer si `x` a des boucles

    Returns
    -------
    float
        0.0 exactement si les données sont impossibles.
    """
    eliminate = check_eliminate(eliminate)
    if isinstance(x, (list, tuple)):
        if isinstance(marker, Marker):
            raise ValueError("Avec plusieurs composantes, `marker` doit désigner un marqueur attaché")
        _check_components_args(peeling_order, loop_breakers)
        return float(np.prod([likelihood_single(comp, marker, eliminate=eliminate)
                              for comp in x]))

    m = resolve_marker(x, marker)
    x, order = prepare_pedigree(x, peeling_order, [m], loop_breakers)
    return _likelihood(x, order, [m], 0.5, eliminate)


def likelihood_linked(x, marker1, marker2, rho, peeling_order=None, eliminate=0,
                      loop_breakers=None):
    """
    Vraisemblance exacte de deux marqueurs liés, séparés par la fraction
    de recombinaison `rho` (dans [0, 0.5]).

    À rho = 0.5 le résultat est le produit des deux vraisemblances simples.
    Les deux marqueurs doivent être sur le même type de chromosome.
    """
    eliminate = check_eliminate(eliminate)
    rho = check_rho(rho)
    if isinstance(x, (list, tuple)):
        if isinstance(marker1, Marker) or isinstance(marker2, Marker):
            raise ValueError("Avec plusieurs composantes, les marqueurs doivent être attachés")
        _check_components_args(peeling_order, loop_breakers)
        return float(np.prod([likelihood_linked(comp, marker1, marker2, rho, eliminate=eliminate)
                              for comp in x]))

    m1 = resolve_marker(x, marker1, 'marker1')
    m2 = resolve_marker(x, marker2, 'marker2')
    if m1.chrom != m2.chrom:
        raise ValueError(f"Marqueurs sur des chromosomes différents: {m1.chrom}, {m2.chrom}")

    x, order = prepare_pedigree(x, peeling_order, [m1, m2], loop_breakers)
    return _likelihood(x, order, [m1, m2], rho, eliminate)
