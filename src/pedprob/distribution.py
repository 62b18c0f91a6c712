"""
Distributions conditionnelles de génotypes pour un ou deux marqueurs.

Pour chaque combinaison de génotypes des individus cibles, la
vraisemblance est recalculée sur un nouveau marqueur (les lignes sont
indépendantes et évaluées en parallèle), puis divisée par la
vraisemblance marginale des données connues.
"""

import concurrent.futures
import os
import time

import numpy as np
import pandas as pd
from tqdm import tqdm

from .config import MALE, DEFAULT_ELIMINATE_ONE, DEFAULT_ELIMINATE_TWO, ImpossibleDataError
from .genotypes import all_genotypes, genotype_labels, geno_combinations, fast_grid
from .likelihood import (
    likelihood_single, likelihood_linked,
    check_eliminate, check_rho, resolve_marker, prepare_pedigree,
)
from .marker import Marker
from .pedigree import Pedigree


CHROM_LABELS = {True: "lié à l'X", False: "autosomal"}


class GenotypeDistribution:
    """
    Table de probabilités à k dimensions (une par individu cible, ou une
    par marqueur), indexée par les étiquettes de génotypes.
    """

    def __init__(self, probs, ids, labels, dim_names=None):
        self.probs = np.asarray(probs, dtype=float)
        self.ids = list(ids)
        self.labels = [list(lab) for lab in labels]
        self.dim_names = list(dim_names) if dim_names is not None else [str(i) for i in self.ids]

    @property
    def shape(self):
        return self.probs.shape

    def _position(self, key):
        if not isinstance(key, tuple):
            key = (key,)
        if len(key) != self.probs.ndim:
            raise KeyError(f"{self.probs.ndim} étiquettes attendues, reçu {len(key)}")
        try:
            return tuple(lab.index(k) for lab, k in zip(self.labels, key))
        except ValueError:
            raise KeyError(key) from None

    def __getitem__(self, key):
        return float(self.probs[self._position(key)])

    def __array__(self, dtype=None, copy=None):
        return self.probs if dtype is None else self.probs.astype(dtype)

    def sum(self):
        return float(self.probs.sum())

    def to_frame(self):
        """
        Table pandas : matrice étiquetée pour 1 ou 2 dimensions, format
        long (une colonne par dimension + 'prob') au-delà.
        """
        if self.probs.ndim == 1:
            return pd.DataFrame({'prob': self.probs},
                                index=pd.Index(self.labels[0], name=self.dim_names[0]))
        if self.probs.ndim == 2:
            return pd.DataFrame(self.probs,
                                index=pd.Index(self.labels[0], name=self.dim_names[0]),
                                columns=pd.Index(self.labels[1], name=self.dim_names[1]))
        index = pd.MultiIndex.from_product(self.labels, names=self.dim_names)
        return pd.DataFrame({'prob': self.probs.ravel()}, index=index).reset_index()

    def __repr__(self):
        return repr(self.to_frame())


def _evaluate_rows(func, rows, n_jobs=None, verbose=False):
    """Évalue `func` sur chaque ligne de grille, dans l'ordre, en parallèle si possible."""
    if n_jobs is None:
        n_jobs = os.cpu_count() or 1
    progress = dict(total=len(rows), desc="    Combinaisons", leave=False, disable=not verbose)
    if n_jobs <= 1 or len(rows) <= 1:
        return [func(r) for r in tqdm(rows, **progress)]
    with concurrent.futures.ThreadPoolExecutor(max_workers=n_jobs) as executor:
        return list(tqdm(executor.map(func, rows), **progress))


def _select_component(x, ids, marker_refs):
    """Pour une liste de pedigrees, retourne la composante contenant tous les `ids`."""
    if not isinstance(x, (list, tuple)):
        return x
    if any(isinstance(m, Marker) for m in marker_refs):
        raise ValueError("Quand `x` a plusieurs composantes, le marqueur ne peut pas "
                         "être un objet Marker non attaché")
    comps = set()
    for ind_id in ids:
        found = [k for k, comp in enumerate(x) if ind_id in comp]
        if len(found) != 1:
            raise ValueError(f"Individu {ind_id} absent ou présent dans plusieurs composantes")
        comps.add(found[0])
    if len(comps) > 1:
        raise ValueError("Individus de composantes différentes du pedigree")
    return x[comps.pop()]


def _check_grid(grid_subset, n_targets, n_genotypes):
    """Valide une grille fournie : une colonne par cible, lignes de `all_genotypes`."""
    grid = np.asarray(grid_subset)
    if grid.size == 0:
        return np.empty((0, n_targets), dtype=int)
    if grid.ndim != 2 or grid.shape[1] != n_targets:
        raise ValueError(f"`grid_subset` doit avoir {n_targets} colonne(s), "
                         f"une par individu cible: forme {grid.shape}")
    if not np.issubdtype(grid.dtype, np.integer):
        raise ValueError("`grid_subset` doit contenir des numéros de ligne entiers")
    if np.any(grid < 0) or np.any(grid >= n_genotypes):
        raise ValueError(f"`grid_subset` contient des lignes hors de [0, {n_genotypes - 1}]")
    return grid.astype(int)


def _check_fresh(x):
    if not isinstance(x, Pedigree):
        raise TypeError("L'entrée n'est pas un Pedigree")
    if x.loop_breakers:
        raise ValueError("Un pedigree dont les boucles sont déjà cassées n'est pas accepté")


def one_marker_distribution(x, ids, partial_marker, loop_breakers=None,
                            eliminate=DEFAULT_ELIMINATE_ONE, grid_subset=None,
                            n_jobs=None, verbose=False):
    """
    Distribution jointe des génotypes des individus `ids` pour un marqueur,
    conditionnelle aux génotypes connus.

    Parameters
    ----------
    x : Pedigree ou list of Pedigree
    ids : identifiant ou list
        Individus cibles
    partial_marker : Marker, int ou str
        Marqueur, ou indice / nom d'un marqueur attaché (obligatoire si
        `x` est une liste)
    loop_breakers : list, optional
        Individus à dupliquer (sélection automatique par défaut)
    eliminate : int
        Passes d'élimination de génotypes
    grid_subset : array (k, len(ids)), optional
        Sous-ensemble des combinaisons, en lignes de `all_genotypes(n)`
    n_jobs : int, optional
        Nombre de threads (défaut : nombre de CPU)
    verbose : bool

    Returns
    -------
    GenotypeDistribution
        Une dimension par individu ; étiquettes allèles pour les hommes sur
        l'X, "a/b" sinon.

    Raises
    ------
    ImpossibleDataError
        Si les données connues ont une vraisemblance nulle.
    """
    if not isinstance(ids, (list, tuple)):
        ids = [ids]
    ids = list(ids)
    if len(set(ids)) != len(ids):
        raise ValueError(f"Individus cibles dupliqués: {ids}")
    eliminate = check_eliminate(eliminate)

    x = _select_component(x, ids, [partial_marker])
    _check_fresh(x)
    x.internal_id(ids)
    m = resolve_marker(x, partial_marker, 'partial_marker')
    on_x = m.is_x

    if verbose:
        print("Génotypes connus:")
        print(f"  {m}")
        print(f"\nType de chromosome : {CHROM_LABELS[on_x]}")
        print(f"Individus cibles   : {', '.join(str(i) for i in ids)}")

    t_start = time.time()

    # Grille calculée avant la cassure des boucles
    if grid_subset is None:
        grid_subset = geno_combinations(x, m, ids, make_grid=True)
    else:
        grid_subset = _check_grid(grid_subset, len(ids), len(all_genotypes(m.n_alleles)))

    x, order = prepare_pedigree(x, None, [m], loop_breakers, verbose=verbose)

    allgenos = all_genotypes(m.n_alleles)
    gt_strings = genotype_labels(m.alleles)
    males = [on_x and x.get_sex(i) == MALE for i in ids]
    geno_names = [list(m.alleles) if male else gt_strings for male in males]

    probs = np.zeros([len(g) for g in geno_names])

    # Les homozygotes sont les n premières lignes de all_genotypes :
    # pour un homme sur l'X, la ligne est directement l'indice de l'allèle
    if any(males):
        cols = np.array(males)
        if np.any(grid_subset[:, cols] >= m.n_alleles):
            raise ValueError("Génotype hétérozygote demandé pour un homme sur l'X")

    marginal = likelihood_single(x, m, order, eliminate)
    if marginal == 0:
        raise ImpossibleDataError("Les données partielles du marqueur sont impossibles")

    if verbose:
        print(f"Vraisemblance marginale: {marginal:.6g}")
        print(f"Calculs nécessaires: {len(grid_subset)}")

    def row_likelihood(row):
        override = {ind_id: tuple(m.alleles[a] for a in allgenos[r])
                    for ind_id, r in zip(ids, row)}
        return likelihood_single(x, m.set_genotypes(override), order, eliminate)

    liks = _evaluate_rows(row_likelihood, list(grid_subset), n_jobs, verbose)
    if len(grid_subset):
        probs[tuple(grid_subset.T)] = liks

    if verbose:
        print(f"\nAnalyse terminée en {time.time() - t_start:.2f} s")

    return GenotypeDistribution(probs / marginal, ids, geno_names)


def two_marker_distribution(x, id, partial_marker1, partial_marker2, rho, loop_breakers=None,
                            eliminate=DEFAULT_ELIMINATE_TWO, n_jobs=None, verbose=False):
    """
    Distribution jointe des génotypes de deux marqueurs liés pour un
    individu, conditionnelle aux génotypes connus et à la fraction de
    recombinaison `rho`.

    Returns
    -------
    GenotypeDistribution
        Matrice (marqueur 1 × marqueur 2) ; étiquettes allèles si l'individu
        est un homme et les marqueurs sont sur l'X.
    """
    eliminate = check_eliminate(eliminate)
    rho = check_rho(rho)
    x = _select_component(x, [id], [partial_marker1, partial_marker2])
    _check_fresh(x)
    x.internal_id(id)

    m1 = resolve_marker(x, partial_marker1, 'partial_marker1')
    m2 = resolve_marker(x, partial_marker2, 'partial_marker2')
    if m1.chrom != m2.chrom:
        raise ValueError(f"Marqueurs sur des chromosomes différents: {m1.chrom}, {m2.chrom}")

    x_and_male = m1.is_x and x.get_sex(id) == MALE

    if verbose:
        print("Génotypes connus:")
        print(f"  marqueur 1: {m1}")
        print(f"  marqueur 2: {m2}")
        print(f"\nTaux de recombinaison : {rho}")
        print(f"Type de chromosome    : {CHROM_LABELS[m1.is_x]}")
        print(f"Individu cible        : {id}")

    t_start = time.time()

    rows1, rows2 = (geno_combinations(x, m, [id], make_grid=False)[0] for m in (m1, m2))
    grid_subset = fast_grid([rows1, rows2])

    x, order = prepare_pedigree(x, None, [m1, m2], loop_breakers, verbose=verbose)

    allgenos1 = all_genotypes(m1.n_alleles)
    allgenos2 = all_genotypes(m2.n_alleles)
    if x_and_male:
        geno_names = [list(m1.alleles), list(m2.alleles)]
    else:
        geno_names = [genotype_labels(m1.alleles), genotype_labels(m2.alleles)]

    probs = np.zeros([len(g) for g in geno_names])

    marginal = likelihood_linked(x, m1, m2, rho, order, eliminate)
    if marginal == 0:
        raise ImpossibleDataError("Les données partielles des marqueurs sont impossibles")

    if verbose:
        print(f"Vraisemblance marginale: {marginal:.6g}")
        print(f"Calculs nécessaires: {len(grid_subset)}")

    def row_likelihood(row):
        r1, r2 = row
        g1 = m1.set_genotypes({id: tuple(m1.alleles[a] for a in allgenos1[r1])})
        g2 = m2.set_genotypes({id: tuple(m2.alleles[a] for a in allgenos2[r2])})
        return likelihood_linked(x, g1, g2, rho, order, eliminate)

    liks = _evaluate_rows(row_likelihood, list(grid_subset), n_jobs, verbose)
    if len(grid_subset):
        probs[tuple(grid_subset.T)] = liks

    if verbose:
        print(f"\nAnalyse terminée en {time.time() - t_start:.2f} s")

    names = [m1.name or 'marqueur 1', m2.name or 'marqueur 2']
    return GenotypeDistribution(probs / marginal, [id], geno_names, dim_names=names)
