"""
Énumération des génotypes admissibles et grilles de combinaisons.

Les génotypes non ordonnés d'un marqueur à n allèles sont listés par
`all_genotypes(n)` : d'abord les homozygotes 1/1 ... n/n, puis les
hétérozygotes 1/2, 1/3, ..., 2/3, ... (ordre des indices d'allèles).
Une grille contient des numéros de ligne de cette table.
"""

import numpy as np

from .config import MALE, ALLELE_MISSING


def all_genotypes(n_alleles):
    """Table (k, 2) des génotypes non ordonnés, indices d'allèles en base 0."""
    homoz = np.column_stack([np.arange(n_alleles), np.arange(n_alleles)])
    hetero = [(i, j) for i in range(n_alleles) for j in range(i + 1, n_alleles)]
    hetero = np.array(hetero, dtype=int).reshape(-1, 2)
    return np.vstack([homoz, hetero]).astype(int)


def genotype_labels(alleles):
    """Étiquettes "a/b" alignées sur `all_genotypes`."""
    allg = all_genotypes(len(alleles))
    return [f"{alleles[a]}/{alleles[b]}" for a, b in allg]


def _allele_match(allele, n_alleles):
    if allele == ALLELE_MISSING:
        return np.ones(n_alleles, dtype=bool)
    v = np.zeros(n_alleles, dtype=bool)
    v[allele] = True
    return v


def diploid_compat(obs, n_alleles):
    """
    compat[u, v] = True si le génotype ordonné (u, v) est compatible avec
    l'observation non ordonnée `obs` (jokers acceptés).
    """
    u = _allele_match(obs[0], n_alleles)
    v = _allele_match(obs[1], n_alleles)
    return np.outer(u, v) | np.outer(v, u)


def hemizygous_compat(obs, n_alleles):
    """compat[u] pour un homme sur l'X : les deux allèles observés doivent coïncider."""
    return _allele_match(obs[0], n_alleles) & _allele_match(obs[1], n_alleles)


def admissible_rows(marker, ind_id, male_on_x=False):
    """Lignes de `all_genotypes` compatibles avec les données de l'individu."""
    allg = all_genotypes(marker.n_alleles)
    compat = diploid_compat(marker.genotype(ind_id), marker.n_alleles)
    ok = compat[allg[:, 0], allg[:, 1]]
    if male_on_x:
        ok &= allg[:, 0] == allg[:, 1]
    return np.flatnonzero(ok)


def geno_combinations(ped, marker, ids, make_grid=True):
    """
    Génotypes admissibles des individus `ids` pour le marqueur.

    Parameters
    ----------
    ped : Pedigree
    marker : Marker
    ids : list
        Identifiants des individus cibles
    make_grid : bool
        Si True, retourne le produit cartésien (une colonne par individu),
        sinon la liste des lignes admissibles par individu.
    """
    rows = []
    for ind_id in ids:
        male_on_x = marker.is_x and ped.get_sex(ind_id) == MALE
        rows.append(admissible_rows(marker, ind_id, male_on_x))
    if make_grid:
        return fast_grid(rows)
    return rows


def fast_grid(columns):
    """
    Produit cartésien de listes d'entiers, la première colonne variant le
    plus vite. Une colonne de longueur 1 est simplement répétée.
    """
    columns = [np.asarray(c, dtype=int).ravel() for c in columns]
    lengths = [len(c) for c in columns]
    total = int(np.prod(lengths)) if columns else 0
    grid = np.empty((total, len(columns)), dtype=int)
    if total == 0:
        return grid

    rep_each = 1
    for j, col in enumerate(columns):
        if len(col) == 1:
            grid[:, j] = col[0]
            continue
        block = np.repeat(col, rep_each)
        grid[:, j] = np.tile(block, total // len(block))
        rep_each *= len(col)
    return grid


def domain_sizes(ped, markers):
    """
    Nombre de génotypes admissibles par individu (indice interne), produit
    sur les marqueurs. Sert à choisir les individus à dupliquer.
    """
    sizes = {}
    for i, ind_id in enumerate(ped.ids):
        size = 1
        for m in markers:
            male_on_x = m.is_x and ped.sex[i] == MALE
            size *= len(admissible_rows(m, ind_id, male_on_x))
        sizes[i] = size
    return sizes
