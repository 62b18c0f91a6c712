"""
Détection et cassure des boucles du pedigree.

Casser une boucle en un individu X : une copie fondatrice X' remplace X
comme parent dans une (ou plusieurs) de ses familles. Le calcul de
vraisemblance contraint ensuite X et X' au même génotype et somme sur ce
génotype, ce qui conserve la probabilité exacte.
"""

from collections import defaultdict, deque

from .pedigree import Pedigree


def find_loop(ped):
    """
    Cherche un cycle du graphe biparti individus–familles.

    Returns
    -------
    cycle : list of (individual_idx, family_idx, family_idx) ou None
        Chaque individu du cycle avec les deux familles du cycle qui
        l'encadrent.
    """
    n = len(ped.ids)
    parent = list(range(n + len(ped.nuclear_families)))
    tree = defaultdict(list)

    def find(u):
        while parent[u] != u:
            parent[u] = parent[parent[u]]
            u = parent[u]
        return u

    for k, fam in enumerate(ped.nuclear_families):
        fnode = n + k
        for member in fam.members():
            ru, rv = find(member), find(fnode)
            if ru == rv:
                path = _tree_path(tree, member, fnode)
                return _cycle_individuals(path, n)
            parent[ru] = rv
            tree[member].append(fnode)
            tree[fnode].append(member)
    return None


def _tree_path(tree, source, target):
    """Chemin source → target dans la forêt couvrante (BFS)."""
    prev = {source: None}
    queue = deque([source])
    while queue:
        u = queue.popleft()
        if u == target:
            break
        for v in tree[u]:
            if v not in prev:
                prev[v] = u
                queue.append(v)
    path = []
    u = target
    while u is not None:
        path.append(u)
        u = prev[u]
    return path[::-1]


def _cycle_individuals(cycle, n):
    # Le cycle alterne individus et familles ; il se referme sur cycle[0]
    out = []
    for pos, node in enumerate(cycle):
        if node < n:
            before = cycle[pos - 1] - n
            after = cycle[(pos + 1) % len(cycle)] - n
            out.append((node, before, after))
    return out


def _candidate_cut(ped, ind, fam_a, fam_b):
    """Famille du cycle où l'individu est parent (celle à couper)."""
    options = [k for k in (fam_a, fam_b)
               if ind in (ped.nuclear_families[k].father, ped.nuclear_families[k].mother)]
    if not options:
        return None
    return min(options, key=lambda k: len(ped.nuclear_families[k].children))


def _copy_label(ped_dict, label):
    new = f"{label}*"
    while new in ped_dict:
        new += "*"
    return new


def _duplicate(ped_dict, orig, families, nuclear_families, ids):
    """Ajoute une copie fondatrice de `orig` qui le remplace comme parent dans `families`."""
    copy_label = _copy_label(ped_dict, orig)
    ped_dict[copy_label] = {
        'father': None, 'mother': None,
        'sex': ped_dict[orig]['sex'],
    }
    for k in families:
        for c in nuclear_families[k].children:
            info = ped_dict[ids[c]]
            if info['father'] == orig:
                info['father'] = copy_label
            if info['mother'] == orig:
                info['mother'] = copy_label
    return copy_label


def break_loops(ped, loop_breakers=None, domains=None, verbose=False):
    """
    Casse toutes les boucles du pedigree par duplication d'individus.

    Parameters
    ----------
    ped : Pedigree
    loop_breakers : list, optional
        Identifiants des individus à dupliquer. Chacun doit être un
        non-fondateur ; sa copie reprend tous ses rôles de parent.
        Par défaut, sélection automatique.
    domains : dict, optional
        {indice interne: nombre de génotypes admissibles}. La sélection
        automatique préfère les petits domaines, puis les familles coupées
        avec peu d'enfants.
    verbose : bool

    Returns
    -------
    Pedigree
        `ped` lui-même s'il n'a pas de boucle, sinon un nouveau pedigree
        dont `loop_breakers` associe chaque copie à son original.
    """
    if ped.loop_breakers:
        raise ValueError("Les boucles de ce pedigree ont déjà été cassées")
    if not ped.unbroken_loops:
        return ped

    ped_dict = ped.to_dict()
    copies = {}
    current = ped

    if loop_breakers is not None:
        for label in loop_breakers:
            i = ped.internal_id(label)
            if ped.is_founder(label):
                raise ValueError(f"Un fondateur ne peut pas casser une boucle: {label}")
            own = ped.parent_families(i)
            if not own:
                raise ValueError(f"{label} n'a pas d'enfant et ne casse aucune boucle")
            copy_label = _duplicate(ped_dict, label, own, ped.nuclear_families, ped.ids)
            copies[copy_label] = label
            if verbose:
                print(f"  Boucle cassée en {label}")
        current = Pedigree(ped_dict, markers=ped.markers)
        if current.unbroken_loops:
            raise ValueError(f"Les individus {list(loop_breakers)} ne cassent pas toutes les boucles")
    else:
        domains = domains or {}
        while True:
            cycle = find_loop(current)
            if cycle is None:
                break
            best = None
            for ind, fam_a, fam_b in cycle:
                k = _candidate_cut(current, ind, fam_a, fam_b)
                if k is None:
                    continue
                n_kids = len(current.nuclear_families[k].children)
                # Les copies ont l'indice de leur original dans `domains`
                label = current.ids[ind]
                orig = copies.get(label, label)
                cost = (domains.get(ped.internal_id(orig), 1), n_kids, ind)
                if best is None or cost < best[0]:
                    best = (cost, ind, k)
            _, ind, k = best
            label = current.ids[ind]
            orig = copies.get(label, label)
            copy_label = _duplicate(ped_dict, label, [k], current.nuclear_families, current.ids)
            copies[copy_label] = orig
            if verbose:
                print(f"  Boucle cassée en {orig}")
            current = Pedigree(ped_dict, markers=ped.markers)

    return Pedigree(ped_dict, markers=ped.markers, loop_breakers=copies)
