"""
Gestion de la structure du pedigree.
Décomposition en familles nucléaires, détection des boucles et
marqueurs attachés.
"""

from collections import defaultdict

import numpy as np

from .config import UNKNOWN_SEX, MALE, FEMALE


class NuclearFamily:
    """Représente une famille nucléaire (père, mère, enfants), en indices internes."""

    def __init__(self, father, mother, children):
        self.father = father
        self.mother = mother
        self.children = tuple(children)

    def members(self):
        return (self.father, self.mother) + self.children

    def __repr__(self):
        return f"NuclearFamily({self.father} × {self.mother} → {list(self.children)})"


class Pedigree:
    """
    Structure de pedigree : individus, liens de parenté, familles nucléaires
    et marqueurs attachés. La structure n'est jamais modifiée après
    construction ; la cassure des boucles produit un nouveau Pedigree.
    """

    def __init__(self, ped_dict, markers=None, loop_breakers=None):
        """
        Parameters
        ----------
        ped_dict : dict
            Clé = individual_id, Valeur = dict avec 'father', 'mother', 'sex'.
            Parents à None pour les fondateurs.
        markers : list of Marker, optional
            Marqueurs attachés
        loop_breakers : dict, optional
            {id de la copie: id de l'original} (posé par la cassure des boucles)
        """
        self.individuals = {}
        for ind_id, info in ped_dict.items():
            self.individuals[ind_id] = {
                'father': info.get('father'),
                'mother': info.get('mother'),
                'sex': info.get('sex', UNKNOWN_SEX),
            }
        self.ids = list(self.individuals)
        self._index = {ind_id: i for i, ind_id in enumerate(self.ids)}

        n = len(self.ids)
        self.father = np.full(n, -1, dtype=int)
        self.mother = np.full(n, -1, dtype=int)
        self.sex = np.zeros(n, dtype=int)

        # Identifier fondateurs et non-fondateurs
        self.founders = set()
        self.non_founders = set()
        for i, (ind_id, info) in enumerate(self.individuals.items()):
            self.sex[i] = info['sex']
            fa, mo = info['father'], info['mother']
            if fa is None and mo is None:
                self.founders.add(ind_id)
                continue
            if fa is None or mo is None:
                raise ValueError(f"Individu {ind_id}: un seul parent renseigné")
            if fa == mo:
                raise ValueError(f"Individu {ind_id}: père et mère identiques")
            for parent in (fa, mo):
                if parent not in self._index:
                    raise ValueError(f"Individu {ind_id}: parent {parent} absent du pedigree")
            self.father[i] = self._index[fa]
            self.mother[i] = self._index[mo]
            self.non_founders.add(ind_id)

        self._check_sexes()
        self._check_acyclic_descent()

        # Construire les familles nucléaires
        self.nuclear_families = self._build_nuclear_families()

        # Identifier les connexions inter-familles
        self._parent_in_families = defaultdict(list)  # ind -> familles où il est parent
        self._child_in_family = {}  # ind -> famille où il est enfant
        for k, fam in enumerate(self.nuclear_families):
            self._parent_in_families[fam.father].append(k)
            self._parent_in_families[fam.mother].append(k)
            for child in fam.children:
                self._child_in_family[child] = k

        self.isolated = [i for i in range(n)
                         if i not in self._parent_in_families and i not in self._child_in_family]

        self.markers = tuple(markers or ())
        self.loop_breakers = {self._index[c]: self._index[o]
                              for c, o in (loop_breakers or {}).items()}
        self._n_loops = None

    # ------------------------------------------------------------------
    def _check_sexes(self):
        for i in range(len(self.ids)):
            if self.father[i] >= 0 and self.sex[self.father[i]] == FEMALE:
                raise ValueError(f"Le père de {self.ids[i]} est de sexe féminin")
            if self.mother[i] >= 0 and self.sex[self.mother[i]] == MALE:
                raise ValueError(f"La mère de {self.ids[i]} est de sexe masculin")

    def _check_acyclic_descent(self):
        """Personne ne peut être son propre ancêtre."""
        state = np.zeros(len(self.ids), dtype=int)  # 0 = non vu, 1 = en cours, 2 = fini
        for start in range(len(self.ids)):
            if state[start]:
                continue
            stack = [(start, False)]
            while stack:
                i, done = stack.pop()
                if done:
                    state[i] = 2
                    continue
                if state[i] == 2:
                    continue
                state[i] = 1
                stack.append((i, True))
                for parent in (self.father[i], self.mother[i]):
                    if parent < 0:
                        continue
                    if state[parent] == 1:
                        raise ValueError(f"{self.ids[parent]} est son propre ancêtre")
                    if state[parent] == 0:
                        stack.append((parent, False))

    def _build_nuclear_families(self):
        """Construit les familles nucléaires à partir du pedigree."""
        # Grouper les enfants par couple parental
        couples = defaultdict(list)
        for i in range(len(self.ids)):
            if self.father[i] >= 0:
                couples[(self.father[i], self.mother[i])].append(i)

        return [NuclearFamily(int(fa), int(mo), children)
                for (fa, mo), children in couples.items()]

    # ------------------------------------------------------------------
    # Boucles
    # ------------------------------------------------------------------
    @property
    def n_loops(self):
        """
        Nombre cyclomatique du graphe biparti individus–familles :
        0 si et seulement si le pedigree peut être pelé sans cassure.
        """
        if self._n_loops is None:
            n = len(self.ids)
            parent = list(range(n + len(self.nuclear_families)))

            def find(u):
                while parent[u] != u:
                    parent[u] = parent[parent[u]]
                    u = parent[u]
                return u

            loops = 0
            for k, fam in enumerate(self.nuclear_families):
                for member in fam.members():
                    ru, rv = find(member), find(n + k)
                    if ru == rv:
                        loops += 1
                    else:
                        parent[ru] = rv
            self._n_loops = loops
        return self._n_loops

    @property
    def unbroken_loops(self):
        return self.n_loops > 0

    # ------------------------------------------------------------------
    # Accès
    # ------------------------------------------------------------------
    def internal_id(self, ids):
        """Indice(s) interne(s) d'un ou plusieurs identifiants."""
        if isinstance(ids, (list, tuple)):
            return [self.internal_id(i) for i in ids]
        try:
            return self._index[ids]
        except KeyError:
            raise ValueError(f"Individu inconnu: {ids}") from None

    def get_parents(self, ind_id):
        """Retourne (father_id, mother_id) ou (None, None)."""
        info = self.individuals[ind_id]
        return info['father'], info['mother']

    def is_founder(self, ind_id):
        return ind_id in self.founders

    def get_sex(self, ind_id):
        return self.individuals[ind_id]['sex']

    def parent_families(self, i):
        """Familles (indices) où l'individu d'indice i est parent."""
        return list(self._parent_in_families.get(i, []))

    def to_dict(self):
        return {ind_id: dict(info) for ind_id, info in self.individuals.items()}

    # ------------------------------------------------------------------
    # Marqueurs attachés
    # ------------------------------------------------------------------
    def set_markers(self, markers):
        """Retourne une copie du pedigree avec les marqueurs donnés attachés."""
        breakers = {self.ids[c]: self.ids[o] for c, o in self.loop_breakers.items()}
        return Pedigree(self.individuals, markers=markers, loop_breakers=breakers)

    def marker_index(self, ref):
        """Indice d'un marqueur attaché, désigné par position ou par nom."""
        if isinstance(ref, (int, np.integer)) and not isinstance(ref, bool):
            if not 0 <= ref < len(self.markers):
                raise ValueError(f"Indice de marqueur hors limites: {ref}")
            return int(ref)
        names = [m.name for m in self.markers]
        if ref in names:
            return names.index(ref)
        raise ValueError(f"Marqueur inconnu: {ref!r}")

    # ------------------------------------------------------------------
    def summary(self):
        """Affiche un résumé du pedigree."""
        print(f"Pedigree: {len(self.ids)} individus")
        print(f"  Fondateurs: {len(self.founders)} ({list(self.founders)})")
        print(f"  Non-fondateurs: {len(self.non_founders)}")
        print(f"  Familles nucléaires: {len(self.nuclear_families)}")
        for k, fam in enumerate(self.nuclear_families):
            kids = [self.ids[c] for c in fam.children]
            print(f"    [{k}] {self.ids[fam.father]} × {self.ids[fam.mother]} → {kids}")
        print(f"  Boucles: {self.n_loops}")
        if self.loop_breakers:
            pairs = ', '.join(f"{self.ids[o]}→{self.ids[c]}" for c, o in self.loop_breakers.items())
            print(f"  Boucles cassées: {pairs}")
        print(f"  Marqueurs attachés: {len(self.markers)}")

    def __len__(self):
        return len(self.ids)

    def __contains__(self, ind_id):
        return ind_id in self._index

    def __repr__(self):
        return f"Pedigree({len(self.ids)} individus, {len(self.nuclear_families)} familles)"


def singleton(ind_id=1, sex=MALE):
    """Pedigree à un seul individu."""
    return Pedigree({ind_id: {'father': None, 'mother': None, 'sex': sex}})


def nuclear_ped(n_children=1, father=1, mother=2, children=None, sex=MALE):
    """
    Famille nucléaire : père, mère et enfants.

    Parameters
    ----------
    n_children : int
        Nombre d'enfants (ignoré si `children` est donné)
    children : list, optional
        Identifiants des enfants (par défaut 3, 4, ...)
    sex : int ou list
        Sexe des enfants
    """
    if children is None:
        children = list(range(3, 3 + n_children))
    if isinstance(sex, int):
        sex = [sex] * len(children)
    ped = {
        father: {'father': None, 'mother': None, 'sex': MALE},
        mother: {'father': None, 'mother': None, 'sex': FEMALE},
    }
    for child, s in zip(children, sex):
        ped[child] = {'father': father, 'mother': mother, 'sex': s}
    return Pedigree(ped)
