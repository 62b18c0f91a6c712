"""
Calcul de l'ordre de peeling pour l'algorithme d'Elston-Stewart.

L'ordre est un objet explicite, construit une fois par topologie et
transmis à chaque calcul de vraisemblance.
"""


class PeelingStep:
    """
    Une étape de peeling : la famille nucléaire à sommer et le pivot,
    seul membre encore relié aux familles non pelées (None pour la
    dernière famille d'une composante connexe).
    """

    __slots__ = ('family_idx', 'father', 'mother', 'children', 'pivot')

    def __init__(self, family_idx, family, pivot):
        self.family_idx = family_idx
        self.father = family.father
        self.mother = family.mother
        self.children = family.children
        self.pivot = pivot

    def __repr__(self):
        return (f"PeelingStep({self.father}×{self.mother}→{list(self.children)} "
                f"| pivot={self.pivot})")


class PeelingOrder:
    """Séquence d'étapes de peeling pour un pedigree acyclique donné."""

    def __init__(self, steps, n_individuals):
        self.steps = list(steps)
        self.n_individuals = n_individuals

    def __iter__(self):
        return iter(self.steps)

    def __len__(self):
        return len(self.steps)

    def __repr__(self):
        return f"PeelingOrder({len(self.steps)} étapes)"


def peeling_order(ped):
    """
    Calcule l'ordre de peeling : peler de bas en haut, une famille dès
    qu'au plus un de ses membres appartient encore à une autre famille
    non pelée.

    Raises
    ------
    ValueError
        Si le pedigree contient des boucles non cassées.
    """
    if ped.unbroken_loops:
        raise ValueError("Le pedigree contient des boucles : les casser avant le peeling")

    families = ped.nuclear_families
    # individu -> familles non pelées dont il est membre
    remaining_of = {}
    for k, fam in enumerate(families):
        for member in fam.members():
            remaining_of.setdefault(member, set()).add(k)

    steps = []
    peeled = set()

    # Peeling itératif
    while len(peeled) < len(families):
        progress = False
        for k, fam in enumerate(families):
            if k in peeled:
                continue
            linked = [i for i in fam.members() if len(remaining_of[i]) > 1]
            if len(linked) > 1:
                continue

            pivot = linked[0] if linked else None
            steps.append(PeelingStep(k, fam, pivot))
            peeled.add(k)
            for member in fam.members():
                remaining_of[member].discard(k)
            progress = True

        if not progress:
            # Impossible si le graphe individus-familles est une forêt
            raise ValueError("Aucune famille ne peut être pelée : pedigree cyclique")

    return PeelingOrder(steps, len(ped.ids))
