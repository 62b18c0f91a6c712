"""
pedprob — Probabilités exactes de génotypes sur un pedigree
===========================================================

Algorithme d'Elston-Stewart avec cassure des boucles, fondateurs
consanguins, marqueurs liés à l'X, modèles de mutation et deux marqueurs
liés.

Modules:
    config: Constantes, priors des fondateurs, transmission, mutation
    marker: Marqueurs et génotypes observés
    pedigree: Structure du pedigree
    genotypes: Énumération des génotypes admissibles
    peeling: Ordre de peeling
    loops: Détection et cassure des boucles
    likelihood: Calcul des vraisemblances
    distribution: Distributions conditionnelles de génotypes
    data_parser: Chargement des fichiers d'entrée
"""

__version__ = "1.0.0"

from .config import MutationModel, ImpossibleDataError, hw_prob
from .marker import Marker
from .pedigree import Pedigree, singleton, nuclear_ped
from .genotypes import all_genotypes, geno_combinations, fast_grid
from .peeling import PeelingOrder, peeling_order
from .loops import break_loops, find_loop
from .likelihood import likelihood_single, likelihood_linked
from .distribution import (
    GenotypeDistribution, one_marker_distribution, two_marker_distribution,
)
from .data_parser import load_all_data

__all__ = [
    "MutationModel",
    "ImpossibleDataError",
    "hw_prob",
    "Marker",
    "Pedigree",
    "singleton",
    "nuclear_ped",
    "all_genotypes",
    "geno_combinations",
    "fast_grid",
    "PeelingOrder",
    "peeling_order",
    "break_loops",
    "find_loop",
    "likelihood_single",
    "likelihood_linked",
    "GenotypeDistribution",
    "one_marker_distribution",
    "two_marker_distribution",
    "load_all_data",
]
