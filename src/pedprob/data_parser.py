"""
Parseur de données pour les fichiers d'entrée : pedigree, fréquences
alléliques et génotypes.
"""

import pandas as pd
from tqdm import tqdm

from .config import MALE, FEMALE, UNKNOWN_SEX
from .marker import Marker
from .pedigree import Pedigree


def parse_pedigree(filepath):
    """
    Parse le fichier pedigree (format Merlin .ped / LINKAGE).

    Format: FamilyID IndividualID FatherID MotherID Sex [Affection]
    Séparé par des espaces ou tabulations, pas de header. Les colonnes
    FamilyID et Affection sont lues mais ignorées.

    Returns
    -------
    ped : dict
        Clé = individual_id (str)
        Valeur = dict avec 'father', 'mother', 'sex'
    """
    ped = {}
    with open(filepath) as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith('#'):
                continue
            parts = line.split()
            if len(parts) < 5:
                raise ValueError(f"Ligne de pedigree incomplète: {line!r}")
            ind_id, father_id, mother_id = parts[1:4]
            sex = int(parts[4])

            if ind_id in ped:
                raise ValueError(f"Individu dupliqué dans le pedigree: {ind_id}")
            if sex not in (UNKNOWN_SEX, MALE, FEMALE):
                raise ValueError(f"Sexe invalide pour {ind_id}: {sex}")

            ped[ind_id] = {
                'father': father_id if father_id != '0' else None,
                'mother': mother_id if mother_id != '0' else None,
                'sex': sex,
            }
    return ped


def parse_freq(filepath):
    """
    Parse le fichier de fréquences alléliques.

    Format: marker allele freq [chrom]
    Tab-separated avec header ; une ligne par allèle.

    Returns
    -------
    freq_dict : dict {marker_name: {'alleles': list, 'afreq': list, 'chrom': str}}
    """
    df = pd.read_csv(filepath, sep='\t', dtype={'marker': str, 'allele': str})
    missing = {'marker', 'allele', 'freq'} - set(df.columns)
    if missing:
        raise ValueError(f"Colonnes manquantes dans {filepath}: {sorted(missing)}")
    if 'chrom' not in df.columns:
        df['chrom'] = 'autosomal'

    freq_dict = {}
    for name, sub in df.groupby('marker', sort=False):
        chroms = sub['chrom'].astype(str).unique()
        if len(chroms) > 1:
            raise ValueError(f"Marqueur {name}: plusieurs chromosomes {list(chroms)}")
        freq_dict[name] = {
            'alleles': sub['allele'].tolist(),
            'afreq': sub['freq'].astype(float).tolist(),
            'chrom': chroms[0],
        }
    return freq_dict


def parse_genotyping(filepath, marker_set=None):
    """
    Parse le fichier de génotypage.

    Format: id <marker1> <marker2> ...
    Tab-separated avec header ; cellules "a/b", "a/-", "-/-" ou vides.

    Returns
    -------
    genotypes : dict {marker_name: dict {individual_id: genotype_str}}
    """
    df = pd.read_csv(filepath, sep='\t', dtype=str, keep_default_na=False)
    id_col = df.columns[0]
    genotypes = {}
    for name in tqdm(df.columns[1:], desc="Parsing génotypage", unit=" marqueurs", leave=False):
        if marker_set is not None and name not in marker_set:
            continue
        genotypes[name] = {ind_id: g for ind_id, g in zip(df[id_col], df[name])
                           if g.strip() not in ('', '-/-', '0/0', '0')}
    return genotypes


def load_all_data(ped_file, freq_file, geno_file=None, inbreeding=0.0, verbose=True):
    """
    Charge toutes les données et retourne un pedigree avec les marqueurs
    attachés (dans l'ordre du fichier de fréquences).

    Parameters
    ----------
    ped_file, freq_file : str
        Chemins des fichiers
    geno_file : str, optional
        Fichier de génotypage (marqueurs sans données sinon)
    inbreeding : float
        Coefficient de consanguinité des fondateurs, pour tous les marqueurs
    verbose : bool

    Returns
    -------
    Pedigree
    """
    if verbose:
        print("=" * 60)
        print("CHARGEMENT DES DONNÉES")
        print("=" * 60)
        print("\n[1/3] Lecture du pedigree...")
    ped_dict = parse_pedigree(ped_file)
    if verbose:
        print(f"  {len(ped_dict)} individus chargés")
        print("\n[2/3] Lecture des fréquences alléliques...")
    freq_dict = parse_freq(freq_file)
    if verbose:
        print(f"  {len(freq_dict)} marqueurs avec fréquences")

    genotypes = {}
    if geno_file is not None:
        if verbose:
            print("\n[3/3] Lecture du génotypage...")
        genotypes = parse_genotyping(geno_file, set(freq_dict))
        if verbose:
            print(f"  {len(genotypes)} marqueurs avec génotypes")

    markers = []
    for name, info in freq_dict.items():
        geno = genotypes.get(name, {})
        unknown = set(geno) - set(ped_dict)
        if unknown:
            raise ValueError(f"Marqueur {name}: individus absents du pedigree {sorted(unknown)}")
        markers.append(Marker(alleles=info['alleles'], afreq=info['afreq'], genotypes=geno,
                              chrom=info['chrom'], inbreeding=inbreeding, name=name))

    return Pedigree(ped_dict, markers=markers)
