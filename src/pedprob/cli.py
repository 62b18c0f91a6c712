#!/usr/bin/env python3
"""
pedprob — Probabilités de génotypes sur un pedigree
===================================================

Vraisemblance exacte des données de marqueurs (Elston-Stewart) et
distributions conditionnelles de génotypes pour un ou deux marqueurs liés.

Usage:
    pedprob --ped family.ped --freq freq.tsv --geno geno.tsv --ids 3 4
    pedprob --ped family.ped --freq freq.tsv --geno geno.tsv --ids 5 --marker M1 --marker2 M2 --rho 0.1
    pedprob --ped family.ped --freq freq.tsv --geno geno.tsv --likelihood
"""

import argparse
import os
import sys
import time

from pedprob.config import DEFAULT_ELIMINATE_ONE, DEFAULT_ELIMINATE_TWO
from pedprob.data_parser import load_all_data
from pedprob.distribution import one_marker_distribution, two_marker_distribution
from pedprob.likelihood import likelihood_single, likelihood_linked


def main(argv=None):
    parser = argparse.ArgumentParser(
        description='pedprob — Probabilités de génotypes sur un pedigree',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Exemples:
  # Distribution jointe des parents 1 et 2 pour le premier marqueur
  pedprob --ped data/family.ped --freq data/freq.tsv --geno data/geno.tsv --ids 1 2

  # Deux marqueurs liés, rho = 0.05
  pedprob --ped data/family.ped --freq data/freq.tsv --geno data/geno.tsv \\
          --ids 5 --marker M1 --marker2 M2 --rho 0.05

  # Vraisemblance seule
  pedprob --ped data/family.ped --freq data/freq.tsv --geno data/geno.tsv --likelihood
        """
    )

    parser.add_argument('--ped', required=True,
                        help='Fichier pedigree (format Merlin)')
    parser.add_argument('--freq', required=True,
                        help='Fichier de fréquences alléliques (marker, allele, freq [, chrom])')
    parser.add_argument('--geno', default=None,
                        help='Fichier de génotypage (id + une colonne par marqueur)')
    parser.add_argument('--ids', nargs='+', default=[],
                        help='Individus cibles')
    parser.add_argument('--marker', default=None,
                        help='Nom du marqueur (défaut: le premier)')
    parser.add_argument('--marker2', default=None,
                        help='Second marqueur, lié au premier')
    parser.add_argument('--rho', type=float, default=0.5,
                        help='Fraction de recombinaison entre les deux marqueurs (défaut: 0.5)')
    parser.add_argument('--likelihood', action='store_true',
                        help='Calculer seulement la vraisemblance des données')
    parser.add_argument('--eliminate', type=int, default=None,
                        help=f'Passes d\'élimination de génotypes '
                             f'(défaut: {DEFAULT_ELIMINATE_ONE} / {DEFAULT_ELIMINATE_TWO} pour 2 marqueurs)')
    parser.add_argument('--loop-breakers', nargs='+', default=None,
                        help='Individus à dupliquer pour casser les boucles')
    parser.add_argument('--inbreeding', type=float, default=0.0,
                        help='Coefficient de consanguinité des fondateurs (défaut: 0)')
    parser.add_argument('--jobs', type=int, default=None,
                        help='Nombre de threads (défaut: nombre de CPU)')
    parser.add_argument('--output', default=None,
                        help='Dossier de sortie pour la table TSV')
    parser.add_argument('--quiet', action='store_true',
                        help='Pas de messages de progression')

    args = parser.parse_args(argv)
    verbose = not args.quiet
    two_markers = args.marker2 is not None

    t_start = time.time()

    try:
        pedigree = load_all_data(args.ped, args.freq, args.geno,
                                 inbreeding=args.inbreeding, verbose=verbose)
    except (OSError, ValueError) as e:
        parser.error(str(e))

    if not pedigree.markers:
        parser.error("Aucun marqueur dans le fichier de fréquences")
    marker = args.marker if args.marker is not None else 0

    if args.eliminate is None:
        args.eliminate = DEFAULT_ELIMINATE_TWO if two_markers else DEFAULT_ELIMINATE_ONE

    if verbose:
        print("\n" + "=" * 60)
        print("STRUCTURE DU PEDIGREE")
        print("=" * 60)
        pedigree.summary()
        print("\n" + "=" * 60)
        print("CALCUL")
        print("=" * 60)

    try:
        if args.likelihood:
            if two_markers:
                lik = likelihood_linked(pedigree, marker, args.marker2, args.rho,
                                        eliminate=args.eliminate,
                                        loop_breakers=args.loop_breakers)
            else:
                lik = likelihood_single(pedigree, marker, eliminate=args.eliminate,
                                        loop_breakers=args.loop_breakers)
            print(f"Vraisemblance: {lik:.10g}")
            return 0

        if not args.ids:
            parser.error("--ids est requis pour une distribution de génotypes")
        if two_markers:
            if len(args.ids) != 1:
                parser.error("Un seul individu cible avec deux marqueurs")
            dist = two_marker_distribution(pedigree, args.ids[0], marker, args.marker2, args.rho,
                                           loop_breakers=args.loop_breakers,
                                           eliminate=args.eliminate, n_jobs=args.jobs,
                                           verbose=verbose)
        else:
            dist = one_marker_distribution(pedigree, args.ids, marker,
                                           loop_breakers=args.loop_breakers,
                                           eliminate=args.eliminate, n_jobs=args.jobs,
                                           verbose=verbose)
    except ValueError as e:
        print(f"Erreur: {e}", file=sys.stderr)
        return 1

    table = dist.to_frame()
    print()
    print(table.to_string(float_format=lambda v: f"{v:.6f}"))

    if args.output:
        os.makedirs(args.output, exist_ok=True)
        _save_table(table, args.output)

    if verbose:
        print(f"\nTemps total: {time.time() - t_start:.1f} secondes")
        print("\nTerminé ✓")
    return 0


def _save_table(table, output_dir):
    """Sauvegarde la distribution dans un fichier TSV."""
    filepath = os.path.join(output_dir, 'genotype_distribution.tsv')
    table.to_csv(filepath, sep='\t', float_format='%.8f')
    print(f"  → Distribution: {filepath}")


if __name__ == '__main__':
    sys.exit(main())
