"""
Label airway particles by generation.

Reads an airway particles file, imposes a topology on the particles (graph
edges join particles that are close, of similar scale and aligned with their
minor eigenvectors; a minimum spanning forest rooted at the most superior
particle of each component gives the direction of flow), then assigns each
particle an airway generation with a tree-structured hidden Markov model.
Emission probabilities come from generation-labeled atlases (kernel density
estimation) or from emission statistics; transition probabilities from a
probability table and/or branch-point statistics. The labels are written to
the ChestType array of the output file.
"""
import argparse
import logging
import math
import sys

from airway_generation_labeling.config import ROOT_PRIORS, LabelingConfig
from airway_generation_labeling.diagnostics import format_report
from airway_generation_labeling.errors import AirwayLabelingError
from airway_generation_labeling.logging_config import setup_logging
from airway_generation_labeling.particle_io import read_particles, write_particles
from airway_generation_labeling.pipeline import build_models, label_airway_particles
from airway_generation_labeling.statistics_tables import (
    read_emission_statistics, read_transition_probabilities, read_transition_statistics,
)


def add_model_arguments(ap):
    """Options naming the files the emission and transition models are built from."""
    ap.add_argument("-e", "--emissionStats", dest="emission_stats",
                    help="CSV file of statistics used to compute emission probabilities")
    ap.add_argument("--tp", dest="transition_probabilities", help="Transition probabilities file name")
    ap.add_argument("--tps", dest="transition_stats",
                    help="Transition probability stats file (scale difference and angle statistics at branch points)")
    ap.add_argument("-a", "--atlas", dest="atlases", action="append", default=[],
                    help="Airway generation labeled atlas (same frame as the input). May be repeated.")


def add_labeling_arguments(ap):
    """Connectivity and labeling options shared by the single-case and batch tools."""
    defaults = LabelingConfig()
    ap.add_argument("-d", "--distThresh", dest="distance_threshold", type=float,
                    default=defaults.particle_distance_threshold,
                    help="Particles farther apart than this are never connected")
    ap.add_argument("--angleThresh", dest="angle_threshold", type=float,
                    default=defaults.particle_angle_threshold,
                    help="Maximum angle (degrees) between the connecting vector and either minor eigenvector")
    ap.add_argument("--scaleRatio", dest="scale_ratio", type=float, default=defaults.scale_ratio_threshold,
                    help="Maximum |s1 - s2| / max(s1, s2) for two particles to be connected")
    ap.add_argument("--kdeROI", dest="kde_roi", type=float, default=math.inf,
                    help="Radius within which atlas particles contribute to the kernel density estimate "
                         "(default: all atlas particles)")
    ap.add_argument("--rootPrior", dest="root_prior", choices=ROOT_PRIORS, default=defaults.root_prior,
                    help="Prior over the generation of each tree root")
    ap.add_argument("--monotonic", action="store_true",
                    help="Forbid transitions to a smaller generation along a tree edge")
    ap.add_argument("--verbose", action="store_true", help="Debug logging")
    ap.add_argument("--log-file", dest="log_file", help="Also write log messages to this file")


def config_from_args(args, **overrides):
    """LabelingConfig from the options added by ``add_labeling_arguments``."""
    settings = dict(
        scale_ratio_threshold=args.scale_ratio,
        particle_distance_threshold=args.distance_threshold,
        particle_angle_threshold=args.angle_threshold,
        kde_roi_radius=args.kde_roi,
        root_prior=args.root_prior,
        enforce_monotonic=args.monotonic,
    )
    settings.update(overrides)
    return LabelingConfig(**settings)


def read_models(args, config):
    """Read the model inputs named on the command line and build both models."""
    atlases = []
    for atlas_path in args.atlases:
        print(f"Reading atlas {atlas_path}...")
        atlases.append(read_particles(atlas_path))

    emission_stats = None
    if args.emission_stats:
        print("Setting emission probability statistics...")
        emission_stats = read_emission_statistics(args.emission_stats)

    transition_probabilities = None
    if args.transition_probabilities:
        print("Setting transition probabilities...")
        transition_probabilities = read_transition_probabilities(args.transition_probabilities)

    transition_stats = None
    if args.transition_stats:
        print("Setting transition probability statistics...")
        transition_stats = read_transition_statistics(args.transition_stats)

    return build_models(
        config,
        atlases=atlases,
        emission_statistics=emission_stats,
        transition_probabilities=transition_probabilities,
        transition_statistics=transition_stats,
    )


def build_parser():
    ap = argparse.ArgumentParser(
        description="Assign airway generation labels to airway particles (coded in the ChestType array)"
    )
    ap.add_argument("-i", "--inPart", dest="in_particles", required=True, help="Input particles file name")
    ap.add_argument("-o", "--outPart", dest="out_particles", required=True,
                    help="Output particles file name with airway generation labels")
    add_model_arguments(ap)
    add_labeling_arguments(ap)
    ap.add_argument("--workers", type=int, default=1, help="Processes used to label trees in parallel")
    ap.add_argument("--dice", action="store_true",
                    help="Print Dice scores and a confusion matrix against the input labels")
    return ap


def run(args):
    config = config_from_args(args, n_workers=args.workers)

    print("=" * 60)
    print(f"LABELING AIRWAY PARTICLES: {args.in_particles}")
    print("=" * 60)

    print("\nReading airway particles...")
    particles = read_particles(args.in_particles)
    reference_labels = particles.labels.copy()
    print(f"  Particles: {len(particles)}")

    emission, transition = read_models(args, config)

    print("\nConnecting and labeling airway particles...")
    trees, result = label_airway_particles(particles, config, emission, transition)
    print(f"  ✓ Trees: {len(trees)}")
    if result.undefined:
        print(f"  ⚠ {result.undefined} particles left UNDEFINED")

    print("\nWriting generation-labeled airway particles...")
    write_particles(particles, args.out_particles)
    print(f"  ✓ {args.out_particles}")

    if args.dice:
        print("\n" + "=" * 60)
        print(format_report(reference_labels, particles.labels))

    print("\nDONE.")
    return result


def main(argv=None):
    args = build_parser().parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.INFO, args.log_file)
    try:
        run(args)
    except AirwayLabelingError as err:
        print(f"  ✗ ERROR - {err}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
