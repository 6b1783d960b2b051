"""
Batch generation labeling of a folder of airway particle files.

Every ``*.vtk`` file in the input folder is labeled with the same models,
in parallel, and a summary table (one row per case) is rewritten as each
case completes.
"""
import argparse
import logging
import os
import sys
from functools import partial
from multiprocessing import Lock, Pool
from pathlib import Path

import numpy as np
import pandas as pd

from airway_generation_labeling.chest_conventions import GenerationState
from airway_generation_labeling.diagnostics import dice_scores
from airway_generation_labeling.errors import AirwayLabelingError
from airway_generation_labeling.label_airway_particles_by_generation import (
    add_labeling_arguments, add_model_arguments, config_from_args, read_models,
)
from airway_generation_labeling.logging_config import setup_logging
from airway_generation_labeling.particle_io import read_particles, write_particles
from airway_generation_labeling.pipeline import label_airway_particles


logger = logging.getLogger(__name__)

# Guards the summary file when results are written from the pool loop
summary_lock = Lock()


def process_single_case(particles_file, output_folder, config, emission_model, transition_model):
    """
    Label a single particle file - designed for parallel execution.

    Returns a summary row; a failing case is reported in the row's
    ``Status`` column and does not stop the batch.
    """
    case = Path(particles_file).stem
    output_path = os.path.join(output_folder, f"{case}_generations.vtk")

    result_dict = {
        'Case': case,
        'Status': 'Not started',
    }

    try:
        particles = read_particles(particles_file)
        reference = particles.labels.copy()
        has_reference = bool(np.any(reference != int(GenerationState.UNDEFINED)))

        trees, result = label_airway_particles(particles, config, emission_model, transition_model)
        write_particles(particles, output_path)

        result_dict.update({
            'Particles': len(particles),
            'Trees': len(trees),
            'Singleton_Trees': sum(1 for t in trees if len(t) == 1),
            'Undefined_Particles': result.undefined,
            'Mean_Dice': float(dice_scores(reference, particles.labels).mean()) if has_reference else None,
            'Output': output_path,
            'Status': 'Complete',
        })
        print(f"  ✓ {case}: {len(trees)} trees, {result.undefined} undefined")

    except (AirwayLabelingError, OSError, ValueError) as e:
        logger.exception("Case %s failed", case)
        print(f"  ✗ {case}: ERROR - {str(e)}")
        result_dict['Status'] = f'Error: {str(e)[:50]}'

    return result_dict


def update_summary_safe(results_list, summary_path):
    with summary_lock:
        pd.DataFrame(results_list).to_csv(summary_path, index=False)


def batch_label(input_folder, output_folder, config, emission_model, transition_model, processes=4):
    """
    Label every particle file in ``input_folder`` with a pool of processes.

    Returns:
    --------
    pandas.DataFrame : one summary row per case
    """
    os.makedirs(output_folder, exist_ok=True)
    summary_path = os.path.join(output_folder, "generation_labeling_summary.csv")

    particle_files = sorted(Path(input_folder).glob("*.vtk"))

    print("=" * 80)
    print("AIRWAY GENERATION LABELING BATCH")
    print(f"Found {len(particle_files)} particle files to process")
    print(f"Using {processes} parallel processes")
    print("=" * 80)

    # Pool workers cannot start pools of their own
    config = config.with_overrides(n_workers=1)

    process_func = partial(
        process_single_case,
        output_folder=output_folder,
        config=config,
        emission_model=emission_model,
        transition_model=transition_model,
    )

    results_list = []
    if processes > 1 and len(particle_files) > 1:
        with Pool(processes=processes) as pool:
            for i, result_dict in enumerate(pool.imap(process_func, particle_files), 1):
                results_list.append(result_dict)
                update_summary_safe(results_list, summary_path)
                print(f"Progress: {i}/{len(particle_files)} cases completed\n")
    else:
        for i, particles_file in enumerate(particle_files, 1):
            results_list.append(process_func(particles_file))
            update_summary_safe(results_list, summary_path)
            print(f"Progress: {i}/{len(particle_files)} cases completed\n")

    df = pd.DataFrame(results_list)
    update_summary_safe(results_list, summary_path)

    print("\n" + "=" * 80)
    print("BATCH PROCESSING COMPLETE")
    print("=" * 80)
    print(f"Total files: {len(particle_files)}")
    if len(df):
        complete = df[df['Status'] == 'Complete']
        print(f"Completed: {len(complete)}/{len(df)}")
        if 'Mean_Dice' in complete and complete['Mean_Dice'].notna().any():
            dice = complete['Mean_Dice'].dropna()
            print(f"\nMEAN DICE (n={len(dice)}):")
            print(f"  Mean: {dice.mean():.3f}")
            print(f"  Range: {dice.min():.3f} - {dice.max():.3f}")
    print(f"\nSummary: {summary_path}")
    return df


def main(argv=None):
    ap = argparse.ArgumentParser(description="Label every airway particle file in a folder by generation")
    ap.add_argument("--input-folder", required=True, help="Folder containing *.vtk particle files")
    ap.add_argument("--output-folder", required=True, help="Folder for labeled particles and the summary")
    add_model_arguments(ap)
    add_labeling_arguments(ap)
    ap.add_argument("--processes", type=int, default=4, help="Cases labeled in parallel")
    args = ap.parse_args(argv)

    setup_logging(logging.DEBUG if args.verbose else logging.WARNING, args.log_file)

    try:
        config = config_from_args(args)
        emission, transition = read_models(args, config)
    except AirwayLabelingError as err:
        print(f"ERROR - {err}", file=sys.stderr)
        return 1

    batch_label(args.input_folder, args.output_folder, config, emission, transition, processes=args.processes)
    return 0


if __name__ == "__main__":
    sys.exit(main())
