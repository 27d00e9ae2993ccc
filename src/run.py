#!/usr/bin/env python3
"""
fMRIPrep to BrainVoyager converter.

Converts the anatomical volumes, surfaces, functional time series and
confound tables of an fMRIPrep derivatives dataset to BrainVoyager files
(VMR, SRF, VTC, MTC and SDM), one subject at a time.
"""

import logging
import sys
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

import click

from src.brainvoyager.capabilities import DEFAULT_MAX_VERTICES, default_capabilities
from src.brainvoyager.wrapper import FmriprepToBrainVoyager
from src.fmriprep.discovery import find_fmriprep_files
from src.fmriprep.planner import default_output_dir
from src.utils import get_version_info, setup_logging

try:
    __version__ = version("fmriprep2bv")
except PackageNotFoundError:
    __version__ = "0.1.0"

logger = logging.getLogger("fmriprep2bv")


def _log_version_info(version_info):
    """Log version information."""
    logger.info(f"fmriprep2bv version: {version_info['fmriprep2bv']['version']}")
    logger.info(f"Python version: {version_info['python']['version']}")
    if version_info["python"]["packages"]:
        logger.info("Python package versions:")
        for package, package_version in version_info["python"]["packages"].items():
            logger.info(f"  {package}: {package_version}")


def convert_dataset(fmriprep_dir, output_dir=None, participant_label=None, overwrite=False,
                    max_vertices=DEFAULT_MAX_VERTICES):
    """
    Convert an fMRIPrep dataset to BrainVoyager files.

    Args:
        fmriprep_dir (str): Path to the fMRIPrep derivatives directory
        output_dir (str): Path to the BrainVoyager output directory
            (default: "brainvoyager" next to fmriprep_dir)
        participant_label (list): Subjects to convert (default: all)
        overwrite (bool): Convert files whose target already exists
        max_vertices (int): Vertex budget of written surfaces

    Returns:
        bool: True if every subject was converted successfully
    """
    capabilities = default_capabilities(max_vertices).validate()
    manifests = find_fmriprep_files(fmriprep_dir, participant_label)

    if output_dir is None:
        output_dir = default_output_dir(fmriprep_dir)

    wrapper = FmriprepToBrainVoyager(output_dir, capabilities, overwrite=overwrite)
    wrapper.write_dataset_description(fmriprep_dir)
    success = wrapper.run(manifests)

    summary = wrapper.get_processing_summary()
    if summary["converted"] or summary["failure"] or summary["subjects_failure"]:
        wrapper.save_processing_summary()

    logger.info("================================")
    logger.info("Processing complete!")
    logger.info(f"Subjects processed: {summary['subjects']}")
    logger.info(f"Files converted: {summary['converted']}")
    logger.info(f"Files skipped (already converted): {summary['skipped']}")
    logger.info(f"Subjects failed: {summary['subjects_failure']}")
    logger.info("================================")
    return success


@click.command()
@click.version_option(version=__version__)
@click.argument("fmriprep_dir", type=click.Path(exists=True, file_okay=False, resolve_path=True))
@click.option(
    "--output_dir",
    "--output-dir",
    type=click.Path(file_okay=False, resolve_path=True),
    help='BrainVoyager output directory (default: "brainvoyager" next to FMRIPREP_DIR).',
)
@click.option(
    "--participant_label",
    "--participant-label",
    multiple=True,
    help='Label(s) of the participant(s) to convert, with or without "sub-" (default: all).',
)
@click.option("--overwrite", is_flag=True, help="Overwrite existing BrainVoyager files.")
@click.option(
    "--max_vertices",
    "--max-vertices",
    type=click.IntRange(min=1),
    default=DEFAULT_MAX_VERTICES,
    show_default=True,
    envvar="FMRIPREP2BV_MAX_VERTICES",
    help="Largest surface saved without mesh reduction.",
)
@click.option("--log_file", "--log-file", type=click.Path(dir_okay=False), help="Also write the log to this file.")
@click.option("--verbose", is_flag=True, help="Enable verbose output.")
def cli(fmriprep_dir, output_dir, participant_label, overwrite, max_vertices, log_file, verbose):
    """Convert fMRIPrep outputs to BrainVoyager files.

    FMRIPREP_DIR is the path to the fMRIPrep derivatives directory
    containing the sub-* folders.
    """
    setup_logging(logging.DEBUG if verbose else logging.INFO, log_file)
    _log_version_info(get_version_info())

    success = convert_dataset(
        Path(fmriprep_dir),
        Path(output_dir) if output_dir else None,
        list(participant_label),
        overwrite,
        max_vertices,
    )
    if not success:
        sys.exit(1)


def main():
    """Entry point for the CLI."""
    try:
        cli()
    except Exception as e:
        logger.error(f"Error: {str(e)}")
        sys.exit(1)


if __name__ == "__main__":
    main()
