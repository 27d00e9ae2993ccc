#!/usr/bin/env python3
"""
fMRIPrep to BrainVoyager conversion wrapper

This module runs the BrainVoyager converters over the manifests of an
fMRIPrep dataset, subject by subject, skipping outputs that already exist.
"""

import json
import logging
import os
from datetime import datetime
from pathlib import Path

import numpy as np

from src.brainvoyager.converters import BrainVoyagerConverter
from src.brainvoyager.surface import brainvoyager_transform, find_reduced_outputs
from src.fmriprep.patterns import CATEGORY_DESCRIPTIONS, CONVERSION_ORDER, FileCategory
from src.fmriprep.planner import plan_outputs
from src.utils import get_version_info

logger = logging.getLogger("fmriprep2bv.wrapper")


class FmriprepToBrainVoyager:
    """Converts fMRIPrep subjects to BrainVoyager files."""

    def __init__(self, output_dir, capabilities=None, overwrite=False, converters=None):
        """
        Initialize the conversion wrapper.

        Parameters
        ----------
        output_dir : str
            Path to the BrainVoyager output directory
        capabilities : Capabilities, optional
            Validated read/write/reduce capabilities used by the default
            converters and to load surface transforms
        overwrite : bool, optional
            Convert files whose target already exists
        converters : dict, optional
            FileCategory -> callable(save_name, file_name[, trf]); defaults to
            the BrainVoyagerConverter registry
        """
        if not isinstance(overwrite, bool):
            raise TypeError("Overwrite must be a boolean.")

        self.output_dir = Path(output_dir)
        self.capabilities = capabilities
        self.overwrite = overwrite
        if converters is None:
            converters = BrainVoyagerConverter(capabilities).registry()
        self.converters = converters

        # Track processing results
        self.results = {"converted": [], "skipped": [], "failure": []}
        self.subjects = {"success": [], "failure": []}

        self.output_dir.mkdir(parents=True, exist_ok=True)

    def _target_exists(self, target, category):
        if target.is_file():
            return True
        return category == FileCategory.SURFACE and bool(find_reduced_outputs(target))

    def _remove_reduced_outputs(self, target):
        # A new conversion may be saved at a different reduction
        for stale in find_reduced_outputs(target):
            logger.info(f"  Removing previous reduced surface: {stale}")
            stale.unlink()

    def _load_transform(self, manifest):
        if manifest.transform is None:
            logger.info("  No surface-to-anatomical transform found, using identity")
            return np.eye(4)
        return brainvoyager_transform(self.capabilities.load_transform(manifest.transform))

    def _convert_category(self, manifest, plan, category):
        sources = manifest.get(category)
        targets = plan.get(category)
        if len(sources) != len(targets):
            raise ValueError(
                f"{manifest.subject}: {len(sources)} {category.name} sources but {len(targets)} targets"
            )

        if not sources:
            logger.info("  No files to convert, skipping conversion process")
            return

        convert = self.converters[category]
        trf = None
        for source, target in zip(sources, targets):
            # if file *does* exist AND do *not* overwrite, skip
            if self._target_exists(target, category) and not self.overwrite:
                logger.info(f"  Exists: {target}")
                self.results["skipped"].append(str(target))
                continue

            try:
                if category == FileCategory.SURFACE:
                    self._remove_reduced_outputs(target)
                    if trf is None:
                        trf = self._load_transform(manifest)
                    written = convert(target, source, trf)
                else:
                    written = convert(target, source)
            except Exception as e:
                logger.error(
                    f"Error converting {category.name} file for {manifest.subject}: {source}: {str(e)}"
                )
                self.results["failure"].append(str(source))
                raise

            written = Path(written) if written else target
            self.results["converted"].append(str(written))
            logger.info(f"  Converted: {source} to {written}")

    def process_subject(self, manifest, plan=None):
        """
        Convert the files of a single subject.

        Parameters
        ----------
        manifest : SubjectManifest
            Classified fMRIPrep files of the subject
        plan : TargetPlan, optional
            Targets of the subject (planned, with directories created, if
            not given)

        Raises
        ------
        Exception
            Any converter error; the remaining files of the subject are not
            converted
        """
        if plan is None:
            plan = plan_outputs(manifest, self.output_dir)

        logger.info(f"[SUBJECT]: {manifest.subject}")
        for category in CONVERSION_ORDER:
            logger.info(f"Converting {CATEGORY_DESCRIPTIONS[category]}")
            self._convert_category(manifest, plan, category)
        logger.info(f"[COMPLETED]: {manifest.subject}")

    def run(self, manifests):
        """
        Convert every subject, continuing past subjects that fail.

        Returns
        -------
        bool
            True if all subjects were converted successfully
        """
        for manifest in manifests:
            try:
                plan = plan_outputs(manifest, self.output_dir)
                self.process_subject(manifest, plan)
                self.subjects["success"].append(manifest.subject)
            except Exception as e:
                logger.error(f"Error during processing of {manifest.subject}: {str(e)}")
                self.subjects["failure"].append(manifest.subject)

        return not self.subjects["failure"]

    def get_processing_summary(self):
        """
        Get summary of processing results.

        Returns
        -------
        dict
            Dictionary with processing statistics
        """
        return {
            "subjects": len(self.subjects["success"]) + len(self.subjects["failure"]),
            "subjects_success": len(self.subjects["success"]),
            "subjects_failure": len(self.subjects["failure"]),
            "converted": len(self.results["converted"]),
            "skipped": len(self.results["skipped"]),
            "failure": len(self.results["failure"]),
            "success_list": self.subjects["success"],
            "failure_list": self.subjects["failure"],
            "converted_list": self.results["converted"],
            "skipped_list": self.results["skipped"],
            "failed_files": self.results["failure"],
        }

    def save_processing_summary(self, output_path=None):
        """
        Save processing summary to JSON file.

        Parameters
        ----------
        output_path : str, optional
            Path to save summary JSON (default: {output_dir}/processing_summary.json)

        Returns
        -------
        str
            Path to saved summary file
        """
        if output_path is None:
            output_path = os.path.join(self.output_dir, "processing_summary.json")

        summary = self.get_processing_summary()
        summary["timestamp"] = datetime.now().isoformat()
        summary["overwrite"] = self.overwrite

        with open(output_path, "w") as f:
            json.dump(summary, f, indent=2)

        logger.info(f"Processing summary saved to {output_path}")
        return output_path

    def write_dataset_description(self, fmriprep_dir=None):
        """
        Create dataset_description.json in the output directory if missing.

        Returns
        -------
        Path
            Path to the dataset description
        """
        dataset_desc = self.output_dir / "dataset_description.json"
        if dataset_desc.exists():
            return dataset_desc

        description = {
            "Name": "BrainVoyager Derivatives",
            "BIDSVersion": "1.8.0",
            "DatasetType": "derivative",
            "GeneratedBy": [
                {
                    "Name": "fmriprep2bv",
                    "Version": get_version_info()["fmriprep2bv"]["version"],
                    "Description": "Conversion of fMRIPrep outputs to BrainVoyager formats",
                }
            ],
        }
        if fmriprep_dir is not None:
            description["SourceDatasets"] = [{"URL": f"file://{Path(fmriprep_dir).absolute()}"}]

        with open(dataset_desc, "w") as f:
            json.dump(description, f, indent=2)
        logger.info(f"Created {dataset_desc}")
        return dataset_desc
