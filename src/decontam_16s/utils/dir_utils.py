# ===================================== IMPORTS ====================================== #

from typing import Union
from pathlib import Path

import logging

# ========================== INITIALIZATION & CONFIGURATION ========================== #

logger = logging.getLogger('decontam_16s')

# ==================================== FUNCTIONS ===================================== #

def create_dir(dir_path: Union[str, Path]) -> None:
    dir_path = Path(dir_path)
    if not dir_path.exists():
        dir_path.mkdir(parents=True, exist_ok=True)
        logger.debug(f"Directory created: {dir_path}")


class SubDirs:
    """Output layout of one project."""

    def __init__(self, dir_path: Union[str, Path]):
        self.main = Path(dir_path)
        self.logs = self.main / 'logs'
        self.scores = self.main / 'scores'
        self.reports = self.main / 'reports'
        self.tables = self.main / 'tables'
        self.divnet = self.main / 'divnet'
        self.create_dirs()

    def create_dirs(self):
        for d in [self.main, self.logs, self.scores, self.reports, self.tables]:
            create_dir(d)

    # Artifact paths
    @property
    def scores_tsv(self) -> Path:
        return self.scores / 'contaminant_scores.tsv'

    @property
    def score_histogram_tsv(self) -> Path:
        return self.scores / 'score_histogram.tsv'

    @property
    def score_summary_yaml(self) -> Path:
        return self.scores / 'score_summary.yaml'

    @property
    def run_metadata_yaml(self) -> Path:
        return self.main / 'run_metadata.yaml'
