"""
Contaminant filtering for 16S rRNA amplicon studies
----------------------------------------------------------------------------------------
Scores features for contamination against negative controls, removes contaminants
and controls, prunes low-abundance features and stages DivNet inputs.

Usage:
    python src/run.py score --config references/config.yaml
    python src/run.py apply --config references/config.yaml --threshold 0.1
"""
# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import sys
from pathlib import Path

# Local Imports
parent_dir = Path(__file__).resolve().parent
sys.path.append(str(parent_dir))

from decontam_16s.workflow import main

# =================================== MAIN WORKFLOW ================================== #

if __name__ == "__main__":
    sys.exit(main())
