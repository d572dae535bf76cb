import re
from pathlib import Path

# ==================================================================================== #
# PROGRESS BAR
# ==================================================================================== #
# See supported colors at: https://www.w3schools.com/colors/colors_x11.asp

# Total character width of the progress bar text
DEFAULT_PROGRESS_TEXT_N: int = 65
DEFAULT_N: int = 65
# Color of the progress bar description text
DEFAULT_DESCRIPTION_STYLE: str = "white"
# Width of the progress bar
DEFAULT_BAR_WIDTH: int = 40
# Color of the filled/complete portion of the progress bar
DEFAULT_BAR_COLUMN_COMPLETE_STYLE: str = "honeydew2"
# Color used when the progress bar is finished
DEFAULT_FINISHED_STYLE: str = "dark_cyan"
# Color of the percentage complete text (e.g., "85%")
DEFAULT_PROGRESS_PERCENTAGE_STYLE: str = "honeydew2"
# Color of the "X of Y complete" text (e.g., "42 of 65")
DEFAULT_M_OF_N_COMPLETE_STYLE: str = "honeydew2"
# Color of the time elapsed display (e.g., "E: 00:01:25")
DEFAULT_TIME_ELAPSED_STYLE: str = "light_sky_blue1"

# ==================================================================================== #
# SETTINGS
# ==================================================================================== #
# Go up two levels
DEFAULT_CONFIG = Path(__file__).resolve().parents[2] / "references" / "config.yaml"
DEFAULT_PROJECT_DIR = "./decontam_project"

# ==================================================================================== #
# TAXONOMY
# ==================================================================================== #
TAXONOMY_DELIMITER: str = ";"
TAXONOMIC_RANKS = ["Kingdom", "Phylum", "Class", "Order", "Family", "Genus"]
N_TAXONOMIC_RANKS: int = len(TAXONOMIC_RANKS)

# Classifier bootstrap confidences appended to each rank, e.g. "Firmicutes(98)"
CONFIDENCE_VALUES = tuple(f"({i})" for i in range(100, 50, -1))
# Leftover parentheticals after the known confidences have been stripped
PARENTHETICAL_PATTERN = re.compile(r"\(|\)")

# ==================================================================================== #
# METADATA
# ==================================================================================== #
DEFAULT_SAMPLE_ID_COLUMN = '#sampleid'
DEFAULT_BATCH_COLUMN = 'batch'
DEFAULT_SAMPLE_TYPE_COLUMN = 'sample_type'
DEFAULT_CONTROL_COLUMN = 'is_control'
DEFAULT_CONTROL_TYPES = ['negative_control', 'control', 'blank']
DEFAULT_CONCENTRATION_COLUMN = None
# Batch assigned to every sample when no batch column is available
DEFAULT_SINGLE_BATCH = 'all'

TRUE_STRINGS = frozenset(['true', 't', 'yes', 'y', '1'])
FALSE_STRINGS = frozenset(['false', 'f', 'no', 'n', '0', ''])

# ==================================================================================== #
# FEATURE TABLE
# ==================================================================================== #
ORIENTATIONS = ('auto', 'features_x_samples', 'samples_x_features')
DEFAULT_ORIENTATION = 'auto'
DELIMITERS = {'.tsv': '\t', '.txt': '\t', '.csv': ','}

# ==================================================================================== #
# CONTAMINANT CLASSIFICATION
# ==================================================================================== #
CLASSIFIER_MODES = ('prevalence', 'frequency')
DEFAULT_CLASSIFIER_MODE = 'prevalence'
PREVALENCE_TESTS = ('chisq', 'fisher')
DEFAULT_PREVALENCE_TEST = 'chisq'
DEFAULT_THRESHOLD: float = 0.1
DEFAULT_CHUNK_SIZE: int = 500
DEFAULT_MAX_WORKERS: int = 1
DEFAULT_HISTOGRAM_BINS: int = 20

# Reasons a batch cannot contribute a statistic for a feature
REASON_TOO_FEW_SAMPLES = 'too_few_samples'
REASON_NO_CONTROLS = 'no_controls'
REASON_NO_TRUE_SAMPLES = 'no_true_samples'
REASON_NO_CONCENTRATION = 'no_concentration'
REASON_UNINFORMATIVE = 'uninformative'

THRESHOLD_SOURCES = ('manual', 'config', 'valley', 'default')

# ==================================================================================== #
# LOW-ABUNDANCE PRUNING
# ==================================================================================== #
DEFAULT_MIN_COUNT: int = 10  # Keep features with total > 9 reads
DEFAULT_DEPTH_BINS: int = 10

# ==================================================================================== #
# DIVNET EXPORT
# ==================================================================================== #
DEFAULT_DIVNET_SEED: int = 0
DIVNET_PLACEHOLDERS = {
    'count_table': 'replace_me_with_counttable',
    'sample_data': 'replace_me_with_samdata',
    'output': 'replace_me_with_this_directory',
    'random_seed': 'replace_me_with_random',
}
DEFAULT_DIVNET_CONFIG_TEMPLATE = """\
[model]
em_iter = 6
em_burn = 3
mc_iter = 500
mc_burn = 250
stepsize = 0.01
perturbation = 0.05
replicates = 5
base_taxa = 0

[io]
count_table = "replace_me_with_counttable"
sample_data = "replace_me_with_samdata"
output = "replace_me_with_this_directory"

[misc]
random_seed = replace_me_with_random
"""
