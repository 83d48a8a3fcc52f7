"""
Default thresholds and fixed formats used across micrite.

Quality defaults are those used for production screening of short-read
human whole-genome BAMs. All of them can be overridden through
ReadQualityConfig and HitThresholds.
"""

from __future__ import annotations

# =============================================================================
# Read quality triage
# =============================================================================

DEFAULT_MIN_LENGTH = 50
DEFAULT_MIN_PHRED = 17.0
DEFAULT_MAX_N = 2
DEFAULT_MIN_MAPQ = 10
DEFAULT_MIN_ALIGNMENT_SCORE = 130

AMBIGUOUS_BASE = "N"

# SAM flag bits
FLAG_UNMAPPED = 0x4
FLAG_SECONDARY = 0x100
FLAG_QC_FAILED = 0x200
FLAG_DUPLICATE = 0x400

# Offset between SAM QUAL characters and phred scores
PHRED_OFFSET = 33

# Per-base value htslib stores when QUAL is "*"
MISSING_QUALITY = 0xFF

# Region name samtools uses for reads without a reference
UNMAPPED_REGION = "*"

# =============================================================================
# Hit calling
# =============================================================================

DEFAULT_MIN_READS = 50
DEFAULT_MIN_PERCENT = 0.01

KREPORT_COLUMNS = 6

HIT_TABLE_COLUMNS = (
    "taxid",
    "rank",
    "name",
    "clade_percent_classified",
    "clade_nreads_classified",
    "oncogenic",
)

# =============================================================================
# Kraken2 / Deacon
# =============================================================================

DEFAULT_KRAKEN_THREADS = 8
DEFAULT_KRAKEN_CONFIDENCE = 0.01
DEFAULT_DEACON_RELATIVE_THRESHOLD = 0.01
DEFAULT_DEACON_ABSOLUTE_THRESHOLD = 2

# =============================================================================
# Output file naming
# =============================================================================

FASTA_SUFFIX = ".fasta"
SUMMARY_SUFFIX = ".bam_summary.txt"
KREPORT_SUFFIX = ".kreport"
KOUT_SUFFIX = ".kout.tsv"
HITS_SUFFIX = ".krakenhits.csv"
HOST_DEPLETED_SUFFIX = ".nonhost.fasta"
