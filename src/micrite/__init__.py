"""
micrite: screen sequencing alignments for microbial reads.

Triages reads from a BAM file for quality, classifies candidate reads with
Kraken2 and calls reportable microbial hits, optionally restricted to a
curated list of oncogenic microbes.
"""

__version__ = "0.1.0"

from micrite.core.annotations import common_microbial_contigs, oncogenic_microbes
from micrite.core.hits import HitCaller
from micrite.core.pipeline import screen_bam
from micrite.core.read_quality import is_good_quality_alignment, is_good_quality_sequence
from micrite.core.triage import TriageScanner

__all__ = [
    "HitCaller",
    "TriageScanner",
    "__version__",
    "common_microbial_contigs",
    "is_good_quality_alignment",
    "is_good_quality_sequence",
    "oncogenic_microbes",
    "screen_bam",
]
