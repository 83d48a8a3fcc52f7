"""
Core read triage and hit-calling engine.

Modules that depend on configuration models (triage, hits, pipeline) are
imported from their own modules rather than re-exported here.
"""

from micrite.core.alignment import AlignmentRecord, AlignmentSource, SamtoolsAlignmentSource
from micrite.core.annotations import (
    MicrobialContigTable,
    OncogenicMicrobeTable,
    common_microbial_contigs,
    oncogenic_microbes,
)
from micrite.core.read_quality import is_good_quality_alignment, is_good_quality_sequence

__all__ = [
    "AlignmentRecord",
    "AlignmentSource",
    "MicrobialContigTable",
    "OncogenicMicrobeTable",
    "SamtoolsAlignmentSource",
    "common_microbial_contigs",
    "is_good_quality_alignment",
    "is_good_quality_sequence",
    "oncogenic_microbes",
]
