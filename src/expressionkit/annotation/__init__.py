"""Study-level annotation lookups (PubMed -> ExperimentDescriptor)."""

from expressionkit.annotation.pubmed import (
    CachedDescriptorProvider,
    DescriptorProvider,
    PubMedDescriptorProvider,
    parse_pubmed_xml,
)

__all__ = [
    'DescriptorProvider',
    'PubMedDescriptorProvider',
    'CachedDescriptorProvider',
    'parse_pubmed_xml',
]
