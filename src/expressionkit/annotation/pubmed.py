"""
Literature lookup: PubMed records as ExperimentDescriptors.

Given a PubMed identifier, fetch the article record from NCBI E-utilities and
turn it into an ExperimentDescriptor (title, abstract, authors, journal) that
can be attached to a container.

Design Principles:
    - Abstract interface: other sources (GEO series, local JSON) plug in
    - Caching: repeated lookups of the same id hit a JSON file, not NCBI
    - Fail loudly: unknown ids raise KeyError, network failures RuntimeError

Examples:
    >>> from expressionkit.annotation.pubmed import PubMedDescriptorProvider
    >>> provider = PubMedDescriptorProvider(email="me@example.org")
    >>> desc = provider.get_descriptor("24926665")
    >>> desc.title
    'RNA-Seq transcriptome profiling identifies CRISPLD2 as a glucocorticoid ...'
    >>> se.attach_descriptor(desc)
"""

from __future__ import annotations

import json
import logging
import urllib.error
import urllib.parse
import urllib.request
import xml.etree.ElementTree as ET
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

from expressionkit.core.descriptor import ExperimentDescriptor
from expressionkit.utils.fileio import atomic_write_json

logger = logging.getLogger(__name__)

__all__ = [
    'DescriptorProvider',
    'PubMedDescriptorProvider',
    'CachedDescriptorProvider',
    'parse_pubmed_xml',
]

EFETCH_URL = "https://eutils.ncbi.nlm.nih.gov/entrez/eutils/efetch.fcgi"
PUBMED_ARTICLE_URL = "https://pubmed.ncbi.nlm.nih.gov/{pmid}/"


class DescriptorProvider(ABC):
    """Interface for services that turn an identifier into a descriptor."""

    @abstractmethod
    def get_descriptor(self, identifier: str) -> ExperimentDescriptor:
        """
        Look up ``identifier``.

        Raises:
            KeyError: Identifier unknown to the service
            RuntimeError: Service unreachable or returned garbage
        """


def _text(node: Optional[ET.Element]) -> str:
    return "".join(node.itertext()).strip() if node is not None else ""


def parse_pubmed_xml(payload: str, pmid: str) -> ExperimentDescriptor:
    """
    Convert an efetch PubmedArticleSet document into a descriptor.

    The last author's affiliation is used as ``lab``; the first author's name
    as ``name``. Authors, journal and publication year go in ``other``.

    Raises:
        KeyError: The document holds no article for ``pmid``
        RuntimeError: The document is not valid XML
    """
    try:
        root = ET.fromstring(payload)
    except ET.ParseError as e:
        raise RuntimeError(f"PubMed returned malformed XML for {pmid}: {e}") from e

    article = None
    for candidate in root.iter('PubmedArticle'):
        if _text(candidate.find('./MedlineCitation/PMID')) == pmid:
            article = candidate
            break
    if article is None:
        raise KeyError(f"PubMed has no record for {pmid}")

    citation = article.find('./MedlineCitation/Article')
    title = _text(citation.find('ArticleTitle')) if citation is not None else ""

    abstract_parts = []
    for part in article.iter('AbstractText'):
        label = part.get('Label')
        text = _text(part)
        abstract_parts.append(f"{label}: {text}" if label else text)

    authors: List[str] = []
    affiliations: List[str] = []
    for author in article.iter('Author'):
        last = _text(author.find('LastName'))
        initials = _text(author.find('Initials'))
        collective = _text(author.find('CollectiveName'))
        authors.append(f"{last} {initials}".strip() or collective)
        affiliations.append(_text(author.find('./AffiliationInfo/Affiliation')))

    journal = _text(article.find('./MedlineCitation/Article/Journal/Title'))
    year = _text(article.find('./MedlineCitation/Article/Journal/JournalIssue/PubDate/Year'))

    return ExperimentDescriptor(
        title=title,
        pubmed_ids=[pmid],
        lab=affiliations[-1] if affiliations else "",
        abstract="\n".join(abstract_parts),
        name=authors[0] if authors else "",
        url=PUBMED_ARTICLE_URL.format(pmid=pmid),
        other={'authors': authors, 'journal': journal, 'year': year},
    )


class PubMedDescriptorProvider(DescriptorProvider):
    """
    Fetch PubMed records through NCBI E-utilities (efetch, XML).

    Args:
        email: Contact address NCBI asks clients to send
        api_key: Optional NCBI API key (raises the rate limit)
        timeout: Request timeout in seconds
    """

    def __init__(
        self,
        email: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
    ):
        self.email = email
        self.api_key = api_key
        self.timeout = timeout

    def _url(self, pmid: str) -> str:
        params = {'db': 'pubmed', 'id': pmid, 'rettype': 'abstract', 'retmode': 'xml'}
        if self.email:
            params['email'] = self.email
        if self.api_key:
            params['api_key'] = self.api_key
        return f"{EFETCH_URL}?{urllib.parse.urlencode(params)}"

    def get_descriptor(self, identifier: str) -> ExperimentDescriptor:
        pmid = str(identifier).strip()
        if not pmid.isdigit():
            raise KeyError(f"Not a PubMed identifier: {identifier!r}")

        url = self._url(pmid)
        logger.info(f"Fetching PubMed record {pmid}")
        try:
            with urllib.request.urlopen(url, timeout=self.timeout) as response:
                payload = response.read().decode('utf-8')
        except urllib.error.HTTPError as e:
            if e.code in (400, 404):
                raise KeyError(f"PubMed has no record for {pmid}") from e
            raise RuntimeError(f"PubMed request for {pmid} failed: HTTP {e.code}") from e
        except urllib.error.URLError as e:
            raise RuntimeError(f"PubMed request for {pmid} failed: {e.reason}") from e

        return parse_pubmed_xml(payload, pmid)


class CachedDescriptorProvider(DescriptorProvider):
    """
    Wrapper that caches descriptor lookups in a JSON file.

    Args:
        provider: Underlying provider
        cache_file: JSON cache path (default ~/.cache/expressionkit/descriptors.json)

    Examples:
        >>> cached = CachedDescriptorProvider(PubMedDescriptorProvider())
        >>> cached.get_descriptor("24926665")   # network
        >>> cached.get_descriptor("24926665")   # cache
    """

    def __init__(self, provider: DescriptorProvider, cache_file: Optional[Path] = None):
        self.provider = provider
        self.cache_file = Path(cache_file) if cache_file else (
            Path.home() / '.cache' / 'expressionkit' / 'descriptors.json'
        )
        self.cache_file.parent.mkdir(parents=True, exist_ok=True)

        self._cache: Dict[str, Dict[str, Any]] = {}
        if self.cache_file.exists():
            try:
                with open(self.cache_file, 'r') as f:
                    raw = json.load(f)
                if not isinstance(raw, dict):
                    raise ValueError("cache root is not an object")
                self._cache = raw
            except (json.JSONDecodeError, ValueError) as e:
                logger.warning(f"Corrupted cache file {self.cache_file}, ignoring: {e}")
                self._cache = {}

    def get_descriptor(self, identifier: str) -> ExperimentDescriptor:
        key = str(identifier).strip()
        if key in self._cache:
            logger.debug(f"Descriptor cache hit for {key}")
        else:
            self._cache[key] = self.provider.get_descriptor(key).to_dict()
            atomic_write_json(self.cache_file, self._cache)
        return ExperimentDescriptor.from_dict(self._cache[key])
