"""
Tests for PubMed descriptor lookup.

Network access is mocked; responses are canned efetch XML.
"""

import io
import json
import urllib.error
from unittest.mock import MagicMock, patch

import pytest

from expressionkit.annotation.pubmed import (
    CachedDescriptorProvider,
    DescriptorProvider,
    PubMedDescriptorProvider,
    parse_pubmed_xml,
)
from expressionkit.core.descriptor import ExperimentDescriptor

EFETCH_XML = """<?xml version="1.0" ?>
<PubmedArticleSet>
  <PubmedArticle>
    <MedlineCitation>
      <PMID Version="1">24926665</PMID>
      <Article>
        <Journal>
          <JournalIssue><PubDate><Year>2014</Year></PubDate></JournalIssue>
          <Title>PloS one</Title>
        </Journal>
        <ArticleTitle>RNA-Seq transcriptome profiling identifies CRISPLD2.</ArticleTitle>
        <Abstract>
          <AbstractText Label="BACKGROUND">Asthma is a chronic disease.</AbstractText>
          <AbstractText Label="RESULTS">CRISPLD2 was induced.</AbstractText>
        </Abstract>
        <AuthorList>
          <Author><LastName>Himes</LastName><Initials>BE</Initials></Author>
          <Author>
            <LastName>Lu</LastName><Initials>Q</Initials>
            <AffiliationInfo><Affiliation>University of Pennsylvania</Affiliation></AffiliationInfo>
          </Author>
        </AuthorList>
      </Article>
    </MedlineCitation>
  </PubmedArticle>
</PubmedArticleSet>
"""

URLOPEN = 'expressionkit.annotation.pubmed.urllib.request.urlopen'


def _response(payload: str) -> MagicMock:
    response = MagicMock()
    response.read.return_value = payload.encode('utf-8')
    response.__enter__.return_value = response
    return response


class TestParsePubmedXml:

    def test_fields(self):
        desc = parse_pubmed_xml(EFETCH_XML, "24926665")
        assert desc.title.startswith("RNA-Seq transcriptome")
        assert desc.pubmed_ids == ["24926665"]
        assert desc.name == "Himes BE"
        assert desc.lab == "University of Pennsylvania"
        assert desc.abstract.splitlines() == [
            "BACKGROUND: Asthma is a chronic disease.",
            "RESULTS: CRISPLD2 was induced.",
        ]
        assert desc.url == "https://pubmed.ncbi.nlm.nih.gov/24926665/"
        assert desc.other == {'authors': ['Himes BE', 'Lu Q'], 'journal': 'PloS one', 'year': '2014'}

    def test_missing_record(self):
        with pytest.raises(KeyError):
            parse_pubmed_xml("<PubmedArticleSet></PubmedArticleSet>", "1")

    def test_malformed(self):
        with pytest.raises(RuntimeError, match="malformed"):
            parse_pubmed_xml("<PubmedArticleSet>", "1")


class TestPubMedDescriptorProvider:

    def test_fetch(self):
        provider = PubMedDescriptorProvider(email="me@example.org", timeout=5)
        with patch(URLOPEN, return_value=_response(EFETCH_XML)) as urlopen:
            desc = provider.get_descriptor("24926665")
        url = urlopen.call_args[0][0]
        assert "efetch.fcgi" in url
        assert "id=24926665" in url
        assert "email=me%40example.org" in url
        assert urlopen.call_args[1]['timeout'] == 5
        assert desc.lab == "University of Pennsylvania"

    def test_non_numeric_id(self):
        with patch(URLOPEN) as urlopen:
            with pytest.raises(KeyError):
                PubMedDescriptorProvider().get_descriptor("GSE52778")
        urlopen.assert_not_called()

    def test_http_404_is_unknown_id(self):
        error = urllib.error.HTTPError("url", 404, "Not Found", {}, io.BytesIO(b""))
        with patch(URLOPEN, side_effect=error):
            with pytest.raises(KeyError):
                PubMedDescriptorProvider().get_descriptor("99999999")

    def test_http_500_is_runtime_error(self):
        error = urllib.error.HTTPError("url", 500, "Server Error", {}, io.BytesIO(b""))
        with patch(URLOPEN, side_effect=error):
            with pytest.raises(RuntimeError, match="HTTP 500"):
                PubMedDescriptorProvider().get_descriptor("24926665")

    def test_network_failure(self):
        with patch(URLOPEN, side_effect=urllib.error.URLError("no route to host")):
            with pytest.raises(RuntimeError, match="no route"):
                PubMedDescriptorProvider().get_descriptor("24926665")


class _CountingProvider(DescriptorProvider):

    def __init__(self):
        self.calls = 0

    def get_descriptor(self, identifier):
        self.calls += 1
        return ExperimentDescriptor(title=f"study {identifier}", pubmed_ids=[identifier])


class TestCachedDescriptorProvider:

    def test_second_lookup_hits_cache(self, tmp_path):
        inner = _CountingProvider()
        cached = CachedDescriptorProvider(inner, cache_file=tmp_path / "cache.json")
        first = cached.get_descriptor("123")
        second = cached.get_descriptor("123")
        assert inner.calls == 1
        assert first == second

    def test_cache_persists_across_instances(self, tmp_path):
        cache_file = tmp_path / "cache.json"
        CachedDescriptorProvider(_CountingProvider(), cache_file).get_descriptor("123")
        inner = _CountingProvider()
        desc = CachedDescriptorProvider(inner, cache_file).get_descriptor("123")
        assert inner.calls == 0
        assert desc.title == "study 123"
        assert "123" in json.loads(cache_file.read_text())

    def test_corrupted_cache_ignored(self, tmp_path, caplog):
        cache_file = tmp_path / "cache.json"
        cache_file.write_text("{not json")
        inner = _CountingProvider()
        cached = CachedDescriptorProvider(inner, cache_file)
        assert "Corrupted cache" in caplog.text
        cached.get_descriptor("7")
        assert inner.calls == 1

    def test_errors_not_cached(self, tmp_path):
        class Failing(DescriptorProvider):
            def get_descriptor(self, identifier):
                raise KeyError(identifier)

        cached = CachedDescriptorProvider(Failing(), tmp_path / "cache.json")
        with pytest.raises(KeyError):
            cached.get_descriptor("1")
        assert not (tmp_path / "cache.json").exists()
