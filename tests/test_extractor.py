"""Tests for article extraction."""

from unittest.mock import MagicMock

import pytest

from snipdown.conversion import ArticleExtractor, SimplifiedArticle
from snipdown.errors import InputError
from snipdown.models.options import ConversionOptions


@pytest.fixture
def simplifier():
    """Simplifier returning a fixed article."""
    fake = MagicMock()
    fake.simplify.return_value = SimplifiedArticle(content="<p>Body</p>", title="Article", byline="Ada")
    return fake


def simplified_html(simplifier) -> str:
    return simplifier.simplify.call_args[0][0]


class TestArticleExtractor:
    """Tests for ArticleExtractor.extract."""

    def test_record_from_article(self, simplifier):
        """Test that the simplified article fills the record."""
        extractor = ArticleExtractor(simplifier)
        record = extractor.extract("<html><head><title>Page</title></head><body>x</body></html>", ConversionOptions())
        assert record.content == "<p>Body</p>"
        assert record.title == "Article"
        assert record.byline == "Ada"
        assert record.page_title == "Page"

    def test_empty_dom_rejected(self, simplifier):
        """Test that an empty capture raises InputError."""
        with pytest.raises(InputError):
            ArticleExtractor(simplifier).extract("   ", ConversionOptions())

    def test_nothing_extracted(self, simplifier):
        """Test that a failed simplification yields an empty body and the page title."""
        simplifier.simplify.return_value = None
        record = ArticleExtractor(simplifier).extract("<title>Page</title><p>x</p>", ConversionOptions())
        assert record.content == ""
        assert record.title == "Page"

    def test_url_parts(self, simplifier):
        """Test that URL components are split out of the base URI."""
        record = ArticleExtractor(simplifier).extract(
            "<p>x</p>", ConversionOptions(), url="https://ex.com:8080/a/b?x=1#frag"
        )
        assert record.base_uri == "https://ex.com:8080/a/b?x=1#frag"
        assert record.protocol == "https:"
        assert record.host == "ex.com:8080"
        assert record.hostname == "ex.com"
        assert record.port == "8080"
        assert record.origin == "https://ex.com:8080"
        assert record.pathname == "/a/b"
        assert record.search == "?x=1"
        assert record.hash == "#frag"

    def test_base_element_wins(self, simplifier):
        """Test that a <base href> overrides the page URL."""
        record = ArticleExtractor(simplifier).extract(
            '<head><base href="/docs/"></head><p>x</p>', ConversionOptions(), url="https://ex.com/a"
        )
        assert record.base_uri == "https://ex.com/docs/"
        assert simplifier.simplify.call_args[0][1] == "https://ex.com/docs/"

    def test_keywords_and_meta(self, simplifier):
        """Test keyword splitting and meta harvesting."""
        dom = (
            '<head><meta name="keywords" content="a, b,,c">'
            '<meta property="og:site_name" content="Example">'
            '<meta name="title" content="shadowed"></head><p>x</p>'
        )
        record = ArticleExtractor(simplifier).extract(dom, ConversionOptions())
        assert record.keywords == ("a", "b", "c")
        assert record.meta == {"og:site_name": "Example"}


class TestDomPreparation:
    """Tests for the DOM rewrites applied before simplification."""

    def test_mathjax_scripts_tagged(self, simplifier):
        """Test that MathJax scripts are recorded with their display mode."""
        dom = (
            '<p><script type="math/tex" id="MathJax-Element-1">x^2</script></p>'
            '<script type="math/tex; mode=display" id="MathJax-Element-2">E=mc^2</script>'
        )
        record = ArticleExtractor(simplifier).extract(dom, ConversionOptions())
        found = sorted((info.tex, info.inline) for info in record.math.values())
        assert found == [("E=mc^2", False), ("x^2", True)]
        for element_id in record.math:
            assert element_id in simplified_html(simplifier)

    def test_latex_marker_replaced(self, simplifier):
        """Test that marked elements become placeholders carrying the TeX."""
        dom = '<p>Area <span snipdown-latex="\\pi r^2">rendered</span></p>'
        record = ArticleExtractor(simplifier).extract(dom, ConversionOptions())
        [(element_id, info)] = list(record.math.items())
        assert info.tex == "\\pi r^2"
        assert info.inline is True
        html = simplified_html(simplifier)
        assert f'<i id="{element_id}">' in html
        assert "rendered" not in html

    def test_katex_rendering_dropped(self, simplifier):
        """Test that KaTeX keeps the annotation and drops the visual copy."""
        dom = (
            '<span class="katex"><span class="katex-mathml"><math><semantics>'
            '<annotation encoding="application/x-tex">a+b</annotation>'
            '</semantics></math></span><span class="katex-html">VISUAL</span></span>'
        )
        record = ArticleExtractor(simplifier).extract(dom, ConversionOptions())
        assert [info.tex for info in record.math.values()] == ["a+b"]
        assert "VISUAL" not in simplified_html(simplifier)

    def test_code_normalized(self, simplifier):
        """Test that highlighted code is flattened to text with its language kept."""
        dom = '<pre><code class="language-python"><span class="k">print</span>(1)</code></pre>'
        ArticleExtractor(simplifier).extract(dom, ConversionOptions())
        html = simplified_html(simplifier)
        assert "<span" not in html
        assert "print(1)" in html
        assert 'id="code-lang-python"' in html

    def test_code_kept_when_preserving(self, simplifier):
        """Test that code markup survives with preserve_code_formatting."""
        dom = '<pre><code class="language-python"><span class="k">print</span>(1)</code></pre>'
        ArticleExtractor(simplifier).extract(dom, ConversionOptions(preserve_code_formatting=True))
        assert '<span class="k">print</span>' in simplified_html(simplifier)

    def test_preformatted_breaks_kept(self, simplifier):
        """Test that line breaks in preformatted text survive simplification."""
        ArticleExtractor(simplifier).extract("<pre>a<br>b</pre>", ConversionOptions())
        assert "<snip-br></snip-br>" in simplified_html(simplifier)

    def test_heading_anchor_unwrapped(self, simplifier):
        """Test that anchors wrapping a single heading are removed."""
        ArticleExtractor(simplifier).extract('<a href="#x"><h2 class="c">Title</h2></a>', ConversionOptions())
        html = simplified_html(simplifier)
        assert "<h2>Title</h2>" in html
        assert 'href="#x"' not in html
