"""Tests for Markdown conversion."""

from datetime import datetime, timezone

import pytest

from snipdown.conversion import DocumentConverter
from snipdown.conversion.engine import Rule, RuleEngine, strip_control_characters
from snipdown.errors import ConversionError
from snipdown.models.document import DocumentRecord, MathInfo
from snipdown.models.options import ConversionOptions, TableFormatting

BASE = "https://ex.com/post/"


def convert(content: str, **options) -> str:
    record = DocumentRecord(content=content, base_uri=BASE, page_title="My Page", title="My Page")
    return DocumentConverter().convert(record, ConversionOptions(**options)).text


class TestRuleEngine:
    """Tests for the rule registry."""

    def test_custom_rule_wins_over_builtin(self):
        """Test that a registered rule replaces the built-in conversion."""
        engine = RuleEngine()
        engine.add_rule(Rule("loud", lambda node: node.name == "em", lambda content, node: content.upper()))
        assert engine.convert("<p>say <em>hi</em></p>") == "say HI"

    def test_last_added_rule_wins(self):
        """Test precedence between overlapping rules."""
        engine = RuleEngine()
        engine.add_rule(Rule("first", lambda node: node.name == "b", lambda content, node: "first"))
        engine.add_rule(Rule("second", lambda node: node.name == "b", lambda content, node: "second"))
        assert engine.convert("<b>x</b>") == "second"

    def test_kept_tags_emitted_as_html(self):
        """Test that kept tags pass through unchanged."""
        engine = RuleEngine().keep("sub")
        assert engine.convert("<p>H<sub>2</sub>O</p>") == "H<sub>2</sub>O"

    def test_escape_switch(self):
        """Test that escaping can be turned off per engine."""
        assert RuleEngine(escape=True).convert("<p>snake_case</p>") == "snake\\_case"
        assert RuleEngine(escape=False).convert("<p>snake_case</p>") == "snake_case"

    def test_remove_rule(self):
        """Test that a removed rule no longer applies."""
        engine = RuleEngine()
        engine.add_rule(Rule("drop", lambda node: node.name == "b", lambda content, node: ""))
        engine.remove_rule("drop")
        assert engine.convert("<b>kept</b>") == "**kept**"

    def test_strip_control_characters(self):
        """Test removal of zero-width and control characters."""
        assert strip_control_characters("a\u200bb\u0007c\ufeff") == "abc"


class TestMarkdownInline:
    """Tests for inline Markdown output."""

    def test_emphasis_delimiters(self):
        """Test the configured em and strong delimiters."""
        text = convert("<p><em>a</em> <strong>b</strong></p>", em_delimiter="*", strong_delimiter="__")
        assert text == "*a* __b__"

    def test_mark_as_code(self):
        """Test that highlighted text becomes inline code."""
        assert convert("<p><mark>hot</mark></p>") == "`hot`"

    def test_relative_link_resolved(self):
        """Test that links resolve against the base URI."""
        assert convert('<p><a href="/about">About</a></p>') == "[About](https://ex.com/about)"

    def test_link_title(self):
        """Test that a link title is kept."""
        assert convert('<p><a href="https://x.com" title="X">x</a></p>') == '[x](https://x.com "X")'

    def test_strip_links(self):
        """Test that strip_links keeps only the text."""
        assert convert('<p><a href="https://x.com">x</a></p>', link_style="strip_links") == "x"

    def test_referenced_links(self):
        """Test full reference-style links with definitions after the body."""
        text = convert('<p><a href="https://x.com">x</a></p>', link_style="referenced")
        assert text.startswith("[x][1]")
        assert "[1]: https://x.com" in text

    def test_collapsed_references(self):
        """Test collapsed reference-style links."""
        text = convert(
            '<p><a href="https://x.com">x</a></p>', link_style="referenced", link_reference_style="collapsed"
        )
        assert text.startswith("[x][]")
        assert "[x]: https://x.com" in text

    def test_heading_anchor_unwrapped(self):
        """Test that a link wrapping a heading renders the heading only."""
        text = convert('<a href="#top"><h2>Section</h2></a>')
        assert "## Section" in text
        assert "#top" not in text

    def test_inline_math(self):
        """Test that tagged math renders as TeX."""
        record = DocumentRecord(
            content='<p>Area <span id="m1">ignored</span></p>',
            math={"m1": MathInfo(tex="\\pi r^2", inline=True)},
        )
        assert "$\\pi r^2$" in DocumentConverter().convert(record, ConversionOptions()).text

    def test_display_math(self):
        """Test display math delimiters."""
        record = DocumentRecord(content='<div id="m1">x</div>', math={"m1": MathInfo(tex="E=mc^2", inline=False)})
        assert DocumentConverter().convert(record, ConversionOptions()).text == "$$\nE=mc^2\n$$"


class TestMarkdownBlocks:
    """Tests for block-level Markdown output."""

    def test_atx_heading(self):
        """Test ATX headings."""
        assert convert("<h2>Title</h2>") == "## Title"

    def test_setext_heading(self):
        """Test setext headings."""
        assert convert("<h1>Title</h1>", heading_style="setext").startswith("Title\n=====")

    def test_horizontal_rule(self):
        """Test the configured horizontal rule."""
        assert convert("<p>a</p><hr><p>b</p>", hr="***") == "a\n\n***\n\nb"

    def test_bullet_marker(self):
        """Test the configured bullet marker."""
        assert convert("<ul><li>one</li></ul>", bullet_list_marker="*").startswith("* one")

    def test_fenced_code_block(self):
        """Test fenced code with its declared language."""
        text = convert('<pre><code class="language-python">print(1)</code></pre>')
        assert text == "```python\nprint(1)\n```"

    def test_tilde_fence(self):
        """Test the tilde fence option."""
        text = convert('<pre><code class="language-sh">ls</code></pre>', fence="~~~")
        assert text == "~~~sh\nls\n~~~"

    def test_fence_longer_than_content(self):
        """Test that the fence outgrows backtick runs inside the code."""
        text = convert('<pre><code class="language-md">```\nx\n```</code></pre>')
        assert text.startswith("````md\n")
        assert text.endswith("\n````")

    def test_indented_code_block(self):
        """Test indented code blocks."""
        text = convert('<pre><code class="language-c">a;\nb;</code></pre>', code_block_style="indented")
        assert text == "    a;\n    b;"

    def test_plain_pre_kept_as_code(self):
        """Test that a pre without code becomes a fenced block."""
        assert convert("<pre>raw  text</pre>") == "```\nraw  text\n```"

    def test_kept_tags(self):
        """Test that sub and sup pass through as HTML."""
        assert convert("<p>x<sup>2</sup></p>") == "x<sup>2</sup>"


class TestMarkdownImages:
    """Tests for image output."""

    def test_image_resolved(self):
        """Test that image sources resolve against the base URI."""
        assert convert('<p><img src="pic.png" alt="A"></p>') == "![A](https://ex.com/post/pic.png)"

    def test_image_without_src_dropped(self):
        """Test that an image without a source is dropped."""
        assert convert('<p>a<img alt="x"></p>') == "a"

    def test_no_image_style(self):
        """Test that the no_image style removes images."""
        assert convert('<p>a<img src="pic.png"></p>', image_style="no_image") == "a"

    def test_downloaded_image_points_to_local_file(self):
        """Test that downloaded images reference the encoded local path."""
        record = DocumentRecord(content='<p><img src="pic.png" alt="A"></p>', base_uri=BASE, page_title="My Page")
        result = DocumentConverter().convert(record, ConversionOptions(download_images=True))
        assert result.text == "![A](My%20Page/pic.png)"
        assert result.manifest == {"https://ex.com/post/pic.png": "My Page/pic.png"}

    def test_obsidian_style(self):
        """Test Obsidian embeds."""
        record = DocumentRecord(content='<p><img src="pic.png"></p>', base_uri=BASE, page_title="My Page")
        options = ConversionOptions(download_images=True, image_style="obsidian")
        assert DocumentConverter().convert(record, options).text == "![[My Page/pic.png]]"

    def test_obsidian_nofolder_style(self):
        """Test Obsidian embeds without the folder."""
        record = DocumentRecord(content='<p><img src="pic.png"></p>', base_uri=BASE, page_title="My Page")
        options = ConversionOptions(download_images=True, image_style="obsidian_nofolder")
        assert DocumentConverter().convert(record, options).text == "![[pic.png]]"

    def test_duplicate_names_disambiguated(self):
        """Test that two images with the same name get distinct files."""
        record = DocumentRecord(
            content='<p><img src="https://a.com/x.png"><img src="https://b.com/x.png"></p>',
            page_title="T",
        )
        result = DocumentConverter().convert(record, ConversionOptions(download_images=True))
        assert sorted(result.manifest.values()) == ["T/x.1.png", "T/x.png"]

    def test_referenced_images(self):
        """Test reference-style images."""
        text = convert('<p><img src="pic.png" alt="A"></p>', image_ref_style="referenced")
        assert text.startswith("![A][fig1]")
        assert "[fig1]: https://ex.com/post/pic.png" in text


class TestMarkdownTables:
    """Tests for tables inside documents."""

    def test_table_in_document(self):
        """Test that tables render as aligned pipe tables."""
        text = convert("<table><tr><th>Name</th><th>Age</th></tr><tr><td>Bob</td><td>42</td></tr></table>")
        assert text == "| Name | Age |\n|------|-----|\n| Bob  | 42  |"

    def test_links_stripped_in_cells(self):
        """Test that cell links keep only their text by default."""
        text = convert('<table><tr><th><a href="https://x.com">x</a></th></tr></table>')
        assert "https://x.com" not in text

    def test_links_kept_in_cells(self):
        """Test that cell links can be kept."""
        text = convert(
            '<table><tr><th><a href="https://x.com">x</a></th></tr></table>',
            table_formatting=TableFormatting(strip_links=False),
        )
        assert "[x](https://x.com)" in text

    def test_formatting_stripped_in_cells(self):
        """Test that strip_formatting flattens bold text in cells."""
        text = convert(
            "<table><tr><th><b>bold</b></th></tr></table>",
            table_formatting=TableFormatting(strip_formatting=True),
        )
        assert "**" not in text
        assert "bold" in text

    def test_cell_line_breaks(self):
        """Test that line breaks inside cells become br tags."""
        assert "a<br>b" in convert("<table><tr><td>a<br>b</td></tr></table>")

    def test_failed_table_keeps_inline_markup(self, monkeypatch):
        """Test that a table the reconstructor cannot handle still converts its links and emphasis."""

        def explode(self, table):
            raise ValueError("bad table")

        monkeypatch.setattr("snipdown.conversion.tables.TableReconstructor.render", explode)
        text = convert(
            '<table><tr><th>Name</th></tr><tr><td><a href="https://x.com">x</a> <b>bold</b></td></tr></table>',
            table_formatting=TableFormatting(strip_links=False),
        )
        assert "| Name |" in text
        assert "[x](https://x.com)" in text
        assert "**bold**" in text


class TestDocumentTemplates:
    """Tests for front and back matter."""

    def test_templates_wrap_body(self):
        """Test that front and back matter surround the body."""
        text = convert(
            "<p>Body</p>",
            include_template=True,
            frontmatter="---\ntitle: {pageTitle}\n---",
            backmatter="END",
        )
        assert text == "---\ntitle: My Page\n---\nBody\nEND"

    def test_templates_off(self):
        """Test that templates are ignored unless enabled."""
        assert convert("<p>Body</p>", frontmatter="FRONT") == "Body"

    def test_result_metadata(self):
        """Test title, extension and record on the result."""
        record = DocumentRecord(content="<p>x</p>", page_title="A: B")
        result = DocumentConverter(now=datetime(2024, 1, 1, tzinfo=timezone.utc)).convert(record, ConversionOptions())
        assert result.title == "A B"
        assert result.file_extension == ".md"
        assert result.record is record

    def test_payload_round_trip(self):
        """Test that a result survives the message payload form."""
        record = DocumentRecord(content="<p>x</p>", page_title="T", keywords=("a",))
        result = DocumentConverter().convert(record, ConversionOptions(output_format="org"))
        restored = type(result).from_payload(result.to_payload())
        assert restored.text == result.text
        assert restored.output_format == result.output_format
        assert restored.record == record

    def test_engine_failure_wrapped(self, monkeypatch):
        """Test that an unexpected engine failure becomes a ConversionError."""

        def explode(ctx):
            raise RuntimeError("boom")

        monkeypatch.setattr("snipdown.conversion.converter.build_markdown_engine", explode)
        with pytest.raises(ConversionError):
            DocumentConverter().convert(DocumentRecord(content="<p>x</p>"), ConversionOptions())
