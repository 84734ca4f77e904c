"""Tests for file name and URI helpers."""

from snipdown.models.options import ConversionOptions
from snipdown.naming import (
    PLACEHOLDER_EXTENSION,
    clean_attribute,
    encode_uri,
    extension_for_mime,
    generate_valid_filename,
    get_image_filename,
    mime_for_filename,
    validate_uri,
)


class TestGenerateValidFilename:
    """Tests for generate_valid_filename."""

    def test_strips_illegal_characters(self):
        """Test that path and shell characters are removed."""
        assert generate_valid_filename('a/b\\c:d*e?f"g<h>i|j') == "abcdefghij"

    def test_replaces_non_breaking_space(self):
        """Test that NBSP becomes a regular space."""
        assert generate_valid_filename("Hello\u00a0World") == "Hello World"

    def test_removes_disallowed_characters(self):
        """Test that extra disallowed characters are removed."""
        assert generate_valid_filename("[Draft] #1 ^up", "[]#^") == "Draft 1 up"

    def test_falsy_input_returned_unchanged(self):
        """Test that empty and None inputs pass through."""
        assert generate_valid_filename("") == ""
        assert generate_valid_filename(None) is None


class TestCleanAttribute:
    """Tests for clean_attribute."""

    def test_collapses_newline_runs(self):
        """Test that whitespace runs containing newlines collapse to one newline."""
        assert clean_attribute("a\n   \n\n  b") == "a\nb"

    def test_missing_value(self):
        """Test that None becomes the empty string."""
        assert clean_attribute(None) == ""


class TestValidateUri:
    """Tests for validate_uri."""

    def test_absolute_uri_unchanged(self):
        """Test that absolute URIs are returned as-is."""
        assert validate_uri("https://other.com/x", "https://a.com/b") == "https://other.com/x"

    def test_root_relative(self):
        """Test that root-relative references resolve against the origin."""
        assert validate_uri("/x", "https://a.com/b/c") == "https://a.com/x"

    def test_relative_appended_to_base_path(self):
        """Test that relative references append to the base path."""
        assert validate_uri("x", "https://a.com/b/c") == "https://a.com/b/c/x"

    def test_relative_with_trailing_slash(self):
        """Test that no double slash is produced."""
        assert validate_uri("x.png", "https://a.com/post/") == "https://a.com/post/x.png"

    def test_base_query_ignored(self):
        """Test that the base URI query and fragment are not kept."""
        assert validate_uri("x", "https://a.com/b?q=1#top") == "https://a.com/b/x"

    def test_protocol_relative(self):
        """Test that protocol-relative references take the base scheme."""
        assert validate_uri("//cdn.com/i.png", "https://a.com/") == "https://cdn.com/i.png"


class TestGetImageFilename:
    """Tests for get_image_filename."""

    def test_uses_last_path_segment(self):
        """Test that the name comes from the path without the query."""
        options = ConversionOptions(image_prefix="", title="T")
        assert get_image_filename("https://a.com/img/pic.png?w=100", options, False) == "pic.png"

    def test_prepends_title_and_prefix(self):
        """Test that the title folder and prefix are prepended."""
        options = ConversionOptions(image_prefix="imgs/", title="Article")
        assert get_image_filename("https://a.com/pic.png", options) == "Article/imgs/pic.png"

    def test_title_with_folder(self):
        """Test that only the folder part of a nested title is used."""
        options = ConversionOptions(image_prefix="imgs/", title="Notes/Article")
        assert get_image_filename("https://a.com/pic.png", options) == "Notes/imgs/pic.png"

    def test_data_uri(self):
        """Test that data URIs are named after their subtype."""
        options = ConversionOptions(image_prefix="")
        assert get_image_filename("data:image/png;base64,AAAA", options, False) == "image.png"

    def test_missing_extension_gets_placeholder(self):
        """Test that extension-less names get the placeholder extension."""
        options = ConversionOptions(image_prefix="")
        assert get_image_filename("https://a.com/img/pic", options, False) == "pic" + PLACEHOLDER_EXTENSION


class TestMimeHelpers:
    """Tests for MIME and extension helpers."""

    def test_extension_for_known_mime(self):
        """Test extension lookup for a registered type."""
        assert extension_for_mime("image/png") == "png"

    def test_extension_ignores_parameters(self):
        """Test that Content-Type parameters are ignored."""
        assert extension_for_mime("image/png; charset=binary") == "png"

    def test_extension_for_unknown_mime(self):
        """Test fallback to the MIME subtype."""
        assert extension_for_mime("application/x-snipdown-test") == "x-snipdown-test"

    def test_mime_for_document_files(self):
        """Test MIME types of the output formats."""
        assert mime_for_filename("Title.md") == "text/markdown"
        assert mime_for_filename("Title.org") == "text/org"

    def test_encode_uri_keeps_separators(self):
        """Test that encode_uri escapes spaces but keeps slashes."""
        assert encode_uri("My Page/pic 1.png") == "My%20Page/pic%201.png"
