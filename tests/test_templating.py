"""Tests for template substitution."""

from datetime import datetime, timedelta, timezone

from snipdown.models.document import DocumentRecord
from snipdown.models.options import ConversionOptions, DownloadMode
from snipdown.templating import (
    format_clips_folder,
    format_date,
    format_obsidian_folder,
    format_title,
    resolve_image_prefix,
    substitute,
)

MOMENT = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone(timedelta(hours=2)))


def make_record(**kwargs) -> DocumentRecord:
    defaults = {
        "title": "Hello World",
        "page_title": "Hello World",
        "byline": "Ada",
        "base_uri": "https://ex.com/post",
        "hostname": "ex.com",
        "keywords": ("python", "web"),
    }
    defaults.update(kwargs)
    return DocumentRecord(**defaults)


class TestSubstitute:
    """Tests for substitute."""

    def test_field_tokens(self):
        """Test plain field substitution."""
        assert substitute("{pageTitle} by {byline}", make_record()) == "Hello World by Ada"

    def test_case_transforms(self):
        """Test kebab, snake, camel and pascal transforms."""
        record = make_record()
        assert substitute("{pageTitle:kebab}", record) == "hello-world"
        assert substitute("{pageTitle:snake}", record) == "hello_world"
        assert substitute("{pageTitle:camel}", record) == "helloWorld"
        assert substitute("{pageTitle:pascal}", record) == "HelloWorld"

    def test_unknown_tokens_removed(self):
        """Test that unresolved tokens become empty."""
        assert substitute("a{nothing}b", make_record()) == "ab"

    def test_keywords_field_and_separator(self):
        """Test the keyword list with and without a separator."""
        record = make_record()
        assert substitute("{keywords}", record) == "python,web"
        assert substitute("{keywords:, }", record) == "python, web"

    def test_date_token(self):
        """Test date tokens with the given timestamp."""
        assert substitute("{date:YYYY-MM-DD}", make_record(), now=MOMENT) == "2024-01-02"

    def test_single_pass(self):
        """Test that substituted values are not scanned again."""
        record = make_record(title="{byline}")
        assert substitute("{title}", record) == "{byline}"

    def test_disallowed_chars_applied_to_values(self):
        """Test that values are sanitized when disallowed chars are given."""
        record = make_record(page_title="a/b: [c]")
        assert substitute("{pageTitle}", record, "[]") == "ab c"

    def test_meta_values_available(self):
        """Test that meta tags are exposed as fields."""
        record = make_record(meta={"og:site_name": "Example"})
        assert substitute("{og:site_name}", record) == "Example"

    def test_empty_template(self):
        """Test that an empty template gives an empty string."""
        assert substitute("", make_record()) == ""


class TestFormatDate:
    """Tests for moment-style date formatting."""

    def test_basic_tokens(self):
        """Test year, month, day, hour, minute and second tokens."""
        assert format_date(MOMENT, "YYYY-MM-DDTHH:mm:ss") == "2024-01-02T03:04:05"

    def test_names_and_ordinals(self):
        """Test month names and ordinal days."""
        assert format_date(MOMENT, "MMMM Do, YYYY") == "January 2nd, 2024"
        assert format_date(MOMENT, "ddd") == "Tue"

    def test_literal_text(self):
        """Test that bracketed text is emitted literally."""
        assert format_date(MOMENT, "[Day] D") == "Day 2"

    def test_utc_offset(self):
        """Test UTC offset tokens."""
        assert format_date(MOMENT, "Z") == "+02:00"
        assert format_date(MOMENT, "ZZ") == "+0200"

    def test_twelve_hour_clock(self):
        """Test 12-hour tokens and meridiem."""
        afternoon = MOMENT.replace(hour=15)
        assert format_date(afternoon, "h:mm A") == "3:04 PM"


class TestFormatTitle:
    """Tests for title and folder formatting."""

    def test_title_sanitized(self):
        """Test that illegal characters in values are removed."""
        options = ConversionOptions(title="{pageTitle}")
        assert format_title(make_record(page_title="What? A: B"), options) == "What A B"

    def test_template_slash_creates_folder(self):
        """Test that a slash in the template is kept as a folder separator."""
        options = ConversionOptions(title="{hostname}/{pageTitle}")
        assert format_title(make_record(page_title="x/y"), options) == "ex.com/xy"

    def test_clips_folder(self):
        """Test that the clips folder ends with a slash."""
        options = ConversionOptions(clips_folder="Clips/{hostname}")
        assert format_clips_folder(make_record(), options) == "Clips/ex.com/"

    def test_clips_folder_unset(self):
        """Test that no clips folder yields an empty string."""
        assert format_clips_folder(make_record(), ConversionOptions()) == ""

    def test_clips_folder_ignored_for_content_link(self):
        """Test that page-link delivery cannot use folders."""
        options = ConversionOptions(clips_folder="Clips", download_mode=DownloadMode.CONTENT_LINK)
        assert format_clips_folder(make_record(), options) == ""

    def test_obsidian_folder(self):
        """Test the Obsidian vault folder."""
        options = ConversionOptions(obsidian_folder="Inbox")
        assert format_obsidian_folder(make_record(), options) == "Inbox/"

    def test_resolve_image_prefix(self):
        """Test that image prefix and title become concrete."""
        options = ConversionOptions(image_prefix="{pageTitle}/assets/")
        resolved = resolve_image_prefix(options, make_record(page_title="A: B"))
        assert resolved.image_prefix == "A B/assets/"
        assert resolved.title == "A B"
        assert options.image_prefix == "{pageTitle}/assets/"
