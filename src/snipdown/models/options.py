"""Per-request conversion options."""

from enum import Enum
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field

DEFAULT_FRONTMATTER = (
    "---\n"
    "created: {date:YYYY-MM-DDTHH:mm:ss} (UTC {date:Z})\n"
    "tags: [{keywords}]\n"
    "source: {baseURI}\n"
    "author: {byline}\n"
    "---\n"
    "\n"
    "# {pageTitle}\n"
    "\n"
    "> ## Excerpt\n"
    "> {excerpt}\n"
    "\n"
    "---"
)

DEFAULT_ORG_PREAMBLE = (
    "#+TITLE: {pageTitle}\n"
    "#+AUTHOR: {byline}\n"
    "#+DATE: {date:YYYY-MM-DD}\n"
    "#+FILETAGS: {keywords}\n"
    "#+SOURCE: {baseURI}"
)


SHARED_FIELDS = (
    "output_format",
    "table_formatting",
    "preserve_code_formatting",
    "title",
    "include_template",
    "save_as",
    "download_images",
    "image_prefix",
    "clips_folder",
    "disallowed_chars",
    "download_mode",
    "obsidian_integration",
    "obsidian_vault",
    "obsidian_folder",
)


class OutputFormat(str, Enum):
    """Target syntaxes."""

    MARKDOWN = "markdown"
    ORG = "org"


class DownloadMode(str, Enum):
    """How a finished document is handed to the platform."""

    DOWNLOADS_API = "downloads_api"
    CONTENT_LINK = "content_link"


class TableFormatting(BaseModel):
    """Table rendering switches."""

    strip_links: bool = Field(True, description="Render links inside cells as plain text")
    strip_formatting: bool = Field(False, description="Flatten bold/italic/etc. inside cells")
    pretty_print: bool = Field(True, description="Pad cells to column width")
    center_text: bool = Field(True, description="Center padded cell content")

    model_config = {"extra": "forbid"}


class ConversionOptions(BaseModel):
    """
    Options for one conversion request.

    Only the subset matching ``output_format`` is consulted; the other
    subset is carried along untouched (see ``format_fields``).
    """

    output_format: OutputFormat = Field(OutputFormat.MARKDOWN, description="Target syntax")

    # Markdown syntax
    heading_style: Literal["atx", "setext"] = Field("atx", description="Heading syntax")
    hr: str = Field("___", description="Horizontal rule text")
    bullet_list_marker: Literal["-", "*", "+"] = Field("-", description="Unordered list marker")
    code_block_style: Literal["fenced", "indented"] = Field("fenced", description="Code block syntax")
    fence: Literal["```", "~~~"] = Field("```", description="Fence used for fenced code blocks")
    em_delimiter: Literal["_", "*"] = Field("_", description="Emphasis delimiter")
    strong_delimiter: Literal["**", "__"] = Field("**", description="Strong emphasis delimiter")
    link_style: Literal["inlined", "referenced", "strip_links"] = Field(
        "inlined", description="How hyperlinks are written"
    )
    link_reference_style: Literal["full", "collapsed", "shortcut"] = Field(
        "full", description="Reference label style when link_style is referenced"
    )
    image_style: Literal[
        "markdown", "obsidian", "obsidian_nofolder", "original_source", "base64", "no_image"
    ] = Field("markdown", description="How image references are written")
    image_ref_style: Literal["inlined", "referenced"] = Field(
        "inlined", description="Inline images or a trailing reference list"
    )
    frontmatter: str = Field(DEFAULT_FRONTMATTER, description="Template written before the body")
    backmatter: str = Field("", description="Template written after the body")
    escape: bool = Field(True, description="Escape Markdown-special characters in text")

    # Shared
    table_formatting: TableFormatting = Field(default_factory=TableFormatting)
    preserve_code_formatting: bool = Field(False, description="Keep code block inner markup")
    title: str = Field("{pageTitle}", description="Template for the output file name")
    include_template: bool = Field(False, description="Wrap output in front/back matter or preamble")
    save_as: bool = Field(False, description="Ask for a destination on download")
    download_images: bool = Field(False, description="Download images next to the document")
    image_prefix: str = Field("{pageTitle}/", description="Template for the image folder")
    clips_folder: Optional[str] = Field(None, description="Template for the downloads sub-folder")
    disallowed_chars: str = Field("[]#^", description="Extra characters removed from file names")
    download_mode: DownloadMode = Field(DownloadMode.DOWNLOADS_API, description="Delivery mechanism")

    # Obsidian hand-off
    obsidian_integration: bool = Field(False, description="Send clips to Obsidian")
    obsidian_vault: str = Field("", description="Obsidian vault name")
    obsidian_folder: str = Field("", description="Folder inside the vault")

    # Org syntax
    org_bullet_list_marker: Literal["-", "+"] = Field("-", description="Org unordered list marker")
    org_todo_keyword: str = Field("", description="Keyword placed on top-level headings")
    org_include_properties: bool = Field(False, description="Add a property drawer")
    org_export_settings: str = Field("", description="Body of an #+OPTIONS: line")
    org_preamble_template: str = Field(DEFAULT_ORG_PREAMBLE, description="Template written before the body")
    org_image_style: Literal["org", "original_source", "no_image"] = Field(
        "org", description="How images are written in Org output"
    )

    model_config = {"extra": "forbid"}

    @classmethod
    def format_fields(cls, output_format: OutputFormat) -> list[str]:
        """Names of the options consulted when producing ``output_format``."""
        org = OutputFormat(output_format) == OutputFormat.ORG
        names = []
        for name in cls.model_fields:
            if name in SHARED_FIELDS:
                names.append(name)
            elif name.startswith("org_") == org:
                names.append(name)
        return names

    @property
    def is_org(self) -> bool:
        return self.output_format == OutputFormat.ORG

    @property
    def file_extension(self) -> str:
        return ".org" if self.is_org else ".md"

    @property
    def mime_type(self) -> str:
        return "text/org" if self.is_org else "text/markdown"

    def to_yaml(self) -> str:
        """Serialize options to YAML string."""
        import yaml

        return yaml.dump(self.model_dump(mode="json", exclude_none=True), default_flow_style=False)

    @classmethod
    def from_yaml(cls, yaml_str: str) -> "ConversionOptions":
        """Load options from YAML string."""
        import yaml

        data = yaml.safe_load(yaml_str) or {}
        return cls.model_validate(data)

    @classmethod
    def from_yaml_file(cls, path: Path) -> "ConversionOptions":
        """Load options from YAML file."""
        return cls.from_yaml(path.read_text(encoding="utf-8"))
