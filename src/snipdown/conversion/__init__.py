"""HTML to Markdown/Org conversion for snipdown."""

from .converter import ConversionResult, DocumentConverter
from .engine import Rule, RuleEngine, strip_control_characters
from .extractor import ArticleExtractor
from .images import ImageManifest, PreparedImages, disambiguate, predownload_images
from .markdown import MarkdownEngine, build_markdown_engine
from .org import OrgEngine, build_org_engine
from .protocols import ArticleSimplifier, SimplifiedArticle
from .rules import ConversionContext
from .simplifier import ReadabilitySimplifier
from .tables import TableMatrix, TableReconstructor

__all__ = [
    # Protocols
    "ArticleSimplifier",
    "SimplifiedArticle",
    # Implementations
    "ArticleExtractor",
    "ReadabilitySimplifier",
    "DocumentConverter",
    "ConversionResult",
    "ConversionContext",
    "Rule",
    "RuleEngine",
    "MarkdownEngine",
    "OrgEngine",
    "build_markdown_engine",
    "build_org_engine",
    "TableMatrix",
    "TableReconstructor",
    "ImageManifest",
    "PreparedImages",
    "disambiguate",
    "predownload_images",
    "strip_control_characters",
]
