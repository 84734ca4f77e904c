"""Table reconstruction into aligned fixed-width text tables."""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Callable

from bs4 import BeautifulSoup, Tag

from ..models.options import TableFormatting

logger = logging.getLogger(__name__)

FORMATTING_TAGS = ["b", "strong", "i", "em", "u", "mark", "sub", "sup"]

NO_DATA_TABLE = "| No data available |\n|-|"

_LINK_MARKUP = re.compile(r"!?\[([^\]]*)\]\([^)]*\)")
_EMPHASIS_MARKUP = re.compile(r"[*_~`]+(.*?)[*_~`]+")


def visible_length(content: str) -> int:
    """Length of cell text as rendered, ignoring link and emphasis markup."""
    text = content.replace("\n", " ")
    text = _LINK_MARKUP.sub(r"\1", text)
    text = _EMPHASIS_MARKUP.sub(r"\1", text)
    return len(text)


def _span(cell: Tag, attribute: str) -> int:
    try:
        return max(1, int(cell.get(attribute) or 1))
    except ValueError:
        return 1


@dataclass
class TableMatrix:
    """
    Sparse grid of rendered cell strings.

    Spanning cells are written into every slot of their footprint.
    ``column_widths`` is updated as cells are placed.
    """

    rows: list[dict[int, str]] = field(default_factory=list)
    column_widths: list[int] = field(default_factory=list)

    def ensure_row(self, index: int) -> dict[int, str]:
        while len(self.rows) <= index:
            self.rows.append({})
        return self.rows[index]

    def next_free_column(self, row: int, start: int = 0) -> int:
        occupied = self.ensure_row(row)
        column = start
        while column in occupied:
            column += 1
        return column

    def place(self, row: int, column: int, content: str, rowspan: int = 1, colspan: int = 1) -> None:
        width = visible_length(content)
        for r in range(row, row + rowspan):
            target = self.ensure_row(r)
            for c in range(column, column + colspan):
                target[c] = content
                while len(self.column_widths) <= c:
                    self.column_widths.append(0)
                self.column_widths[c] = max(self.column_widths[c], width)

    def cell(self, row: int, column: int) -> str:
        return self.rows[row].get(column, "")

    @property
    def row_count(self) -> int:
        return len(self.rows)

    @property
    def column_count(self) -> int:
        return len(self.column_widths)


class TableReconstructor:
    """
    Render HTML tables as pipe tables.

    Cells are converted with ``cell_converter`` (an HTML fragment to inline
    text function). ``joint`` is the character where separator dashes meet:
    ``|`` for Markdown, ``+`` for Org.

    Example:
        tables = TableReconstructor(TableFormatting(), cell_engine.convert)
        text = tables.render(soup.find("table"))
    """

    def __init__(
        self,
        formatting: TableFormatting,
        cell_converter: Callable[[str], str],
        joint: str = "|",
    ) -> None:
        self.formatting = formatting
        self._convert_cell = cell_converter
        self._joint = joint

    @staticmethod
    def rows(table: Tag) -> list[Tag]:
        """Rows in output order: header row, then body rows."""
        thead = table.find("thead", recursive=False)
        tbodies = table.find_all("tbody", recursive=False)
        if thead is not None or tbodies:
            rows: list[Tag] = []
            if thead is not None:
                header = thead.find("tr", recursive=False)
                if header is not None:
                    rows.append(header)
            for tbody in tbodies:
                rows.extend(tbody.find_all("tr", recursive=False))
            return rows
        return [row for row in table.find_all("tr") if row.find_parent("table") is table]

    def render_cell(self, cell: Tag) -> str:
        fragment = BeautifulSoup(cell.decode_contents(), "html.parser")
        if self.formatting.strip_formatting:
            node = fragment.find(FORMATTING_TAGS)
            while node is not None:
                node.replace_with(node.get_text().strip())
                node = fragment.find(FORMATTING_TAGS)
        return self._convert_cell(str(fragment)).strip()

    def build_matrix(self, table: Tag) -> TableMatrix:
        matrix = TableMatrix()
        for row_index, row in enumerate(self.rows(table)):
            column = 0
            matrix.ensure_row(row_index)
            for cell in row.find_all(["td", "th"], recursive=False):
                column = matrix.next_free_column(row_index, column)
                rowspan = _span(cell, "rowspan")
                colspan = _span(cell, "colspan")
                matrix.place(row_index, column, self.render_cell(cell), rowspan, colspan)
                column += colspan
        return matrix

    def format_cell(self, content: str, width: int) -> str:
        if not self.formatting.pretty_print or "\n" in content:
            return f" {content} "

        total = width + 2
        length = visible_length(content)
        if not self.formatting.center_text:
            return f" {content}" + " " * max(0, total - length - 1)

        padding = max(0, total - length)
        left = math.floor(padding / 2)
        right = math.ceil(padding / 2)
        return " " * left + content + " " * right

    def _line(self, matrix: TableMatrix, row: int) -> str:
        cells = [
            self.format_cell(matrix.cell(row, column), matrix.column_widths[column])
            for column in range(matrix.column_count)
        ]
        return "|" + "|".join(cells) + "|"

    def _separator(self, matrix: TableMatrix) -> str:
        dashes = ["-" * (max(3, width) + 2) for width in matrix.column_widths]
        return "|" + self._joint.join(dashes) + "|"

    def render(self, table: Tag) -> str:
        """
        Render ``table`` as an aligned text table surrounded by blank lines.

        A table without rows renders as a "No data available" placeholder.
        """
        matrix = self.build_matrix(table)
        if matrix.row_count == 0 or matrix.column_count == 0:
            logger.debug("Table has no rows; emitting placeholder")
            return f"\n\n{NO_DATA_TABLE}\n\n"

        lines = [self._line(matrix, 0), self._separator(matrix)]
        lines.extend(self._line(matrix, row) for row in range(1, matrix.row_count))
        return "\n\n" + "\n".join(lines) + "\n\n"
