"""
Grid export service: the rows a view shows, as a CSV download
"""

import io
from datetime import datetime, timezone

import pandas as pd

from barpanel.schemas.grid import GridPage
from barpanel.services.grids import GridDefinition

# Excel only detects UTF-8 in CSV files that start with a BOM
CSV_ENCODING = "utf-8-sig"


class ExportService:
    """Service for turning grid pages into downloadable files"""

    @staticmethod
    def export_csv(grid: GridDefinition, page: GridPage) -> bytes:
        """Export a page with column headers and display text, as in the grid"""
        headers = [column.header for column in grid.columns]
        data = []
        for rendered in grid.render_rows(page.rows):
            data.append([rendered["display"][column.field] for column in grid.columns])

        df = pd.DataFrame(data, columns=headers)

        buffer = io.BytesIO()
        df.to_csv(buffer, index=False, encoding=CSV_ENCODING)
        return buffer.getvalue()

    @staticmethod
    def export_filename(grid: GridDefinition) -> str:
        stamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M")
        return f"{grid.name}_{stamp}.csv"
