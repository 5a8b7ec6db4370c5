from taxonomy_pipeline.ingest.run import IngestionPass, interleave_segments
from taxonomy_pipeline.ingest.sheet import GoogleSheetsSource, SheetRow, read_csv_rows, spreadsheet_id_from_url

__all__ = [
    "GoogleSheetsSource",
    "IngestionPass",
    "SheetRow",
    "interleave_segments",
    "read_csv_rows",
    "spreadsheet_id_from_url",
]
