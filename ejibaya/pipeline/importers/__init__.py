"""Source importers; importing this package registers every importer type."""

from ejibaya.pipeline.importers.delimited_importer import DelimitedFileImporter
from ejibaya.pipeline.importers.pdf_importer import PdfPairImporter
from ejibaya.pipeline.importers.spreadsheet_importer import SpreadsheetImporter

__all__ = ["DelimitedFileImporter", "PdfPairImporter", "SpreadsheetImporter"]
