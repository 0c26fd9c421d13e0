"""PRT Tools - table conversion and command line."""
from .table import dataframe_to_prt, export_parquet, import_parquet, prt_to_dataframe

__all__ = ["dataframe_to_prt", "export_parquet", "import_parquet", "prt_to_dataframe"]
