"""ejibaya - subscriber-record ETL, bulk loading and backup tooling."""

__version__ = "2.0.0"
