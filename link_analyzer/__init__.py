"""Link Analyzer - chat link ingestion, scraping and local AI analysis."""

__version__ = "1.0.0"
