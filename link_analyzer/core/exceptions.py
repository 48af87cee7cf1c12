"""Pipeline error taxonomy."""


class LinkAnalyzerError(Exception):
    """Base class for pipeline errors."""


class ScrapeError(LinkAnalyzerError):
    """No extractor produced usable content."""


class AnalysisError(LinkAnalyzerError):
    """The model response was missing, unparsable or failed validation."""


class PersistenceError(LinkAnalyzerError):
    """Writing the analysis to the store failed."""
