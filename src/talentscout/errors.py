from __future__ import annotations


class PipelineError(Exception):
    """Base class for failures raised by pipeline stages."""


class BrowserServiceUnavailable(PipelineError):
    pass


class ScrapeError(PipelineError):
    pass


class DocumentDownloadError(PipelineError):
    pass


class DocumentExtractionError(PipelineError):
    pass


class MalformedLLMOutput(PipelineError):
    pass


class SearchError(PipelineError):
    pass


class LLMUnavailable(PipelineError):
    pass
