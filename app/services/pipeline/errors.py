"""Pipeline stage errors.

A PipelineStageError fails the current job attempt; the queue's retry policy
decides whether another attempt follows.
"""


class PipelineStageError(Exception):
    """A fatal failure in one pipeline stage."""

    def __init__(self, stage: str, message: str):
        self.stage = stage
        super().__init__(f"[{stage}] {message}")


class NoQueriesPlannedError(PipelineStageError):
    def __init__(self, message: str = "No queries generated"):
        super().__init__("query_planning", message)


class NoSearchResultsError(PipelineStageError):
    def __init__(self, windows: list[int]):
        self.windows = windows
        tried = ", ".join(f"{w}d" for w in windows)
        super().__init__("search", f"No search results found (windows tried: {tried})")


class NoArticlesSelectedError(PipelineStageError):
    def __init__(self, message: str = "No articles selected"):
        super().__init__("ranking", message)


class SummarizationError(PipelineStageError):
    def __init__(self, message: str = "No articles could be summarized"):
        super().__init__("summarization", message)
