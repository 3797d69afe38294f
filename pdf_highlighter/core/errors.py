"""
Exception classes for highlight bookkeeping and search.
"""


class HighlightError(Exception):
    """Base exception for all highlight errors."""

    pass


class DuplicateId(HighlightError):
    """A highlight with the same id already exists in the active document."""

    def __init__(self, highlight_id: str):
        super().__init__(f"Highlight id already present: {highlight_id}")
        self.highlight_id = highlight_id


class NotFound(HighlightError, KeyError):
    """No highlight with the requested id in the active document."""

    def __init__(self, highlight_id: str):
        super().__init__(f"Highlight not found: {highlight_id}")
        self.highlight_id = highlight_id

    def __str__(self) -> str:
        return self.args[0]


class PageExtractionFailure(HighlightError):
    """Text extraction for a single page failed. Search skips the page."""

    def __init__(self, page_number: int, cause: BaseException):
        super().__init__(f"Text extraction failed on page {page_number}: {cause}")
        self.page_number = page_number
        self.cause = cause


class InvalidHighlightDocument(HighlightError, ValueError):
    """A serialized highlight document does not have the expected shape."""

    pass
