from typing import List, Optional


def parse_page_numbers(total_pages: int, page_range: Optional[str]) -> List[int]:
    """Return 1-based page numbers, ascending, for a page range string.
    Supports: None/"all" (every page), "first", "last", "N", "S-E", "S-", "-E".
    """
    if total_pages <= 0:
        return []
    pr = "" if page_range is None else str(page_range).strip().lower()
    if pr in ("", "all"):
        return list(range(1, total_pages + 1))
    if pr == "first":
        return [1]
    if pr == "last":
        return [total_pages]
    try:
        if "-" in pr:
            s, e = pr.split("-", 1)
            start = int(s) if s.strip() else 1
            end = int(e) if e.strip() else total_pages
            if start < 1 or end < start or start > total_pages:
                raise ValueError
            return list(range(start, min(end, total_pages) + 1))
        page = int(pr)
    except ValueError:
        raise ValueError(f"Invalid page range: {page_range}") from None
    if page < 1 or page > total_pages:
        raise ValueError(f"Page {page} out of range (1-{total_pages})")
    return [page]
