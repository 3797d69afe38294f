from typing import List, TypedDict


class Rect(TypedDict):
    x1: float
    x2: float
    y1: float
    y2: float
    width: float         # always x2 - x1
    height: float        # always y2 - y1
    pageNumber: int      # 1-based


class Position(TypedDict):
    boundingRect: Rect
    rects: List[Rect]    # empty only for area highlights
    pageNumber: int
    usePdfCoordinates: bool  # True: intrinsic frame (PDF points, origin bottom-left)


class Content(TypedDict, total=False):
    text: str
    image: str           # data URL of an area screenshot


class _CommentBase(TypedDict):
    text: str
    emoji: str


class Comment(_CommentBase, total=False):
    color: str


class NewHighlight(TypedDict):
    position: Position
    content: Content
    comment: Comment


class Highlight(NewHighlight):
    id: str


class PositionPatch(TypedDict, total=False):
    boundingRect: Rect
    rects: List[Rect]
    pageNumber: int
    usePdfCoordinates: bool


class ContentPatch(TypedDict, total=False):
    text: str
    image: str


class TextRun(TypedDict):
    text: str
    transform: List[float]  # [a, b, c, d, e, f]
    width: float


class PageText(TypedDict):
    pageNumber: int
    width: float
    height: float
    runs: List[TextRun]


class PageViewport(TypedDict):
    width: float         # intrinsic page width (points)
    height: float        # intrinsic page height (points)
    scale: float
    rotation: int        # degrees, multiple of 90
