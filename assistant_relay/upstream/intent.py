"""Content inspection that drives mode selection.

Every decision here is a plain regex predicate so it can be swapped or
tested on its own. The usefulness check in particular is a best-effort
heuristic, not a guarantee that an answer is grounded.
"""

import re
from dataclasses import dataclass

IMAGE_ACTION_PATTERN = re.compile(
    r"create|generate|draw|show me|design|make|visualize", re.IGNORECASE
)
IMAGE_NOUN_PATTERN = re.compile(
    r"image|picture|logo|graph|chart|diagram|illustration", re.IGNORECASE
)

ATTACHED_FILE_PATTERN = re.compile(
    r"\AAttached file \((?P<name>.*?)\):\n\n(?P<body>.*)\n\nUser query: (?P<query>.*)\Z",
    re.DOTALL,
)

REFUSAL_PATTERN = re.compile(
    r"don't know|not sure|no information|no data|unable to find|I do not have",
    re.IGNORECASE,
)

# Assistant file-search citations, e.g. 【4:0†source】 or [4:0†report.pdf]
CITATION_PATTERN = re.compile(r"【\d+:\d+†[^】]*】|\[\d+:\d+†[^\]]*\]")


@dataclass(frozen=True)
class AttachedFile:
    """A user message built around an attached file's text."""

    name: str
    body: str
    query: str


def is_image_request(text: str) -> bool:
    """True when the message asks for an image to be produced."""
    return bool(IMAGE_ACTION_PATTERN.search(text) and IMAGE_NOUN_PATTERN.search(text))


def parse_attached_file(text: str) -> AttachedFile | None:
    """Split an ``Attached file (...)`` message into name, body and query.

    Returns:
        The parsed parts, or None when the message does not follow the
        attached-file layout.
    """
    match = ATTACHED_FILE_PATTERN.match(text)
    if match is None:
        return None
    return AttachedFile(
        name=match.group("name"),
        body=match.group("body"),
        query=match.group("query"),
    )


def format_attached_file(name: str, body: str, query: str) -> str:
    """Build the message text that ``parse_attached_file`` understands."""
    return f"Attached file ({name}):\n\n{body}\n\nUser query: {query}"


def is_useful_delta(text: str) -> bool:
    """True unless the delta reads like a refusal or an admission of ignorance."""
    return REFUSAL_PATTERN.search(text) is None


def has_citation(text: str) -> bool:
    """True when the answer carries at least one source citation marker."""
    return CITATION_PATTERN.search(text) is not None
