"""Exception hierarchy for the edge service."""


class AgentMarkdownError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(AgentMarkdownError):
    """Settings loaded from the environment are invalid."""


class ParseError(AgentMarkdownError):
    """HTML could not be parsed into a document."""


class SelectorError(AgentMarkdownError):
    """A content selector string is malformed or unsupported."""


class NetworkError(AgentMarkdownError):
    """An outbound fetch to the origin or artifact store failed."""
