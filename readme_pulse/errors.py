"""Exception hierarchy for README section updates."""


class PulseError(Exception):
    """Base class for every failure raised by a patch cycle or its collaborators."""


class NotFoundError(PulseError):
    """Something expected is absent; callers usually treat this as nothing to do."""


class SectionNotFound(NotFoundError):
    """The document has no start marker for the section, or no matching end marker."""

    def __init__(self, section_name: str, detail: str = "start marker not found") -> None:
        self.section_name = section_name
        super().__init__(f"Section '{section_name}' not found in document: {detail}")


class MalformedError(PulseError):
    """A marker is present but cannot be parsed."""


class MalformedMarker(MalformedError):
    """The start marker is never closed with `-->`."""

    def __init__(self, section_name: str) -> None:
        self.section_name = section_name
        super().__init__(f"Start marker for section '{section_name}' is not closed with '-->'")


class MissingTargetIdentifier(MalformedError):
    """The start marker declares a target (`name:`) but the target is blank."""

    def __init__(self, section_name: str) -> None:
        self.section_name = section_name
        super().__init__(
            f"Section header must include a target "
            f"(<!--START_SECTION:{section_name}:target-->)"
        )


class UpstreamError(PulseError):
    """An external API call failed."""


class ApiError(UpstreamError):
    """The upstream service answered with an error status or an error payload."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class RateLimitExceeded(UpstreamError):
    """The upstream service answered HTTP 429."""

    def __init__(self, service: str = "upstream") -> None:
        self.service = service
        super().__init__(f"Rate limit exceeded for {service}")


class RequestTimeoutError(UpstreamError):
    """The request did not complete within its timeout."""


class ParseError(UpstreamError):
    """The upstream response could not be decoded into a snapshot."""


class DocumentIOError(PulseError):
    """Reading, writing or renaming the target document failed."""


class ConfigError(PulseError):
    """Settings are missing or invalid; raised at startup, not per cycle."""
