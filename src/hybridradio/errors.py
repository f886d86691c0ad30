from __future__ import annotations

from typing import List, Optional


class RadioDnsError(Exception):
    """
    Brief: Base class for every failure raised by the resolution subsystem.

    Inputs:
    - message: Description of the error

    Outputs:
    - Exception instance
    """

    pass


class InvalidBearerFormat(RadioDnsError, ValueError):
    """Bearer string matches neither the FM nor the DAB pattern."""

    def __init__(self, bearer: object, reason: str = "Invalid bearer format") -> None:
        super().__init__(f"{reason}: {bearer!r}")
        self.bearer = bearer


class AuthorityUnresolvable(RadioDnsError):
    """No CNAME could be resolved for the bearer in any configured zone."""

    pass


class ApplicationNotFound(RadioDnsError):
    """SRV lookup for an application returned nothing or failed."""

    pass


class MetadataError(RadioDnsError):
    """
    Brief: Failure while fetching or reading an SPI document from one host.

    Inputs:
    - message: Description of the error
    - host: Optional host the request was made against

    Outputs:
    - Exception instance
    """

    def __init__(self, message: str, host: Optional[str] = None) -> None:
        super().__init__(message)
        self.host = host


class MetadataUnreachable(MetadataError):
    pass


class MetadataMalformed(MetadataUnreachable):
    pass


class MetadataTimeout(MetadataError):
    pass


class BearerNotAdvertised(MetadataError):
    pass


class AllCandidatesFailed(RadioDnsError):
    """
    Brief: Every task in a first-success race failed.

    Inputs:
    - message: Description of the error
    - errors: Per-candidate exceptions in submission order

    Outputs:
    - Exception instance with an `errors` attribute
    """

    def __init__(self, message: str, errors: Optional[List[BaseException]] = None):
        super().__init__(message)
        self.errors: List[BaseException] = list(errors or [])


class StreamExpansionError(RadioDnsError):
    """
    Brief: A stream URL could not be expanded to terminal audio streams.

    Inputs:
    - message: Description of the error
    - url: URL that failed

    Outputs:
    - Exception instance
    """

    def __init__(self, message: str, url: Optional[str] = None) -> None:
        super().__init__(message)
        self.url = url


class UnrecognizedStreamFormat(StreamExpansionError):
    pass


class StreamUnreachable(StreamExpansionError):
    pass


class ExpansionLimitExceeded(StreamExpansionError):
    pass


class ExpansionLoopDetected(StreamExpansionError):
    pass


class ConnectivityError(RadioDnsError):
    pass
